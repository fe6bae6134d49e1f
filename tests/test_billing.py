import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

import billing
import schemas
from errors import ConflictError, InsufficientFundsError, NotFoundError, ValidationError
from factories import create_business, create_job, create_worker, job_fields

# --- Unlock ---


def test_unlock_job_insufficient_balance(storage, test_settings):
    """
    Unlocking with less than the unlock price in the wallet.
    Should raise, record no payment and leave the balance alone.
    """
    # 1. Arrange
    user, _ = create_worker(storage, balance=10)
    _, business = create_business(storage)
    job = create_job(storage, business)

    # 2. Act
    with pytest.raises(InsufficientFundsError) as exc_info:
        billing.unlock_job(storage, user.id, job.id, test_settings)

    # 3. Assert
    assert exc_info.value.required == 20
    assert exc_info.value.balance == 10
    assert storage.get_user(user.id).wallet_balance == 10
    assert storage.get_payments(user.id) == []
    assert storage.is_job_unlocked(user.id, job.id) is False


def test_unlock_job_sufficient_balance(storage, test_settings):
    """
    Unlocking with 50 in the wallet.
    Should debit 20, record one completed job_unlock payment and unlock the job.
    """
    # 1. Arrange
    user, _ = create_worker(storage, balance=50)
    _, business = create_business(storage)
    job = create_job(storage, business)

    # 2. Act
    result = billing.unlock_job(storage, user.id, job.id, test_settings)

    # 3. Assert
    assert result.message == "Job unlocked successfully"
    assert result.payment.type == "job_unlock"
    assert result.payment.status == "completed"
    assert result.payment.amount == 20
    assert result.payment.job_id == job.id
    assert storage.get_user(user.id).wallet_balance == 30
    assert storage.is_job_unlocked(user.id, job.id) is True
    assert [p.id for p in storage.get_payments(user.id)] == [result.payment.id]


def test_unlock_job_exact_balance(storage, test_settings):
    user, _ = create_worker(storage, balance=20)
    _, business = create_business(storage)
    job = create_job(storage, business)

    billing.unlock_job(storage, user.id, job.id, test_settings)

    assert storage.get_user(user.id).wallet_balance == 0


def test_unlock_job_twice_is_not_charged_twice(storage, test_settings):
    """A second unlock of the same job is rejected before any money moves."""
    # 1. Arrange
    user, _ = create_worker(storage, balance=100)
    _, business = create_business(storage)
    job = create_job(storage, business)
    billing.unlock_job(storage, user.id, job.id, test_settings)

    # 2. Act
    with pytest.raises(ConflictError):
        billing.unlock_job(storage, user.id, job.id, test_settings)

    # 3. Assert
    assert storage.get_user(user.id).wallet_balance == 80
    assert len(storage.get_payments(user.id)) == 1
    assert len(storage.get_unlocked_jobs(user.id)) == 1


def test_unlock_job_unknown_user(storage, test_settings):
    _, business = create_business(storage)
    job = create_job(storage, business)

    with pytest.raises(NotFoundError, match="User not found"):
        billing.unlock_job(storage, "ghost", job.id, test_settings)


def test_unlock_job_unknown_job(storage, test_settings):
    """A missing job is reported even when the wallet could cover it, and nothing is charged."""
    user, _ = create_worker(storage, balance=100)

    with pytest.raises(NotFoundError, match="Job not found"):
        billing.unlock_job(storage, user.id, "ghost", test_settings)

    assert storage.get_user(user.id).wallet_balance == 100
    assert storage.get_payments(user.id) == []


def test_unlock_price_comes_from_settings(storage, test_settings):
    user, _ = create_worker(storage, balance=100)
    _, business = create_business(storage)
    job = create_job(storage, business)
    pricier = test_settings.model_copy(update={"unlock_price": 35})

    result = billing.unlock_job(storage, user.id, job.id, pricier)

    assert result.payment.amount == 35
    assert storage.get_user(user.id).wallet_balance == 65


# --- Boost ---


def test_boost_job_insufficient_balance(storage, test_settings):
    user, business = create_business(storage, balance=99)
    job = create_job(storage, business)

    with pytest.raises(InsufficientFundsError):
        billing.boost_job(storage, user.id, job.id, test_settings)

    assert storage.get_user(user.id).wallet_balance == 99
    assert storage.get_payments(user.id) == []
    assert storage.get_job(job.id).is_boosted is False


def test_boost_job_sets_window(storage, test_settings):
    """
    Boosting with 1000 in the wallet.
    Should debit 100 and mark the job boosted for 30 days.
    """
    # 1. Arrange
    user, business = create_business(storage, balance=1000)
    job = create_job(storage, business)
    before = schemas.utcnow()

    # 2. Act
    result = billing.boost_job(storage, user.id, job.id, test_settings)

    # 3. Assert
    boosted = storage.get_job(job.id)
    assert result.message == "Job boosted successfully"
    assert result.payment.type == "job_boost"
    assert result.payment.amount == 100
    assert storage.get_user(user.id).wallet_balance == 900
    assert boosted.is_boosted is True
    assert before + timedelta(days=30) <= boosted.boost_expires_at
    assert boosted.boost_expires_at <= schemas.utcnow() + timedelta(days=30)


def test_boost_job_again_charges_again(storage, test_settings):
    """Re-boosting is not idempotent: each boost is paid for and restarts the window."""
    # 1. Arrange
    user, business = create_business(storage, balance=1000)
    job = create_job(storage, business)
    storage.boost_job(job.id, now=schemas.utcnow() - timedelta(days=20))
    stale_expiry = storage.get_job(job.id).boost_expires_at

    # 2. Act
    billing.boost_job(storage, user.id, job.id, test_settings)
    billing.boost_job(storage, user.id, job.id, test_settings)

    # 3. Assert
    payments = storage.get_payments(user.id)
    assert storage.get_user(user.id).wallet_balance == 800
    assert len(payments) == 2
    assert all(p.type == "job_boost" for p in payments)
    assert storage.get_job(job.id).boost_expires_at > stale_expiry + timedelta(days=19)


def test_boost_job_expires_exactly_thirty_days_later(storage, test_settings):
    user, business = create_business(storage, balance=100)
    job = create_job(storage, business)
    pinned = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)

    with patch("schemas.utcnow", return_value=pinned):
        billing.boost_job(storage, user.id, job.id, test_settings)

    assert storage.get_job(job.id).boost_expires_at == datetime(2026, 3, 31, 9, 30, tzinfo=timezone.utc)


def test_boost_job_unknown_job(storage, test_settings):
    user, _ = create_business(storage, balance=1000)

    with pytest.raises(NotFoundError):
        billing.boost_job(storage, user.id, "ghost", test_settings)

    assert storage.get_user(user.id).wallet_balance == 1000


# --- Top up ---


def test_top_up_wallet(storage):
    """A top up credits exactly the amount and records one wallet_topup payment."""
    user, _ = create_worker(storage, balance=5)

    result = billing.top_up_wallet(storage, user.id, 250)

    assert result.message == "Wallet topped up successfully"
    assert result.payment.type == "wallet_topup"
    assert result.payment.job_id is None
    assert storage.get_user(user.id).wallet_balance == 255
    assert len(storage.get_payments(user.id)) == 1


def test_top_up_unknown_user(storage):
    with pytest.raises(NotFoundError):
        billing.top_up_wallet(storage, "ghost", 100)


def test_top_up_then_unlock(storage, test_settings):
    user, _ = create_worker(storage)
    _, business = create_business(storage)
    job = create_job(storage, business)

    with pytest.raises(InsufficientFundsError):
        billing.unlock_job(storage, user.id, job.id, test_settings)
    billing.top_up_wallet(storage, user.id, 20)
    billing.unlock_job(storage, user.id, job.id, test_settings)

    assert storage.get_user(user.id).wallet_balance == 0
    assert sorted(p.type for p in storage.get_payments(user.id)) == ["job_unlock", "wallet_topup"]


# --- Job posting ---


def test_create_job_without_boost(storage, test_settings):
    user, business = create_business(storage)

    job = billing.create_job(storage, user.id, schemas.JobFields(**job_fields()), settings=test_settings)

    assert job.business_id == business.id
    assert job.is_boosted is False
    assert storage.get_payments(user.id) == []


def test_create_job_with_boost(storage, test_settings):
    user, business = create_business(storage, balance=150)

    job = billing.create_job(
        storage, user.id, schemas.JobFields(**job_fields()), boost=True, settings=test_settings
    )

    [payment] = storage.get_payments(user.id)
    assert job.is_boosted is True
    assert job.boost_expires_at is not None
    assert payment.type == "job_boost"
    assert payment.job_id == job.id
    assert storage.get_user(user.id).wallet_balance == 50


def test_create_job_with_boost_insufficient_balance(storage, test_settings):
    """An inline boost the wallet cannot cover creates no job at all."""
    user, business = create_business(storage, balance=40)

    with pytest.raises(InsufficientFundsError):
        billing.create_job(
            storage, user.id, schemas.JobFields(**job_fields()), boost=True, settings=test_settings
        )

    assert storage.get_jobs_by_business(business.id) == []
    assert storage.get_user(user.id).wallet_balance == 40


def test_create_job_requires_business(storage, test_settings):
    user, _ = create_worker(storage)

    with pytest.raises(NotFoundError, match="Business not found"):
        billing.create_job(storage, user.id, schemas.JobFields(**job_fields()), settings=test_settings)


def test_create_job_accepts_post_request(storage, test_settings):
    """Extra request fields (user id, boost flag) are not stored on the job."""
    user, _ = create_business(storage)
    request = schemas.JobPostRequest(**job_fields(title="From request"), user_id=user.id)

    job = billing.create_job(storage, user.id, request, settings=test_settings)

    assert job.title == "From request"
    assert not hasattr(job, "user_id")


def test_top_up_rejects_non_positive_amount(storage):
    user, _ = create_worker(storage)

    with pytest.raises(ValidationError):
        billing.top_up_wallet(storage, user.id, 0)

    assert storage.get_payments(user.id) == []


# --- Concurrency ---


def test_concurrent_unlocks_share_one_wallet(memory_storage, test_settings):
    """
    Eight threads unlock eight different jobs for a worker holding exactly one
    unlock's worth. Only one may succeed; the wallet never goes negative.
    """
    # 1. Arrange
    user, _ = create_worker(memory_storage, balance=20)
    _, business = create_business(memory_storage)
    jobs = [create_job(memory_storage, business, title=f"Job {i}") for i in range(8)]
    barrier = threading.Barrier(len(jobs))
    outcomes = []

    def unlock(job_id):
        barrier.wait()
        try:
            billing.unlock_job(memory_storage, user.id, job_id, test_settings)
            outcomes.append("ok")
        except InsufficientFundsError:
            outcomes.append("insufficient")

    # 2. Act
    threads = [threading.Thread(target=unlock, args=(job.id,)) for job in jobs]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    # 3. Assert
    payments = memory_storage.get_payments(user.id)
    assert sorted(outcomes) == ["insufficient"] * 7 + ["ok"]
    assert memory_storage.get_user(user.id).wallet_balance == 0
    assert [p.type for p in payments] == ["job_unlock"]
    assert len(memory_storage.get_unlocked_jobs(user.id)) == 1
