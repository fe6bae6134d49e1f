"""Wallet payments: unlocking a job, boosting a job and topping up.

Every operation runs inside ``storage.atomic(user_id)``: all preconditions
are checked before anything is written, and the payment record, the wallet
movement and the side effect either all land or none do.
"""
from typing import Optional

import structlog

import schemas
from errors import ConflictError, InsufficientFundsError, NotFoundError, ValidationError
from settings import Settings, get_settings
from storage import Storage

logger = structlog.get_logger(__name__)


def _require_user(storage: Storage, user_id: str) -> schemas.User:
    user = storage.get_user_for_update(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def _require_job(storage: Storage, job_id: str) -> schemas.Job:
    job = storage.get_job(job_id)
    if job is None:
        raise NotFoundError("Job not found")
    return job


def _require_funds(user: schemas.User, amount: int) -> None:
    if user.wallet_balance < amount:
        logger.info(
            "Insufficient wallet balance",
            user_id=user.id,
            balance=user.wallet_balance,
            required=amount,
        )
        raise InsufficientFundsError(required=amount, balance=user.wallet_balance)


def _charge(storage: Storage, user_id: str, amount: int, type_: str, job_id: Optional[str]) -> schemas.Payment:
    payment = storage.create_payment(
        schemas.PaymentCreate(user_id=user_id, amount=amount, type=type_, job_id=job_id)
    )
    storage.update_user_wallet_balance(user_id, -amount)
    return payment


def unlock_job(
    storage: Storage, user_id: str, job_id: str, settings: Optional[Settings] = None
) -> schemas.PaymentResult:
    """Pay to see a job's full description and contact details."""
    price = (settings or get_settings()).unlock_price

    with storage.atomic(user_id) as uow:
        user = _require_user(uow, user_id)
        _require_job(uow, job_id)
        _require_funds(user, price)
        if uow.is_job_unlocked(user_id, job_id):
            raise ConflictError("Job already unlocked")

        payment = _charge(uow, user_id, price, "job_unlock", job_id)
        uow.unlock_job(user_id, job_id)

    logger.info("Job unlocked", user_id=user_id, job_id=job_id, payment_id=payment.id, amount=price)
    return schemas.PaymentResult(payment=payment, message="Job unlocked successfully")


def boost_job(
    storage: Storage, user_id: str, job_id: str, settings: Optional[Settings] = None
) -> schemas.PaymentResult:
    """Pay to boost a job. Boosting again charges again and restarts the window."""
    price = (settings or get_settings()).boost_price

    with storage.atomic(user_id) as uow:
        user = _require_user(uow, user_id)
        _require_job(uow, job_id)
        _require_funds(user, price)

        payment = _charge(uow, user_id, price, "job_boost", job_id)
        job = uow.boost_job(job_id)

    logger.info(
        "Job boosted",
        user_id=user_id,
        job_id=job_id,
        payment_id=payment.id,
        boost_expires_at=job.boost_expires_at.isoformat(),
    )
    return schemas.PaymentResult(payment=payment, message="Job boosted successfully")


def top_up_wallet(storage: Storage, user_id: str, amount: int) -> schemas.PaymentResult:
    if amount <= 0:
        raise ValidationError("Top-up amount must be positive")

    with storage.atomic(user_id) as uow:
        _require_user(uow, user_id)
        payment = uow.create_payment(
            schemas.PaymentCreate(user_id=user_id, amount=amount, type="wallet_topup")
        )
        uow.update_user_wallet_balance(user_id, amount)

    logger.info("Wallet topped up", user_id=user_id, payment_id=payment.id, amount=amount)
    return schemas.PaymentResult(payment=payment, message="Wallet topped up successfully")


def create_job(
    storage: Storage,
    user_id: str,
    fields: schemas.JobFields,
    boost: bool = False,
    settings: Optional[Settings] = None,
) -> schemas.Job:
    """Post a job for the business owned by ``user_id``, optionally boosted.

    An inline boost is charged like any other boost; when the wallet cannot
    cover it the job is not created.
    """
    price = (settings or get_settings()).boost_price

    with storage.atomic(user_id) as uow:
        business = uow.get_business_by_user_id(user_id)
        if business is None:
            raise NotFoundError("Business not found")
        if boost:
            _require_funds(_require_user(uow, user_id), price)

        job = uow.create_job(
            schemas.JobCreate(
                **fields.model_dump(include=set(schemas.JobFields.model_fields)),
                business_id=business.id,
            )
        )
        if boost:
            _charge(uow, user_id, price, "job_boost", job.id)
            job = uow.boost_job(job.id)

    logger.info("Job posted", user_id=user_id, job_id=job.id, business_id=business.id, boosted=job.is_boosted)
    return job
