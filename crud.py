from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

import models
import schemas


# --- User CRUD ---
def get_user_by_id(db: Session, user_id: str, for_update: bool = False):
    """Get a user by their primary key ID."""
    query = db.query(models.User).filter(models.User.id == user_id)
    if for_update:
        query = query.with_for_update()
    return query.first()


def get_user_by_email(db: Session, email: str):
    return db.query(models.User).filter(models.User.email == email).first()


def create_user(db: Session, user: schemas.UserCreate):
    db_user = models.User(
        **user.model_dump(),
        wallet_balance=0,
        created_at=schemas.utcnow(),
    )
    db.add(db_user)
    db.flush()  # Assign ID without committing
    return db_user


def adjust_wallet_balance(db: Session, user_id: str, delta: int) -> int:
    """Apply ``delta`` as a single atomic increment. Returns rows touched."""
    result = db.execute(
        update(models.User)
        .where(models.User.id == user_id)
        .values(wallet_balance=models.User.wallet_balance + delta)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


# --- Worker / Business CRUD ---
def get_worker(db: Session, worker_id: str):
    return db.query(models.Worker).filter(models.Worker.id == worker_id).first()


def get_worker_by_user_id(db: Session, user_id: str):
    return db.query(models.Worker).filter(models.Worker.user_id == user_id).first()


def create_worker(db: Session, worker: schemas.WorkerCreate):
    db_worker = models.Worker(**worker.model_dump(), completed_jobs=0, rating=0)
    db.add(db_worker)
    db.flush()
    return db_worker


def update_worker(db: Session, worker_id: str, updates: Dict[str, Any]):
    db_worker = get_worker(db, worker_id)
    if not db_worker:
        return None

    for field, value in updates.items():
        setattr(db_worker, field, value)
    db.add(db_worker)
    db.flush()
    return db_worker


def get_business(db: Session, business_id: str):
    return db.query(models.Business).filter(models.Business.id == business_id).first()


def get_business_by_user_id(db: Session, user_id: str):
    return db.query(models.Business).filter(models.Business.user_id == user_id).first()


def create_business(db: Session, business: schemas.BusinessCreate):
    db_business = models.Business(**business.model_dump())
    db.add(db_business)
    db.flush()
    return db_business


# --- Job CRUD ---
def get_job(db: Session, job_id: str):
    return db.query(models.Job).filter(models.Job.id == job_id).first()


def get_jobs_by_business(db: Session, business_id: str):
    """Retrieves all jobs for a business, newest first."""
    return (
        db.query(models.Job)
        .filter(models.Job.business_id == business_id)
        .order_by(models.Job.created_at.desc(), models.Job.id)
        .all()
    )


def get_active_jobs(db: Session):
    return (
        db.query(models.Job)
        .filter(models.Job.is_active.is_(True))
        .order_by(models.Job.created_at, models.Job.id)
        .all()
    )


def count_active_jobs(db: Session) -> int:
    return db.query(func.count(models.Job.id)).filter(models.Job.is_active.is_(True)).scalar() or 0


def create_job(db: Session, job: schemas.JobCreate):
    db_job = models.Job(
        **job.model_dump(),
        is_boosted=False,
        boost_expires_at=None,
        is_active=True,
        created_at=schemas.utcnow(),
    )
    db.add(db_job)
    db.flush()
    return db_job


def update_job(db: Session, job_id: str, updates: Dict[str, Any]):
    db_job = get_job(db, job_id)
    if not db_job:
        return None

    for field, value in updates.items():
        setattr(db_job, field, value)
    db.add(db_job)
    db.flush()
    return db_job


def boost_job(db: Session, job_id: str, expires_at: datetime):
    db_job = get_job(db, job_id)
    if not db_job:
        return None

    db_job.is_boosted = True
    db_job.boost_expires_at = expires_at
    db.add(db_job)
    db.flush()
    return db_job


def expire_boosts(db: Session, now: datetime) -> int:
    result = db.execute(
        update(models.Job)
        .where(
            models.Job.is_boosted.is_(True),
            models.Job.boost_expires_at.is_not(None),
            models.Job.boost_expires_at <= now,
        )
        .values(is_boosted=False)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


# --- Applications ---
def get_job_applications(db: Session, job_id: str):
    return (
        db.query(models.JobApplication)
        .filter(models.JobApplication.job_id == job_id)
        .order_by(models.JobApplication.applied_at.desc())
        .all()
    )


def count_applications(db: Session, job_ids: Iterable[str]) -> int:
    job_ids = list(job_ids)
    if not job_ids:
        return 0
    return (
        db.query(func.count(models.JobApplication.id))
        .filter(models.JobApplication.job_id.in_(job_ids))
        .scalar()
        or 0
    )


def create_job_application(db: Session, job_id: str, worker_id: str):
    db_application = models.JobApplication(
        job_id=job_id,
        worker_id=worker_id,
        status="pending",
        applied_at=schemas.utcnow(),
    )
    db.add(db_application)
    db.flush()
    return db_application


# --- Payments ---
def create_payment(db: Session, payment: schemas.PaymentCreate):
    db_payment = models.Payment(
        **payment.model_dump(),
        status="completed",
        created_at=schemas.utcnow(),
    )
    db.add(db_payment)
    db.flush()
    return db_payment


def update_payment_status(db: Session, payment_id: str, status: str) -> Optional[models.Payment]:
    db_payment = db.query(models.Payment).filter(models.Payment.id == payment_id).first()
    if not db_payment:
        return None

    db_payment.status = status
    db.add(db_payment)
    db.flush()
    return db_payment


def get_payments_for_user(db: Session, user_id: str):
    return (
        db.query(models.Payment)
        .filter(models.Payment.user_id == user_id)
        .order_by(models.Payment.created_at.desc())
        .all()
    )


# --- Unlocked jobs ---
def get_unlock(db: Session, user_id: str, job_id: str):
    return (
        db.query(models.UnlockedJob)
        .filter(models.UnlockedJob.user_id == user_id, models.UnlockedJob.job_id == job_id)
        .first()
    )


def create_unlock(db: Session, user_id: str, job_id: str):
    db_unlock = models.UnlockedJob(
        user_id=user_id,
        job_id=job_id,
        unlocked_at=schemas.utcnow(),
    )
    db.add(db_unlock)
    db.flush()
    return db_unlock


def get_unlocked_jobs(db: Session, user_id: str):
    return db.query(models.UnlockedJob).filter(models.UnlockedJob.user_id == user_id).all()
