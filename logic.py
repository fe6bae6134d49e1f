from typing import List, Optional, Set

import structlog

import schemas
import stats
from errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from settings import Settings, get_settings
from storage import Storage

# Set up logging
logger = structlog.get_logger(__name__)


# --- Accounts ---
def register_user(storage: Storage, request: schemas.RegisterRequest) -> schemas.UserPublic:
    """Create the user and the worker or business profile that goes with it."""
    with storage.atomic(request.email) as uow:
        if uow.get_user_by_email(request.email):
            raise ConflictError("User already exists with this email")

        user = uow.create_user(
            schemas.UserCreate(**request.model_dump(include=set(schemas.UserCreate.model_fields)))
        )
        if request.user_type == "worker":
            uow.create_worker(
                schemas.WorkerCreate(
                    user_id=user.id,
                    skills=request.skills,
                    experience_level=request.experience_level,
                )
            )
        else:
            uow.create_business(
                schemas.BusinessCreate(
                    user_id=user.id,
                    business_name=request.business_name,
                    business_type=request.business_type,
                )
            )

    logger.info("User registered", user_id=user.id, user_type=user.user_type)
    return schemas.UserPublic.model_validate(user)


def authenticate(storage: Storage, email: str, password: str) -> schemas.UserPublic:
    user = storage.get_user_by_email(email)
    if not user or user.password != password:
        logger.info("Login rejected", email=email)
        raise AuthenticationError("Invalid credentials")
    return schemas.UserPublic.model_validate(user)


def get_user(storage: Storage, user_id: str) -> schemas.UserPublic:
    user = storage.get_user(user_id)
    if not user:
        raise NotFoundError("User not found")
    return schemas.UserPublic.model_validate(user)


def get_payments(storage: Storage, user_id: str) -> List[schemas.Payment]:
    get_user(storage, user_id)
    return storage.get_payments(user_id)


def get_unlocked_jobs(storage: Storage, user_id: str) -> List[schemas.UnlockedJob]:
    get_user(storage, user_id)
    return storage.get_unlocked_jobs(user_id)


def _sweep_boosts(storage: Storage) -> None:
    expired = storage.expire_boosts()
    if expired:
        logger.info("Boosts expired", count=expired)


# --- Job visibility ---
def redact(job: schemas.Job, preview_chars: int) -> schemas.JobView:
    """Hide contact details and cut the description down to a preview."""
    description = job.description
    if len(description) > preview_chars:
        description = description[:preview_chars] + "..."
    return schemas.JobView(
        **job.model_dump(exclude={"description", "contact_details"}),
        description=description,
        contact_details=None,
        is_unlocked=False,
    )


def present_job(
    job: schemas.Job, unlocked_ids: Set[str], gated: bool, preview_chars: int
) -> schemas.JobView:
    if gated and job.id not in unlocked_ids:
        return redact(job, preview_chars)
    return schemas.JobView(**job.model_dump(), is_unlocked=job.id in unlocked_ids or not gated)


def get_job(
    storage: Storage,
    job_id: str,
    viewer_id: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> schemas.JobView:
    """Fetch one job. A worker viewer who has not unlocked it gets the redacted copy."""
    settings = settings or get_settings()
    _sweep_boosts(storage)
    job = storage.get_job(job_id)
    if not job:
        raise NotFoundError("Job not found")

    gated = viewer_id is not None and storage.get_worker_by_user_id(viewer_id) is not None
    unlocked = {job.id} if gated and storage.is_job_unlocked(viewer_id, job.id) else set()
    return present_job(job, unlocked, gated, settings.locked_preview_chars)


def update_job(storage: Storage, job_id: str, changes: schemas.JobUpdate) -> schemas.Job:
    updates = changes.model_dump(exclude_unset=True, exclude_none=True)
    if not updates:
        raise ValidationError("No fields to update")

    job = storage.update_job(job_id, updates)
    if not job:
        raise NotFoundError("Job not found")
    logger.info("Job updated", job_id=job_id, fields=sorted(changes.model_fields_set))
    return job


def apply_to_job(storage: Storage, job_id: str, user_id: str) -> schemas.JobApplication:
    worker = storage.get_worker_by_user_id(user_id)
    if not worker:
        raise NotFoundError("Worker not found")
    job = storage.get_job(job_id)
    if not job:
        raise NotFoundError("Job not found")
    if not job.is_active:
        raise ConflictError("Job is no longer accepting applications")

    application = storage.create_job_application(job.id, worker.id)
    logger.info("Application created", job_id=job.id, worker_id=worker.id, application_id=application.id)
    return application


# --- Worker dashboard ---
def _require_worker(storage: Storage, user_id: str):
    user = storage.get_user(user_id)
    worker = storage.get_worker_by_user_id(user_id)
    if not user or not worker:
        raise NotFoundError("Worker not found")
    return user, worker


def worker_profile(storage: Storage, user_id: str) -> schemas.WorkerProfile:
    user, worker = _require_worker(storage, user_id)
    _sweep_boosts(storage)
    return schemas.WorkerProfile(
        user=schemas.UserPublic.model_validate(user),
        worker=worker,
        stats=stats.worker_stats(storage, worker),
    )


def worker_jobs(
    storage: Storage, user_id: str, settings: Optional[Settings] = None
) -> List[schemas.JobView]:
    """Ranked feed for the worker, each job flagged with its unlock status."""
    settings = settings or get_settings()
    user, worker = _require_worker(storage, user_id)
    _sweep_boosts(storage)

    jobs = storage.get_jobs_for_worker(user.location, worker.skills)
    unlocked_ids = {unlock.job_id for unlock in storage.get_unlocked_jobs(user_id)}
    return [
        present_job(job, unlocked_ids, gated=True, preview_chars=settings.locked_preview_chars)
        for job in jobs
    ]


# --- Business dashboard ---
def _require_business(storage: Storage, user_id: str):
    user = storage.get_user(user_id)
    business = storage.get_business_by_user_id(user_id)
    if not user or not business:
        raise NotFoundError("Business not found")
    return user, business


def business_profile(storage: Storage, user_id: str) -> schemas.BusinessProfile:
    user, business = _require_business(storage, user_id)
    _sweep_boosts(storage)
    return schemas.BusinessProfile(
        user=schemas.UserPublic.model_validate(user),
        business=business,
        stats=stats.business_stats(storage, business),
    )


def business_jobs(storage: Storage, user_id: str) -> List[schemas.BusinessJob]:
    """The business's jobs, newest first, with a live application count."""
    _, business = _require_business(storage, user_id)
    _sweep_boosts(storage)
    return [
        schemas.BusinessJob(
            **job.model_dump(),
            applications_count=len(storage.get_job_applications(job.id)),
        )
        for job in storage.get_jobs_by_business(business.id)
    ]
