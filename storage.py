"""Entity store: one contract, an in-memory backend and a SQL backend.

Both backends hand out pydantic models from ``schemas`` (never live ORM rows
or references into the in-memory maps), return ``None`` for lookups that miss
and raise ``errors.ConflictError`` on a duplicate email.

``Storage.atomic(user_id)`` wraps a multi-step payment sequence. In memory it
holds one of a fixed pool of locks picked by user id; in SQL it runs on one
session that commits once at the end and rolls back on any exception.
"""
from __future__ import annotations

import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

import crud
import ranking
import schemas
from database import build_engine, create_db_and_tables, make_session_factory
from errors import ConflictError
from settings import Settings

logger = structlog.get_logger(__name__)

DEFAULT_BOOST_DAYS = 30
DEFAULT_LOCK_STRIPES = 64


class Storage(ABC):
    """Storage contract shared by every backend."""

    name = "abstract"

    def __init__(self, boost_duration_days: int = DEFAULT_BOOST_DAYS) -> None:
        self.boost_duration = timedelta(days=boost_duration_days)

    # --- Users ---
    @abstractmethod
    def get_user(self, user_id: str) -> Optional[schemas.User]: ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[schemas.User]: ...

    @abstractmethod
    def create_user(self, data: schemas.UserCreate) -> schemas.User: ...

    @abstractmethod
    def update_user_wallet_balance(self, user_id: str, delta: int) -> None:
        """Add ``delta`` (may be negative). Unknown users are a silent no-op."""

    def get_user_for_update(self, user_id: str) -> Optional[schemas.User]:
        return self.get_user(user_id)

    # --- Workers ---
    @abstractmethod
    def get_worker(self, worker_id: str) -> Optional[schemas.Worker]: ...

    @abstractmethod
    def get_worker_by_user_id(self, user_id: str) -> Optional[schemas.Worker]: ...

    @abstractmethod
    def create_worker(self, data: schemas.WorkerCreate) -> schemas.Worker: ...

    @abstractmethod
    def update_worker(self, worker_id: str, updates: Dict[str, Any]) -> Optional[schemas.Worker]: ...

    # --- Businesses ---
    @abstractmethod
    def get_business(self, business_id: str) -> Optional[schemas.Business]: ...

    @abstractmethod
    def get_business_by_user_id(self, user_id: str) -> Optional[schemas.Business]: ...

    @abstractmethod
    def create_business(self, data: schemas.BusinessCreate) -> schemas.Business: ...

    # --- Jobs ---
    @abstractmethod
    def get_job(self, job_id: str) -> Optional[schemas.Job]: ...

    @abstractmethod
    def get_jobs_by_business(self, business_id: str) -> List[schemas.Job]:
        """Jobs owned by the business, newest first."""

    @abstractmethod
    def get_active_jobs(self) -> List[schemas.Job]: ...

    @abstractmethod
    def count_active_jobs(self) -> int: ...

    @abstractmethod
    def create_job(self, data: schemas.JobCreate) -> schemas.Job: ...

    @abstractmethod
    def update_job(self, job_id: str, updates: Dict[str, Any]) -> Optional[schemas.Job]:
        """Merge ``updates`` into the job; absent fields keep their value."""

    @abstractmethod
    def boost_job(self, job_id: str, now: Optional[datetime] = None) -> Optional[schemas.Job]:
        """Mark boosted until ``now`` + boost duration, resetting any earlier window."""

    @abstractmethod
    def expire_boosts(self, now: Optional[datetime] = None) -> int:
        """Clear the boost flag on jobs whose window has ended."""

    def get_jobs_for_worker(self, location: str, skills: Sequence[str]) -> List[schemas.Job]:
        return ranking.rank_jobs(self.get_active_jobs(), location, skills)

    # --- Applications ---
    @abstractmethod
    def get_job_applications(self, job_id: str) -> List[schemas.JobApplication]: ...

    @abstractmethod
    def count_applications(self, job_ids: Iterable[str]) -> int: ...

    @abstractmethod
    def create_job_application(self, job_id: str, worker_id: str) -> schemas.JobApplication: ...

    # --- Payments ---
    @abstractmethod
    def create_payment(self, data: schemas.PaymentCreate) -> schemas.Payment: ...

    @abstractmethod
    def update_payment_status(self, payment_id: str, status: str) -> None: ...

    @abstractmethod
    def get_payments(self, user_id: str) -> List[schemas.Payment]: ...

    # --- Unlocks ---
    @abstractmethod
    def is_job_unlocked(self, user_id: str, job_id: str) -> bool: ...

    @abstractmethod
    def unlock_job(self, user_id: str, job_id: str) -> schemas.UnlockedJob:
        """Record the unlock. An existing unlock for the pair is returned as is."""

    @abstractmethod
    def get_unlocked_jobs(self, user_id: str) -> List[schemas.UnlockedJob]: ...

    # --- Units of work ---
    @abstractmethod
    def atomic(self, user_id: str):
        """Context manager yielding a ``Storage`` for one payment sequence."""

    def close(self) -> None:
        pass

    def _boost_expiry(self, now: Optional[datetime]) -> datetime:
        return (now or schemas.utcnow()) + self.boost_duration


class MemoryStorage(Storage):
    """Process-local store. Records live in dicts keyed by id, in insertion order.

    Every read and write of the dicts holds ``_mutex``.
    """

    name = "memory"

    def __init__(
        self, boost_duration_days: int = DEFAULT_BOOST_DAYS, lock_stripes: int = DEFAULT_LOCK_STRIPES
    ) -> None:
        super().__init__(boost_duration_days)
        self._users: Dict[str, schemas.User] = {}
        self._workers: Dict[str, schemas.Worker] = {}
        self._businesses: Dict[str, schemas.Business] = {}
        self._jobs: Dict[str, schemas.Job] = {}
        self._applications: Dict[str, schemas.JobApplication] = {}
        self._payments: Dict[str, schemas.Payment] = {}
        self._unlocks: Dict[str, schemas.UnlockedJob] = {}

        self._mutex = threading.RLock()
        # Fixed pool: keys that never become users (unknown ids, emails) cost nothing
        self._user_locks: List[threading.Lock] = [threading.Lock() for _ in range(lock_stripes)]

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    def _lock_for(self, user_id: str) -> threading.Lock:
        return self._user_locks[hash(user_id) % len(self._user_locks)]

    # --- Users ---
    def get_user(self, user_id):
        with self._mutex:
            user = self._users.get(user_id)
            return user.model_copy() if user else None

    def get_user_by_email(self, email):
        with self._mutex:
            for user in self._users.values():
                if user.email == email:
                    return user.model_copy()
        return None

    def create_user(self, data):
        with self._mutex:
            if any(u.email == data.email for u in self._users.values()):
                raise ConflictError("User already exists with this email")
            user = schemas.User(
                **data.model_dump(),
                id=self._new_id(),
                wallet_balance=0,
                created_at=schemas.utcnow(),
            )
            self._users[user.id] = user
            return user.model_copy()

    def update_user_wallet_balance(self, user_id, delta):
        with self._mutex:
            user = self._users.get(user_id)
            if user:
                user.wallet_balance += delta

    # --- Workers ---
    def get_worker(self, worker_id):
        with self._mutex:
            worker = self._workers.get(worker_id)
            return worker.model_copy(deep=True) if worker else None

    def get_worker_by_user_id(self, user_id):
        with self._mutex:
            for worker in self._workers.values():
                if worker.user_id == user_id:
                    return worker.model_copy(deep=True)
        return None

    def create_worker(self, data):
        worker = schemas.Worker(**data.model_dump(), id=self._new_id(), completed_jobs=0, rating=0)
        with self._mutex:
            self._workers[worker.id] = worker
        return worker.model_copy(deep=True)

    def update_worker(self, worker_id, updates):
        with self._mutex:
            worker = self._workers.get(worker_id)
            if not worker:
                return None
            updated = schemas.Worker.model_validate({**worker.model_dump(), **updates})
            self._workers[worker_id] = updated
            return updated.model_copy(deep=True)

    # --- Businesses ---
    def get_business(self, business_id):
        with self._mutex:
            business = self._businesses.get(business_id)
            return business.model_copy() if business else None

    def get_business_by_user_id(self, user_id):
        with self._mutex:
            for business in self._businesses.values():
                if business.user_id == user_id:
                    return business.model_copy()
        return None

    def create_business(self, data):
        business = schemas.Business(**data.model_dump(), id=self._new_id())
        with self._mutex:
            self._businesses[business.id] = business
        return business.model_copy()

    # --- Jobs ---
    def get_job(self, job_id):
        with self._mutex:
            job = self._jobs.get(job_id)
            return job.model_copy() if job else None

    def get_jobs_by_business(self, business_id):
        with self._mutex:
            jobs = [job.model_copy() for job in self._jobs.values() if job.business_id == business_id]
        jobs.sort(key=lambda job: job.created_at, reverse=True)
        return jobs

    def get_active_jobs(self):
        with self._mutex:
            return [job.model_copy() for job in self._jobs.values() if job.is_active]

    def count_active_jobs(self):
        with self._mutex:
            return sum(1 for job in self._jobs.values() if job.is_active)

    def create_job(self, data):
        job = schemas.Job(
            **data.model_dump(),
            id=self._new_id(),
            is_boosted=False,
            boost_expires_at=None,
            is_active=True,
            created_at=schemas.utcnow(),
        )
        with self._mutex:
            self._jobs[job.id] = job
        return job.model_copy()

    def update_job(self, job_id, updates):
        with self._mutex:
            job = self._jobs.get(job_id)
            if not job:
                return None
            updated = schemas.Job.model_validate({**job.model_dump(), **updates})
            self._jobs[job_id] = updated
            return updated.model_copy()

    def boost_job(self, job_id, now=None):
        return self.update_job(
            job_id, {"is_boosted": True, "boost_expires_at": self._boost_expiry(now)}
        )

    def expire_boosts(self, now=None):
        now = now or schemas.utcnow()
        expired = 0
        with self._mutex:
            for job in self._jobs.values():
                if job.is_boosted and job.boost_expires_at and job.boost_expires_at <= now:
                    job.is_boosted = False
                    expired += 1
        return expired

    # --- Applications ---
    def get_job_applications(self, job_id):
        with self._mutex:
            applications = [a.model_copy() for a in self._applications.values() if a.job_id == job_id]
        applications.sort(key=lambda a: a.applied_at, reverse=True)
        return applications

    def count_applications(self, job_ids):
        job_ids = set(job_ids)
        with self._mutex:
            return sum(1 for a in self._applications.values() if a.job_id in job_ids)

    def create_job_application(self, job_id, worker_id):
        application = schemas.JobApplication(
            id=self._new_id(),
            job_id=job_id,
            worker_id=worker_id,
            status="pending",
            applied_at=schemas.utcnow(),
        )
        with self._mutex:
            self._applications[application.id] = application
        return application.model_copy()

    # --- Payments ---
    def create_payment(self, data):
        payment = schemas.Payment(
            **data.model_dump(),
            id=self._new_id(),
            status="completed",
            created_at=schemas.utcnow(),
        )
        with self._mutex:
            self._payments[payment.id] = payment
        return payment.model_copy()

    def update_payment_status(self, payment_id, status):
        with self._mutex:
            payment = self._payments.get(payment_id)
            if payment:
                self._payments[payment_id] = payment.model_copy(update={"status": status})

    def get_payments(self, user_id):
        with self._mutex:
            payments = [p.model_copy() for p in self._payments.values() if p.user_id == user_id]
        payments.sort(key=lambda p: p.created_at, reverse=True)
        return payments

    # --- Unlocks ---
    def is_job_unlocked(self, user_id, job_id):
        with self._mutex:
            return any(u.user_id == user_id and u.job_id == job_id for u in self._unlocks.values())

    def unlock_job(self, user_id, job_id):
        with self._mutex:
            for unlock in self._unlocks.values():
                if unlock.user_id == user_id and unlock.job_id == job_id:
                    return unlock.model_copy()
            unlock = schemas.UnlockedJob(
                id=self._new_id(),
                user_id=user_id,
                job_id=job_id,
                unlocked_at=schemas.utcnow(),
            )
            self._unlocks[unlock.id] = unlock
            return unlock.model_copy()

    def get_unlocked_jobs(self, user_id):
        with self._mutex:
            return [u.model_copy() for u in self._unlocks.values() if u.user_id == user_id]

    # --- Units of work ---
    @contextmanager
    def atomic(self, user_id: str) -> Iterator["MemoryStorage"]:
        # Users sharing a stripe serialize against each other; atomic() never nests
        with self._lock_for(user_id):
            yield self


class SqlStorage(Storage):
    """SQLAlchemy-backed store.

    Outside ``atomic()`` every call runs in its own short session and commits
    straight away. Inside ``atomic()`` calls share the bound session.
    """

    name = "sql"

    def __init__(
        self,
        session_factory: sessionmaker,
        boost_duration_days: int = DEFAULT_BOOST_DAYS,
        session: Optional[Session] = None,
    ) -> None:
        super().__init__(boost_duration_days)
        self._session_factory = session_factory
        self._bound = session

    @classmethod
    def from_url(cls, database_url: str, boost_duration_days: int = DEFAULT_BOOST_DAYS) -> "SqlStorage":
        engine = build_engine(database_url)
        create_db_and_tables(engine)
        return cls(make_session_factory(engine), boost_duration_days)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        if self._bound is not None:
            yield self._bound
            return

        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @contextmanager
    def atomic(self, user_id: str) -> Iterator["SqlStorage"]:
        if self._bound is not None:
            yield self
            return

        db = self._session_factory()
        try:
            yield SqlStorage(self._session_factory, self.boost_duration.days, session=db)
            db.commit()
        except Exception:
            db.rollback()
            logger.warning("Rolled back payment sequence", user_id=user_id)
            raise
        finally:
            db.close()

    def close(self) -> None:
        engine = self._session_factory.kw.get("bind")
        if engine is not None and self._bound is None:
            engine.dispose()

    @staticmethod
    def _one(model, row):
        return model.model_validate(row) if row is not None else None

    # --- Users ---
    def get_user(self, user_id):
        with self._session() as db:
            return self._one(schemas.User, crud.get_user_by_id(db, user_id))

    def get_user_for_update(self, user_id):
        with self._session() as db:
            return self._one(schemas.User, crud.get_user_by_id(db, user_id, for_update=True))

    def get_user_by_email(self, email):
        with self._session() as db:
            return self._one(schemas.User, crud.get_user_by_email(db, email))

    def create_user(self, data):
        with self._session() as db:
            if crud.get_user_by_email(db, data.email):
                raise ConflictError("User already exists with this email")
            try:
                db_user = crud.create_user(db, data)
            except IntegrityError as exc:
                raise ConflictError("User already exists with this email") from exc
            return schemas.User.model_validate(db_user)

    def update_user_wallet_balance(self, user_id, delta):
        with self._session() as db:
            crud.adjust_wallet_balance(db, user_id, delta)

    # --- Workers ---
    def get_worker(self, worker_id):
        with self._session() as db:
            return self._one(schemas.Worker, crud.get_worker(db, worker_id))

    def get_worker_by_user_id(self, user_id):
        with self._session() as db:
            return self._one(schemas.Worker, crud.get_worker_by_user_id(db, user_id))

    def create_worker(self, data):
        with self._session() as db:
            return schemas.Worker.model_validate(crud.create_worker(db, data))

    def update_worker(self, worker_id, updates):
        with self._session() as db:
            return self._one(schemas.Worker, crud.update_worker(db, worker_id, updates))

    # --- Businesses ---
    def get_business(self, business_id):
        with self._session() as db:
            return self._one(schemas.Business, crud.get_business(db, business_id))

    def get_business_by_user_id(self, user_id):
        with self._session() as db:
            return self._one(schemas.Business, crud.get_business_by_user_id(db, user_id))

    def create_business(self, data):
        with self._session() as db:
            return schemas.Business.model_validate(crud.create_business(db, data))

    # --- Jobs ---
    def get_job(self, job_id):
        with self._session() as db:
            return self._one(schemas.Job, crud.get_job(db, job_id))

    def get_jobs_by_business(self, business_id):
        with self._session() as db:
            return [schemas.Job.model_validate(j) for j in crud.get_jobs_by_business(db, business_id)]

    def get_active_jobs(self):
        with self._session() as db:
            return [schemas.Job.model_validate(j) for j in crud.get_active_jobs(db)]

    def count_active_jobs(self):
        with self._session() as db:
            return crud.count_active_jobs(db)

    def create_job(self, data):
        with self._session() as db:
            return schemas.Job.model_validate(crud.create_job(db, data))

    def update_job(self, job_id, updates):
        with self._session() as db:
            return self._one(schemas.Job, crud.update_job(db, job_id, updates))

    def boost_job(self, job_id, now=None):
        with self._session() as db:
            return self._one(schemas.Job, crud.boost_job(db, job_id, self._boost_expiry(now)))

    def expire_boosts(self, now=None):
        with self._session() as db:
            return crud.expire_boosts(db, now or schemas.utcnow())

    # --- Applications ---
    def get_job_applications(self, job_id):
        with self._session() as db:
            return [schemas.JobApplication.model_validate(a) for a in crud.get_job_applications(db, job_id)]

    def count_applications(self, job_ids):
        with self._session() as db:
            return crud.count_applications(db, job_ids)

    def create_job_application(self, job_id, worker_id):
        with self._session() as db:
            return schemas.JobApplication.model_validate(
                crud.create_job_application(db, job_id, worker_id)
            )

    # --- Payments ---
    def create_payment(self, data):
        with self._session() as db:
            return schemas.Payment.model_validate(crud.create_payment(db, data))

    def update_payment_status(self, payment_id, status):
        with self._session() as db:
            crud.update_payment_status(db, payment_id, status)

    def get_payments(self, user_id):
        with self._session() as db:
            return [schemas.Payment.model_validate(p) for p in crud.get_payments_for_user(db, user_id)]

    # --- Unlocks ---
    def is_job_unlocked(self, user_id, job_id):
        with self._session() as db:
            return crud.get_unlock(db, user_id, job_id) is not None

    def unlock_job(self, user_id, job_id):
        with self._session() as db:
            existing = crud.get_unlock(db, user_id, job_id)
            if existing is not None:
                return schemas.UnlockedJob.model_validate(existing)
            return schemas.UnlockedJob.model_validate(crud.create_unlock(db, user_id, job_id))

    def get_unlocked_jobs(self, user_id):
        with self._session() as db:
            return [schemas.UnlockedJob.model_validate(u) for u in crud.get_unlocked_jobs(db, user_id)]


def create_storage(settings: Settings) -> Storage:
    """Build the store named by ``settings.storage_backend``."""
    if settings.storage_backend == "sql":
        storage: Storage = SqlStorage.from_url(settings.database_url, settings.boost_duration_days)
    else:
        storage = MemoryStorage(settings.boost_duration_days)

    logger.info("Storage initialized", backend=storage.name)
    return storage
