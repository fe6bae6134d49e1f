import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    phone = Column(String, nullable=False)
    password = Column(String, nullable=False)
    user_type = Column(String(16), nullable=False)  # 'worker' or 'business'
    location = Column(String, nullable=False)
    wallet_balance = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    worker = relationship("Worker", back_populates="user", uselist=False)
    business = relationship("Business", back_populates="user", uselist=False)


class Worker(Base):
    __tablename__ = "workers"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    skills = Column(JSON, nullable=False)
    experience_level = Column(String, nullable=False)
    completed_jobs = Column(Integer, default=0, nullable=False)
    rating = Column(Integer, default=0, nullable=False)  # 48 == 4.8

    user = relationship("User", back_populates="worker")


class Business(Base):
    __tablename__ = "businesses"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    business_name = Column(String, nullable=False)
    business_type = Column(String, nullable=False)

    user = relationship("User", back_populates="business")
    jobs = relationship("Job", back_populates="business")


class Job(Base):
    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, default=_new_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), index=True, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    work_type = Column(String, nullable=False)
    location = Column(String, nullable=False)
    duration = Column(String, nullable=False)
    salary = Column(String, nullable=False)
    workers_needed = Column(Integer, nullable=False)
    contact_details = Column(Text, nullable=False)
    is_boosted = Column(Boolean, default=False, nullable=False)
    boost_expires_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    business = relationship("Business", back_populates="jobs")


class JobApplication(Base):
    __tablename__ = "job_applications"

    id = Column(String(36), primary_key=True, default=_new_id)
    job_id = Column(String(36), ForeignKey("jobs.id"), index=True, nullable=False)
    worker_id = Column(String(36), ForeignKey("workers.id"), index=True, nullable=False)
    status = Column(String(16), default="pending", nullable=False)
    applied_at = Column(DateTime(timezone=True), nullable=False)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    amount = Column(Integer, nullable=False)
    type = Column(String(16), nullable=False)  # 'job_unlock', 'job_boost', 'wallet_topup'
    status = Column(String(16), default="completed", nullable=False)
    job_id = Column(String(36), ForeignKey("jobs.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class UnlockedJob(Base):
    __tablename__ = "unlocked_jobs"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    job_id = Column(String(36), ForeignKey("jobs.id"), nullable=False)
    unlocked_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "job_id", name="uq_unlocked_jobs_user_job"),
    )
