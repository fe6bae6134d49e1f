"""Dashboard counters. Read only: nothing here writes to the store."""
import schemas
from storage import Storage


def format_rating(rating: int) -> str:
    """Ratings are stored in tenths; 48 renders as "4.8"."""
    return f"{rating / 10:.1f}"


def worker_stats(storage: Storage, worker: schemas.Worker) -> schemas.WorkerStats:
    # "Available jobs" counts every active job, not just the ones near the worker.
    return schemas.WorkerStats(
        completed_jobs=worker.completed_jobs,
        rating=worker.rating,
        rating_display=format_rating(worker.rating),
        available_jobs=storage.count_active_jobs(),
    )


def business_stats(storage: Storage, business: schemas.Business) -> schemas.BusinessStats:
    jobs = storage.get_jobs_by_business(business.id)
    return schemas.BusinessStats(
        active_jobs=sum(1 for job in jobs if job.is_active),
        boosted_jobs=sum(1 for job in jobs if job.is_active and job.is_boosted),
        completed_jobs=sum(1 for job in jobs if not job.is_active),
        applications=storage.count_applications(job.id for job in jobs),
    )
