"""Worker job feed: which jobs a worker sees, and in what order.

A job is visible when it is active and its location overlaps the worker's
(case-insensitive substring, either direction, so "Mumbai" and
"Mumbai Central" match each other). Visible jobs are ordered by

1. boosted before not boosted,
2. work type containing one of the worker's skills before the rest,
3. newest first.

Python's sort is stable, so jobs that tie on all three keep the order the
store handed them over in.
"""
from typing import Iterable, List, Sequence

import schemas


def location_matches(job_location: str, worker_location: str) -> bool:
    job_loc = job_location.lower()
    worker_loc = worker_location.lower()
    return worker_loc in job_loc or job_loc in worker_loc


def skill_matches(work_type: str, skills: Sequence[str]) -> bool:
    work_type = work_type.lower()
    return any(skill.lower() in work_type for skill in skills)


def visible_jobs(
    jobs: Iterable[schemas.Job], worker_location: str
) -> List[schemas.Job]:
    return [
        job
        for job in jobs
        if job.is_active and location_matches(job.location, worker_location)
    ]


def rank_jobs(
    jobs: Iterable[schemas.Job], worker_location: str, skills: Sequence[str]
) -> List[schemas.Job]:
    """Filter ``jobs`` down to what the worker can see and order them."""
    ranked = visible_jobs(jobs, worker_location)
    # Least significant key first; each pass is stable.
    ranked.sort(key=lambda job: job.created_at, reverse=True)
    ranked.sort(key=lambda job: not skill_matches(job.work_type, skills))
    ranked.sort(key=lambda job: not job.is_boosted)
    return ranked
