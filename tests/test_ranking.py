import uuid
from datetime import datetime, timedelta, timezone

import pytest

import ranking
import schemas

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


def make_job(title: str, hours_ago: int = 0, **overrides) -> schemas.Job:
    fields = {
        "id": str(uuid.uuid4()),
        "business_id": "business-1",
        "title": title,
        "description": f"{title} description",
        "work_type": "General",
        "location": "Mumbai",
        "duration": "1 day",
        "salary": "₹500/day",
        "workers_needed": 1,
        "contact_details": "Call us",
        "created_at": NOW - timedelta(hours=hours_ago),
    }
    fields.update(overrides)
    return schemas.Job(**fields)


@pytest.mark.parametrize(
    "job_location, worker_location",
    [
        ("Mumbai", "Mumbai Central"),
        ("Mumbai Central", "Mumbai"),
        ("mumbai central", "MUMBAI"),
        ("Andheri", "Andheri"),
    ],
)
def test_location_matches_in_either_direction(job_location, worker_location):
    assert ranking.location_matches(job_location, worker_location)


def test_location_mismatch():
    assert not ranking.location_matches("Pune", "Mumbai Central")


def test_skill_match_is_case_insensitive_substring():
    assert ranking.skill_matches("Food Delivery", ["Delivery"])
    assert ranking.skill_matches("FOOD DELIVERY", ["delivery"])
    assert not ranking.skill_matches("Construction", ["Delivery", "Cleaning"])
    assert not ranking.skill_matches("Construction", [])


def test_inactive_jobs_are_never_returned():
    active = make_job("Active")
    inactive = make_job("Closed", is_active=False)

    ranked = ranking.rank_jobs([inactive, active], "Mumbai", ["General"])

    assert [job.title for job in ranked] == ["Active"]


def test_jobs_elsewhere_are_filtered_out():
    near = make_job("Near", location="Mumbai Central")
    far = make_job("Far", location="Pune")

    ranked = ranking.rank_jobs([near, far], "Mumbai", [])

    assert [job.title for job in ranked] == ["Near"]


def test_boosted_job_without_skill_match_beats_unboosted_match():
    boosted = make_job("Boosted", work_type="Construction", is_boosted=True, hours_ago=10)
    matching = make_job("Matching", work_type="Food Delivery", hours_ago=1)

    ranked = ranking.rank_jobs([matching, boosted], "Mumbai Central", ["Delivery"])

    assert [job.title for job in ranked] == ["Boosted", "Matching"]


def test_full_ordering_boost_then_skill_then_newest():
    jobs = [
        make_job("plain-old", hours_ago=30),
        make_job("skill-old", work_type="Delivery", hours_ago=20),
        make_job("boosted-plain-new", is_boosted=True, hours_ago=1),
        make_job("plain-new", hours_ago=2),
        make_job("boosted-skill-old", work_type="Delivery", is_boosted=True, hours_ago=50),
        make_job("skill-new", work_type="Bike Delivery", hours_ago=3),
        make_job("boosted-plain-old", is_boosted=True, hours_ago=40),
    ]

    ranked = ranking.rank_jobs(jobs, "Mumbai", ["delivery"])

    assert [job.title for job in ranked] == [
        "boosted-skill-old",
        "boosted-plain-new",
        "boosted-plain-old",
        "skill-new",
        "skill-old",
        "plain-new",
        "plain-old",
    ]


def test_full_ties_keep_input_order():
    first = make_job("first")
    second = make_job("second")
    third = make_job("third")

    ranked = ranking.rank_jobs([first, second, third], "Mumbai", [])
    again = ranking.rank_jobs([first, second, third], "Mumbai", [])

    assert [job.title for job in ranked] == ["first", "second", "third"]
    assert [job.id for job in again] == [job.id for job in ranked]


def test_rank_does_not_mutate_input():
    jobs = [make_job("old", hours_ago=5), make_job("new", hours_ago=1)]
    original = list(jobs)

    ranking.rank_jobs(jobs, "Mumbai", [])

    assert jobs == original
