"""Demo records for a fresh store: one worker, one business, three jobs."""
from datetime import timedelta

import structlog

import schemas
from storage import Storage

logger = structlog.get_logger(__name__)

DEMO_WORKER = {
    "name": "Rajesh Kumar",
    "email": "rajesh@example.com",
    "phone": "+91 98765 43210",
    "password": "password",
    "user_type": "worker",
    "location": "Mumbai Central",
}
DEMO_BUSINESS = {
    "name": "Sharma Construction Co.",
    "email": "sharma@example.com",
    "phone": "+91 98765 43211",
    "password": "password",
    "user_type": "business",
    "location": "Mumbai Central",
}

# (fields, hours since posting, boosted)
DEMO_JOBS = [
    (
        {
            "title": "Construction Helper Needed",
            "description": "Looking for experienced construction workers for residential project. "
            "Basic tools required. Must be reliable and punctual.",
            "work_type": "Construction",
            "location": "Mumbai Central",
            "duration": "3 days",
            "salary": "₹800/day",
            "workers_needed": 2,
            "contact_details": "Contact: Sharma Construction\nPhone: +91 98765 43211\nEmail: sharma@example.com",
        },
        2,
        True,
    ),
    (
        {
            "title": "Delivery Executive Required",
            "description": "Restaurant chain looking for reliable delivery executives. "
            "Own vehicle preferred. Flexible timing available.",
            "work_type": "Delivery",
            "location": "Mumbai Central",
            "duration": "Full-time",
            "salary": "₹15,000/month",
            "workers_needed": 3,
            "contact_details": "Contact: Restaurant Manager\nPhone: +91 98765 43212\nEmail: delivery@restaurant.com",
        },
        5,
        False,
    ),
    (
        {
            "title": "House Cleaning Service",
            "description": "Family looking for reliable house cleaning service. "
            "Flexible timing available. References required.",
            "work_type": "Cleaning",
            "location": "Mumbai Central",
            "duration": "Weekly",
            "salary": "₹2,000/week",
            "workers_needed": 1,
            "contact_details": "Contact: Mrs. Sharma\nPhone: +91 98765 43213\nEmail: housekeeping@family.com",
        },
        24,
        False,
    ),
]


def seed_demo_data(storage: Storage) -> bool:
    """Load the demo records unless the demo worker already exists."""
    if storage.get_user_by_email(DEMO_WORKER["email"]):
        return False

    worker_user = storage.create_user(schemas.UserCreate(**DEMO_WORKER))
    storage.update_user_wallet_balance(worker_user.id, 50)
    worker = storage.create_worker(
        schemas.WorkerCreate(
            user_id=worker_user.id,
            skills=["Construction", "Delivery"],
            experience_level="Intermediate (1-3 years)",
        )
    )

    business_user = storage.create_user(schemas.UserCreate(**DEMO_BUSINESS))
    storage.update_user_wallet_balance(business_user.id, 1000)
    business = storage.create_business(
        schemas.BusinessCreate(
            user_id=business_user.id,
            business_name="Sharma Construction Co.",
            business_type="Construction",
        )
    )

    now = schemas.utcnow()
    # Oldest first so insertion order matches posting order
    for fields, hours_ago, boosted in reversed(DEMO_JOBS):
        job = storage.create_job(schemas.JobCreate(**fields, business_id=business.id))
        posted_at = now - timedelta(hours=hours_ago)
        storage.update_job(job.id, {"created_at": posted_at})
        if boosted:
            storage.boost_job(job.id)

    storage.update_worker(worker.id, {"completed_jobs": 12, "rating": 48})
    logger.info("Demo data seeded", worker_user_id=worker_user.id, business_user_id=business_user.id)
    return True

