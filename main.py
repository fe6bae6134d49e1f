from contextlib import asynccontextmanager
from typing import List, Optional

import structlog
from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import billing
import logic
import schemas
from errors import MarketplaceError
from observability import init_observability
from request_id_middleware import RequestIdMiddleware
from seed import seed_demo_data
from settings import Settings, get_settings
from storage import Storage, create_storage

# Initialise observability before creating app
init_observability()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the entity store once per process and hand it to every request."""
    settings = get_settings()
    storage = create_storage(settings)
    if settings.seed_demo_data and seed_demo_data(storage):
        logger.info("Loaded demo data", backend=storage.name)
    app.state.storage = storage
    yield
    storage.close()
    logger.info("Shutting down")


app = FastAPI(
    title="Kaamwala",
    description="Job marketplace connecting informal workers with small businesses",
    version="0.1.0",
    lifespan=lifespan,
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestIdMiddleware)


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    logger.warning(
        "Request failed",
        error=type(exc).__name__,
        detail=exc.message,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/api/health", tags=["Health"])
def health(storage: Storage = Depends(get_storage)):
    return {"status": "ok", "storage": storage.name}


# --- Auth Endpoints ---
@app.post(
    "/api/register",
    response_model=schemas.AuthResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Auth"],
)
def register_endpoint(request: schemas.RegisterRequest, storage: Storage = Depends(get_storage)):
    return {"user": logic.register_user(storage, request)}


@app.post("/api/login", response_model=schemas.AuthResponse, tags=["Auth"])
def login_endpoint(credentials: schemas.LoginRequest, storage: Storage = Depends(get_storage)):
    return {"user": logic.authenticate(storage, credentials.email, credentials.password)}


# --- User Endpoints ---
@app.get("/api/user/{user_id}", response_model=schemas.UserPublic, tags=["Users"])
def get_user_endpoint(user_id: str, storage: Storage = Depends(get_storage)):
    return logic.get_user(storage, user_id)


@app.get("/api/user/{user_id}/payments", response_model=List[schemas.Payment], tags=["Users"])
def get_payments_endpoint(user_id: str, storage: Storage = Depends(get_storage)):
    return logic.get_payments(storage, user_id)


@app.get("/api/user/{user_id}/unlocked-jobs", response_model=List[schemas.UnlockedJob], tags=["Users"])
def get_unlocked_jobs_endpoint(user_id: str, storage: Storage = Depends(get_storage)):
    return logic.get_unlocked_jobs(storage, user_id)


# --- Worker Endpoints ---
@app.get("/api/worker/profile/{user_id}", response_model=schemas.WorkerProfile, tags=["Workers"])
def worker_profile_endpoint(user_id: str, storage: Storage = Depends(get_storage)):
    return logic.worker_profile(storage, user_id)


@app.get("/api/worker/jobs/{user_id}", response_model=List[schemas.JobView], tags=["Workers"])
def worker_jobs_endpoint(
    user_id: str,
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    return logic.worker_jobs(storage, user_id, settings)


# --- Business Endpoints ---
@app.get("/api/business/profile/{user_id}", response_model=schemas.BusinessProfile, tags=["Businesses"])
def business_profile_endpoint(user_id: str, storage: Storage = Depends(get_storage)):
    return logic.business_profile(storage, user_id)


@app.get("/api/business/jobs/{user_id}", response_model=List[schemas.BusinessJob], tags=["Businesses"])
def business_jobs_endpoint(user_id: str, storage: Storage = Depends(get_storage)):
    return logic.business_jobs(storage, user_id)


# --- Job Endpoints ---
@app.post("/api/jobs", response_model=schemas.Job, status_code=status.HTTP_201_CREATED, tags=["Jobs"])
def create_job_endpoint(
    job: schemas.JobPostRequest,
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    return billing.create_job(storage, job.user_id, job, boost=job.boost, settings=settings)


@app.get("/api/jobs/{job_id}", response_model=schemas.JobView, tags=["Jobs"])
def get_job_endpoint(
    job_id: str,
    viewer_id: Optional[str] = None,
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    return logic.get_job(storage, job_id, viewer_id=viewer_id, settings=settings)


@app.patch("/api/jobs/{job_id}", response_model=schemas.Job, tags=["Jobs"])
def update_job_endpoint(job_id: str, changes: schemas.JobUpdate, storage: Storage = Depends(get_storage)):
    return logic.update_job(storage, job_id, changes)


@app.post(
    "/api/jobs/{job_id}/apply",
    response_model=schemas.JobApplication,
    status_code=status.HTTP_201_CREATED,
    tags=["Jobs"],
)
def apply_endpoint(job_id: str, request: schemas.ApplyRequest, storage: Storage = Depends(get_storage)):
    return logic.apply_to_job(storage, job_id, request.user_id)


# --- Payment Endpoints ---
@app.post("/api/payments/unlock-job", response_model=schemas.PaymentResult, tags=["Payments"])
def unlock_job_endpoint(
    request: schemas.JobPaymentRequest,
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    return billing.unlock_job(storage, request.user_id, request.job_id, settings)


@app.post("/api/payments/boost-job", response_model=schemas.PaymentResult, tags=["Payments"])
def boost_job_endpoint(
    request: schemas.JobPaymentRequest,
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    return billing.boost_job(storage, request.user_id, request.job_id, settings)


@app.post("/api/payments/topup-wallet", response_model=schemas.PaymentResult, tags=["Payments"])
def topup_wallet_endpoint(request: schemas.TopUpRequest, storage: Storage = Depends(get_storage)):
    return billing.top_up_wallet(storage, request.user_id, request.amount)


# --- Main execution --- (for running with uvicorn)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
