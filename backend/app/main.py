import logging
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app import config
from app.middleware.error_handler import CORSErrorMiddleware, qualification_exception_handler
from app.routes import compliance, devices, reports
from services.error_types import HVACQualificationError

config.setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="HVAC Qualification API",
    version="1.0.0",
    description="Cleanroom HVAC performance-qualification reports and compliance evaluation"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)
app.add_middleware(CORSErrorMiddleware)
app.add_exception_handler(HVACQualificationError, qualification_exception_handler)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"REQUEST: {request.method} {request.url.path}")
    response = await call_next(request)
    logger.info(f"RESPONSE: {response.status_code}")
    return response


app.include_router(reports.router, prefix="/api/v1/reports")
app.include_router(compliance.router, prefix="/api/v1/compliance")
app.include_router(devices.router, prefix="/api/v1/devices")
app.include_router(devices.calibrations_router, prefix="/api/v1/calibrations")


@app.get("/")
async def root():
    return {"message": "HVAC Qualification API is running"}


@app.get("/health")
async def health():
    return {"status": "healthy"}


@app.get("/healthz")
async def healthz():
    """Liveness probe"""
    return {
        "status": "ok",
        "timestamp": datetime.utcnow().isoformat(),
        "service": "hvac-qualification-api",
    }
