import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app import config
from app.api.v1.api import api_router
from app.core.error_handlers import register_error_handlers
from app.core.logging_config import setup_logging
from app.core.request_logging import RequestLoggingMiddleware
from app.database import engine, Base
from app.models import MedicalApplication, Query, QueryMessage, QueryAttachment, AuditLog  # noqa: F401 - register tables

setup_logging()
logger = logging.getLogger("app.main")

app = FastAPI(
    title="Medical Reimbursement Portal",
    description="Claim submission, approval pipeline and clarification queries",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

register_error_handlers(app)


@app.on_event("startup")
def on_startup():
    """Create database tables on startup."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")


app.include_router(api_router)


@app.get("/")
def health_check():
    return {"status": "ok"}
