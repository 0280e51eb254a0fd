import logging
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.v1.api_router import api_router
from core.config import settings
from core.database import engine, init_models
from core.exceptions import register_exception_handlers
from core.logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


app = FastAPI(
    title=settings.APP_NAME,
    description="Crowdfunding platform for social-impact campaigns",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(api_router, prefix="/api")


@app.on_event("startup")
async def startup_event():
    if settings.AUTO_CREATE_TABLES:
        await init_models()
        logger.info("Database tables ensured")
    logger.info(f"{settings.APP_NAME} API started")


@app.on_event("shutdown")
async def shutdown_event():
    await engine.dispose()
    logger.info(f"{settings.APP_NAME} API stopped")


@app.get("/api/health")
async def health_check():
    return {
        "status": "OK",
        "message": f"{settings.APP_NAME} API is running",
        "timestamp": datetime.utcnow().isoformat(),
    }
