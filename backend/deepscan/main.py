from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from datetime import timedelta
from typing import Optional
import time
from .config import Settings, settings as default_settings
from .logger import logger
from .exceptions import (
    DeepScanError,
    deepscan_exception_handler,
    http_exception_handler,
    generic_exception_handler,
)
from .routes import analysis, catalog
from .schemas import HealthResponse
from .service import DetectionService, build_service


def create_app(service: Optional[DetectionService] = None, settings: Settings = default_settings) -> FastAPI:
    app = FastAPI(
        title="DeepScan Media Analysis API",
        version="1.0.0",
        description="Asynchronous deepfake analysis jobs over pluggable detection models"
    )
    app.state.settings = settings
    app.state.service = service or build_service(settings)

    app.add_exception_handler(DeepScanError, deepscan_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()

        logger.info(
            f"Request: {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "query_params": dict(request.query_params),
            }
        )

        response = await call_next(request)

        duration = time.time() - start_time
        logger.info(
            f"Response: {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration * 1000, 2),
            }
        )

        return response

    @app.on_event("startup")
    async def startup():
        logger.info("Starting DeepScan API", extra={"store_backend": settings.STORE_BACKEND})
        svc: DetectionService = app.state.service
        try:
            await svc.store.init_schema()
        except Exception as e:
            logger.error(f"Failed to initialize store: {e}")
            raise

        if settings.SEED_DEFAULT_MODELS:
            await svc.seed_default_models()

        if settings.RECOVER_ON_STARTUP:
            await svc.start_recovery(
                timedelta(seconds=settings.STUCK_JOB_TIMEOUT_SECONDS),
                settings.RECOVERY_INTERVAL_SECONDS,
            )

    @app.on_event("shutdown")
    async def shutdown():
        logger.info("Shutting down DeepScan API")
        await app.state.service.shutdown()

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint"""
        return {"status": "ok", "service": "deepscan"}

    app.include_router(catalog.router)
    app.include_router(analysis.router)

    return app


app = create_app()
