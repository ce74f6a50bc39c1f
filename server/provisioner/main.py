"""Main application entry point."""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request

from .api.routes import router
from .core.config import settings
from .core.config_validation import run_config_checks
from .core.models import HttpResponseEvent
from .services.job_service import job_service
from .services.task_bus import task_bus

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

NODE_ID_QUERY_PARAM = "nodeId"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting %s", settings.app_name)
    logger.info("Environment: %s", settings.environment_name)
    logger.info("Debug mode: %s", settings.debug)

    config_result = run_config_checks()

    if config_result.has_errors:
        for issue in config_result.errors:
            logger.error("Configuration error: %s", issue.message)
            if issue.hint:
                logger.error("Hint: %s", issue.hint)

    if config_result.has_warnings:
        for issue in config_result.warnings:
            logger.warning("Configuration warning: %s", issue.message)
            if issue.hint:
                logger.warning("Hint: %s", issue.hint)

    job_started = False
    if not config_result.has_errors:
        await job_service.start()
        job_started = True
        logger.info("Application services initialised")
    else:
        logger.error(
            "Skipping job service startup because configuration errors were detected."
        )

    try:
        yield
    finally:
        logger.info("Shutting down application")
        if job_started:
            await job_service.stop()
        logger.info("Application stopped")


app = FastAPI(
    title=settings.app_name,
    description="Bare-metal provisioning jobs: OS installs and IPMI telemetry",
    lifespan=lifespan,
)


@app.middleware("http")
async def node_response_middleware(request: Request, call_next):
    """Audit-log requests and notify jobs about responses served to their node."""
    start_time = time.time()
    client_ip = request.client.host if request.client else "unknown"
    logger.info(
        "Request started: %s %s from %s", request.method, request.url.path, client_ip
    )

    try:
        response = await call_next(request)
    except Exception as e:
        process_time = time.time() - start_time
        logger.error(
            "Request failed: %s %s Error: %s Time: %.4fs",
            request.method, request.url.path, str(e)[:200], process_time,
        )
        raise

    process_time = time.time() - start_time
    logger.info(
        "Request completed: %s %s Status: %s Time: %.4fs",
        request.method, request.url.path, response.status_code, process_time,
    )

    node_id = request.query_params.get(NODE_ID_QUERY_PARAM)
    if node_id:
        await task_bus.publish_http_response(
            HttpResponseEvent(
                status_code=response.status_code,
                url=str(request.url),
                node_id=node_id,
                method=request.method,
            )
        )

    return response


# Include API routes
app.include_router(router)


def main():
    """Run the application."""
    uvicorn.run(
        "provisioner.main:app",
        host="0.0.0.0",
        port=8000,
        log_level="debug" if settings.debug else "info",
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
