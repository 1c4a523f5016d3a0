"""
Module: main.py
Description: FastAPI application entry point for the email queue processor.

Initializes the FastAPI application with the processing routes,
permissive CORS handling and error handlers, and exposes the Mangum
handler for API Gateway.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from mangum import Mangum

from email_queue.config.settings import settings
from email_queue.handlers.cors import CORS_HEADERS, cors_middleware
from email_queue.handlers.process_queue import router as queue_router
from email_queue.utils.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting email queue processor",
        version=settings.app_version,
        stage=settings.stage,
        region=settings.aws_region
    )
    yield
    logger.info("Shutting down email queue processor")


app = FastAPI(
    title=settings.app_name,
    description="Drains the outbound email queue and dispatches messages to the delivery provider",
    version=settings.app_version,
    lifespan=lifespan
)

app.middleware("http")(cors_middleware)
app.include_router(queue_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    logger.info("Health check requested")

    return {
        "status": "ok",
        "message": "Email queue processor is healthy",
        "version": settings.app_version,
        "environment": settings.stage
    }


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
        for error in exc.errors()
    ]


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return request validation problems as 400."""
    logger.warning(
        "Request validation failed",
        errors=str(exc.errors()),
        path=request.url.path
    )

    return JSONResponse(
        status_code=400,
        content={
            "error": {
                "code": 400,
                "message": "Invalid request body",
                "type": "validation_error",
                "details": jsonable_errors(exc)
            }
        }
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Log HTTP exceptions and return structured error responses."""
    logger.warning(
        "HTTP exception occurred",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.status_code,
                "message": exc.detail,
                "type": "http_exception"
            }
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Log unexpected exceptions and return a generic 500."""
    logger.error(
        "Unhandled exception occurred",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method
    )

    # Runs outside the middleware stack, so headers are added here
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": 500,
                "message": "Internal server error",
                "type": "internal_error"
            }
        },
        headers=CORS_HEADERS
    )


# Lambda handler
handler = Mangum(app, lifespan="off")
