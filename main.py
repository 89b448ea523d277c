from contextlib import asynccontextmanager
from typing import List, Optional

import structlog
import uvicorn

# Internal Imports
from core.config import settings
from core.dependencies import get_auth_service, get_bucket_service, get_model_service
from core.exceptions import (
    BackendUnavailableError,
    ClientInputError,
    DecodeError,
    NameConflictError,
    NotFoundError,
    PermissionDeniedError,
    ViewerError,
)
from core.logging import configure_logging
from core.telemetry import setup_telemetry
from domain.models import BucketNameRequest, DeleteBucketResult, NamedUrn, TranslationStatus, ViewerToken
from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from services.auth_service import AuthService
from services.bucket_service import BucketService
from services.model_service import ModelService

# 1. Configure Logging
configure_logging(json_logs=(settings.ENV == "production"), log_level=settings.LOG_LEVEL)
logger = structlog.get_logger()


# 2. Lifespan (Startup/Shutdown)
@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.ENABLE_TRACING:
        setup_telemetry()
    logger.info("startup_initiated", env=settings.ENV, default_bucket=settings.DEFAULT_BUCKET)

    yield

    logger.info("shutdown_initiated")


# 3. Create Main App
app = FastAPI(title=settings.APP_NAME, lifespan=lifespan, version="1.0.0")


# 4. Exception Handlers
def _error_response(status_code: int, exc: ViewerError) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": exc.message})


@app.exception_handler(ClientInputError)
async def client_input_handler(request: Request, exc: ClientInputError):
    return _error_response(400, exc)


@app.exception_handler(DecodeError)
async def decode_error_handler(request: Request, exc: DecodeError):
    return _error_response(400, exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"success": False, "error": "Invalid request body."})


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(request: Request, exc: PermissionDeniedError):
    return _error_response(403, exc)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error_response(404, exc)


@app.exception_handler(NameConflictError)
async def name_conflict_handler(request: Request, exc: NameConflictError):
    return JSONResponse(
        status_code=409,
        content={"success": False, "error": exc.message, "suggestions": exc.suggestions},
    )


@app.exception_handler(BackendUnavailableError)
async def backend_unavailable_handler(request: Request, exc: BackendUnavailableError):
    logger.error("backend_unavailable", error=exc.message, upstream_status=exc.status_code, path=request.url.path)
    return _error_response(502, exc)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled_exception", error=str(exc), path=request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "message": "An unexpected error occurred.",
        },
    )


# 5. REST Endpoints
@app.get("/api/auth/token", response_model=ViewerToken)
async def viewer_token_endpoint(service: AuthService = Depends(get_auth_service)) -> ViewerToken:
    return await service.get_viewer_token()


@app.get("/api/buckets", response_model=List[NamedUrn])
async def list_buckets_endpoint(service: BucketService = Depends(get_bucket_service)) -> List[NamedUrn]:
    return await service.list_buckets()


@app.post("/api/buckets", response_model=NamedUrn)
async def create_bucket_endpoint(
    body: BucketNameRequest, service: BucketService = Depends(get_bucket_service)
) -> NamedUrn:
    return await service.create_bucket(body.bucketName)


@app.delete("/api/buckets", response_model=DeleteBucketResult)
async def delete_bucket_endpoint(
    body: BucketNameRequest, service: BucketService = Depends(get_bucket_service)
) -> DeleteBucketResult:
    return await service.delete_bucket(body.bucketName)


@app.get("/api/models", response_model=List[NamedUrn])
async def list_models_endpoint(
    bucket: Optional[str] = None, service: ModelService = Depends(get_model_service)
) -> List[NamedUrn]:
    """
    Models of the bucket given as urn, or of the default bucket.
    """
    return await service.list_models(bucket)


@app.get("/api/models/{urn}/status", response_model=TranslationStatus, response_model_exclude_none=True)
async def model_status_endpoint(urn: str, service: ModelService = Depends(get_model_service)) -> TranslationStatus:
    return await service.get_status(urn)


@app.post("/api/models", response_model=NamedUrn)
async def upload_model_endpoint(
    model_file: Optional[UploadFile] = File(None, alias="model-file"),
    bucket_urn: Optional[str] = Form(None, alias="bucket-urn"),
    zip_entrypoint: Optional[str] = Form(None, alias="model-zip-entrypoint"),
    service: ModelService = Depends(get_model_service),
) -> NamedUrn:
    """
    Upload a model and queue its translation.
    """
    if model_file is None:
        raise ClientInputError("The required field 'model-file' is missing.")

    data = await model_file.read()
    return await service.upload_model(model_file.filename, data, bucket_urn or None, zip_entrypoint or None)


@app.get("/health")
def health_check():
    return {"status": "ok", "env": settings.ENV}


# 6. Viewer page (mounted last so /api routes win)
if settings.STATIC_DIR.is_dir():
    app.mount("/", StaticFiles(directory=settings.STATIC_DIR, html=True), name="static")


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=settings.PORT)
