from fastapi import FastAPI, Request, status
from fastapi.responses import ORJSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from bgremoval.api.v1.routes import router as v1_router
from bgremoval.core.config import Settings
from bgremoval.core.errors import BadRequest, DependencyError, EncodeError, UpstreamTimeout
from bgremoval.core.lifespan import build_lifespan
from bgremoval.core.logging import configure_logging


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Remove background from images using color matching, crop regions, "
                    "detect bounding boxes",
        version="1.0.0",
        default_response_class=ORJSONResponse,
        lifespan=build_lifespan(settings),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials="*" not in settings.cors_origin_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BadRequest)
    async def bad_request_handler(request: Request, exc: BadRequest):
        return ORJSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": str(exc)},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        # Convert ValueError to BadRequest format for consistency
        return ORJSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": str(exc)},
        )

    @app.exception_handler(EncodeError)
    async def encode_error_handler(request: Request, exc: EncodeError):
        logger.exception(f"Image encoding failed: {exc}")
        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": f"Failed to process image: {exc}"},
        )

    @app.exception_handler(DependencyError)
    async def dependency_error_handler(request: Request, exc: DependencyError):
        return ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": str(exc)},
        )

    @app.exception_handler(UpstreamTimeout)
    async def upstream_timeout_handler(request: Request, exc: UpstreamTimeout):
        return ORJSONResponse(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            content={"detail": str(exc)},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return ORJSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        # Format validation errors into a readable message
        errors = exc.errors()
        if errors:
            # Extract the first error message for clarity
            first_error = errors[0]
            field = ".".join(str(loc) for loc in first_error.get("loc", []))
            error_msg = first_error.get("msg", "Validation error")
            detail = f"Validation error for field '{field}': {error_msg}"
            if len(errors) > 1:
                detail += f" (and {len(errors) - 1} more error(s))"
        else:
            detail = "Validation error"

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": detail},
        )

    app.include_router(v1_router, prefix="/api/v1")
    return app


app = create_app()
