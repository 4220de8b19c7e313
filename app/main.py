from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.routes import router
from app.capture.writer import build_capture_writer
from app.config.settings import Settings, get_settings
from app.core.errors import AppError, error_response
from app.core.logging import configure_logging
from app.payment.base import PaymentAuthority
from app.payment.http_client import HTTPPaymentAuthority
from app.payment.stub import StubPaymentAuthority
from app.services.gateway_service import GatewayService
from app.version import __version__


def _build_payment_authority(settings: Settings) -> PaymentAuthority:
    mode = settings.payment_mode_normalized
    if mode == "stub":
        return StubPaymentAuthority()
    if mode == "credit":
        return HTTPPaymentAuthority(
            service_url=settings.resolved_payment_service_url,
            api_token=settings.payment_api_token,
            timeout_s=settings.payment_timeout_s,
            agent=settings.payment_agent,
            agent_id=settings.payment_agent_id,
        )
    raise RuntimeError(f"Unsupported GATEWAY_PAYMENT_MODE value: {mode}")


def create_app(
    settings: Settings | None = None,
    payment_authority: PaymentAuthority | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Metered Inference Gateway",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.state.gateway_service = GatewayService(
        settings=settings,
        payment_authority=payment_authority or _build_payment_authority(settings),
        capture_writer=build_capture_writer(settings),
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return error_response(
            exc.status_code, exc.message, getattr(request.state, "request_id", None)
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code in {404, 405}:
            return error_response(404, "Not found")
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
        return error_response(
            502, str(exc) or exc.__class__.__name__, getattr(request.state, "request_id", None)
        )

    app.include_router(router)
    return app
