import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from canteen.cashfree_service import CashfreeClient
from canteen.config import Settings
from canteen.database import Base, make_engine, make_session_factory
from canteen.errors import GatewayError, InvalidWebhookSignature, PersistenceError, ValidationError
from canteen.orders import OrderService
from canteen.routes import router
from canteen.store import OrderStore

logger = logging.getLogger(__name__)

FAILURE_MESSAGES = {
    "/api/create-order": "Create order failed",
    "/api/verify-order": "Verify failed",
}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def bad_request_body(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid request"})

    @app.exception_handler(InvalidWebhookSignature)
    async def bad_signature(request: Request, exc: InvalidWebhookSignature):
        return JSONResponse(status_code=400, content={"error": exc.message})

    @app.exception_handler(GatewayError)
    async def gateway_error(request: Request, exc: GatewayError):
        error = FAILURE_MESSAGES.get(request.url.path, "Payment gateway error")
        logger.error("%s: %s", error, exc.details)
        return JSONResponse(status_code=500, content={"error": error, "details": exc.details})

    @app.exception_handler(PersistenceError)
    async def persistence_error(request: Request, exc: PersistenceError):
        logger.error("persistence failure on %s: %s", request.url.path, exc.message, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail},
                            headers=getattr(exc, "headers", None))


def create_app(settings: Optional[Settings] = None, gateway=None, session_factory=None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if session_factory is None:
        engine = make_engine(settings.database_url)
        Base.metadata.create_all(bind=engine)
        session_factory = make_session_factory(engine)

    app = FastAPI(title="College Canteen Orders")
    app.state.settings = settings
    app.state.order_service = OrderService(
        settings,
        gateway or CashfreeClient(settings),
        OrderStore(session_factory),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(router)

    logger.info("canteen api ready env=%s public_base_url=%s",
                settings.cashfree_env, settings.public_base_url)
    return app


def main() -> None:
    settings = Settings.from_env()
    uvicorn.run("canteen.main:create_app", factory=True, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
