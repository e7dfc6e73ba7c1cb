from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tixledger.api.v1.router import api_router
from tixledger.core.config import settings
from tixledger.core.exceptions import BillingError, InsufficientBalanceError
from tixledger.core.logging import setup_logging
from tixledger.core.middleware import CorrelationIdMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    yield


async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    body = {"detail": exc.detail}
    if isinstance(exc, InsufficientBalanceError):
        body["required"] = exc.required
        body["available"] = exc.available
    logger.info("billing.request_rejected", error=type(exc).__name__, detail=exc.detail, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content=body)


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        lifespan=lifespan,
    )

    # Middleware (last added = outermost = runs first)
    # CorrelationId must be inner so CORS handles OPTIONS preflight first
    application.add_middleware(CorrelationIdMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(BillingError, billing_error_handler)

    # Routes
    application.include_router(api_router)

    return application


app = create_app()
