from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from merchant_payments.database import Base, engine
from merchant_payments.errors import PaymentServiceError
from merchant_payments.events import get_publisher
from merchant_payments.gateway import get_gateway
from merchant_payments.log import setup_logging
from merchant_payments.routes import router

setup_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("service_started")
    yield
    await get_gateway().close()
    await get_publisher().close()
    logger.info("service_stopped")


app = FastAPI(title="Merchant Payments Service", lifespan=lifespan)

app.include_router(router)


@app.exception_handler(PaymentServiceError)
async def payment_error_handler(request: Request, exc: PaymentServiceError):
    logger.info(
        "request_failed",
        path=request.url.path,
        error=exc.kind,
        status_code=exc.status_code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.kind, "message": exc.message},
    )


@app.get("/health/liveness")
def liveness():
    return {"status": "ok"}


@app.get("/health")
@app.get("/health/readiness")
def health():
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("health_check_failed", error=str(e))
        return JSONResponse(status_code=503, content={"status": "error", "database": "down"})
    return {"status": "ok", "database": "up"}
