import logging
import os
from pathlib import Path
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stripe_gateway.routes import router
from stripe_gateway.database import Base, engine
from stripe_gateway.exceptions import (
    AuthenticationException,
    DeclineException,
    InvalidRequestException,
    InvalidResponseException,
    PaymentGatewayException,
    PreconditionError,
)

# Force-load .env (Windows-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

app = FastAPI(title="Stripe Payment Gateway")

app.include_router(router)

Base.metadata.create_all(bind=engine)

STATUS_CODES = [
    (DeclineException, 402),
    (InvalidRequestException, 400),
    (AuthenticationException, 502),
    (InvalidResponseException, 502),
]


@app.exception_handler(PaymentGatewayException)
async def payment_gateway_exception_handler(request: Request, exc: PaymentGatewayException):
    status_code = 500
    for failure_class, code in STATUS_CODES:
        if isinstance(exc, failure_class):
            status_code = code
            break
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": exc.message, "code": exc.code},
    )


@app.exception_handler(PreconditionError)
async def precondition_error_handler(request: Request, exc: PreconditionError):
    return JSONResponse(status_code=409, content={"error": "PreconditionError", "detail": str(exc)})
