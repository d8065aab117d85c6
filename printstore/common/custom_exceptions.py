from typing import Any, Optional
from fastapi import FastAPI, HTTPException, Request,status
from fastapi.exceptions import RequestValidationError
from printstore.common.utils import build_error, json_error
from printstore.common.constants import request_id_ctx
from printstore.common.logging_setup import get_logger

logger = get_logger("printstore.errors")


class PipelineError(Exception):
    """Base for every business failure surfaced to clients as a structured reason."""
    code = "PIPELINE_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    retryable = False
    default_message = "request could not be processed"

    def __init__(self, message: Optional[str] = None, *, details: Optional[dict] = None,
                 retryable: Optional[bool] = None):
        self.message = message or self.default_message
        self.details = details or {}
        if retryable is not None:
            self.retryable = retryable
        super().__init__(self.message)

    def to_details(self) -> dict:
        body = {"message": self.message, "retryable": self.retryable}
        body.update(self.details)
        return body


class ValidationError(PipelineError):
    code = "VALIDATION_ERROR"
    default_message = "malformed or missing input"


class InvalidQuantity(ValidationError):
    code = "INVALID_QUANTITY"
    default_message = "quantity must be greater than zero"


class Unauthorized(PipelineError):
    code = "UNAUTHORIZED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "missing or invalid credentials"


class Forbidden(PipelineError):
    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "not allowed to act on this resource"


class NotFound(PipelineError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "resource not found"


class InsufficientStock(PipelineError):
    code = "INSUFFICIENT_STOCK"
    status_code = status.HTTP_409_CONFLICT
    default_message = "not enough stock"


class PromoInvalid(PipelineError):
    code = "PROMO_INVALID"
    status_code = status.HTTP_409_CONFLICT
    default_message = "promo code can no longer be redeemed"


class PaymentPreconditionFailed(PipelineError):
    code = "PRECONDITION_FAILED"
    status_code = status.HTTP_409_CONFLICT
    default_message = "payment is not permitted in the current state"


class AmountTooSmall(PipelineError):
    code = "AMOUNT_TOO_SMALL"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "payable amount is below the gateway minimum"


class SignatureMismatch(PipelineError):
    code = "SIGNATURE_MISMATCH"
    default_message = "payment verification failed - invalid signature"


class UpstreamFailure(PipelineError):
    code = "UPSTREAM_FAILURE"
    status_code = status.HTTP_502_BAD_GATEWAY
    retryable = True
    default_message = "payment gateway unavailable, retry later"


class InternalError(PipelineError):
    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "unexpected error"


async def pipeline_exception_handler(request: Request, exc: PipelineError):
    rid = request_id_ctx.get(None)
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request.pipeline_error",
        extra={
            "error_code": exc.code,
            "path": request.url.path,
            "method": request.method,
        },
    )
    payload = build_error(code=exc.code, details=exc.to_details(), request_id=rid)
    return json_error(payload, status_code=exc.status_code)


async def fallback_handler(request: Request, exc: Exception):

    rid = request_id_ctx.get(None)
    body = {"message": "Internal Server Error"}

    logger.error(
        "unexpected.exception",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=exc,
    )

    payload = build_error(code="SERVER_ERROR", details=body, request_id=rid)
    return json_error(payload, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    rid = request_id_ctx.get(None)
    errors: Any = exc.errors()
    logger.warning(
        "request.validation_failed",
        extra={
            "errors": errors,
            "path": request.url.path,
        },
    )

    payload = build_error(code="UNPROCESSABLE_ENTITY", details={"message":"invalid request"}, request_id=rid)
    return json_error(payload, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


async def http_exception_handler(request: Request, exc: HTTPException):

    rid = request_id_ctx.get(None)
    payload = build_error(code=f"HTTP_{exc.status_code}", details={"message":exc.detail}, request_id=rid)
    return json_error(payload, status_code=exc.status_code, headers=getattr(exc, "headers", None))


def register_all_exceptions(app: FastAPI):

    app.add_exception_handler(
        Exception, # catch all unidentified/unhandled exceptions
        fallback_handler
    )

    app.add_exception_handler(
        PipelineError,
        pipeline_exception_handler
    )

    app.add_exception_handler(
        RequestValidationError,
        validation_exception_handler
    )

    app.add_exception_handler(
        HTTPException,
        http_exception_handler
    )
