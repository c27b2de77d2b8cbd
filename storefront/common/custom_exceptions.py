from typing import Any, Dict, Optional
from fastapi import FastAPI, HTTPException, Request,status
from fastapi.exceptions import RequestValidationError
from storefront import logger
from storefront.common.utils import build_error, json_error
from storefront.common.constants import request_id_ctx


class CheckoutError(Exception):
    """Base for checkout failures that are surfaced to the caller."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "CHECKOUT_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_details(self) -> Dict[str, Any]:
        return {"message": self.message, **self.details}


class CollaboratorError(CheckoutError):
    """A storefront api call failed (transport error or non 2xx)."""
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "UPSTREAM_ERROR"

    def __init__(self, endpoint: str, status_code: Optional[int] = None, body: Any = None, message: Optional[str] = None):
        super().__init__(message or f"{endpoint} failed", details={"endpoint": endpoint})
        self.endpoint = endpoint
        self.upstream_status = status_code
        self.body = body if body is not None else {}


class AddressIncomplete(CheckoutError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "ADDRESS_INCOMPLETE"


class AddressAssignmentRequired(CheckoutError):
    status_code = status.HTTP_409_CONFLICT
    code = "ADDRESS_ASSIGNMENT_REQUIRED"


class StepTransitionError(CheckoutError):
    status_code = status.HTTP_409_CONFLICT
    code = "STEP_NOT_ALLOWED"


class SubmissionInProgress(CheckoutError):
    status_code = status.HTTP_409_CONFLICT
    code = "SUBMISSION_IN_PROGRESS"


class WalletReservationError(CheckoutError):
    code = "WALLET_RESERVATION_FAILED"


class PaymentGatewayError(CheckoutError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "PAYMENT_GATEWAY_ERROR"

    NOT_CONFIGURED = "gateway_not_configured"
    REJECTED = "gateway_rejected"
    MISSING_SESSION = "missing_session_id"
    VERIFICATION_FAILED = "verification_failed"

    def __init__(self, kind: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details={"kind": kind, **(details or {})})
        self.kind = kind


class OrderCreationError(CheckoutError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "ORDER_CREATION_FAILED"


async def checkout_exception_handler(request: Request, exc: CheckoutError):
    rid = request_id_ctx.get(None)
    logger.info(
        "checkout.error_response",
        extra={"path": request.url.path, "code": exc.code, "request_id": rid},
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
            "request_id": rid,
        },
        exc_info=exc,
    )

    payload = build_error(code="SERVER_ERROR", details=body, request_id=rid)
    return json_error(payload, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    rid = request_id_ctx.get(None)
    logger.warning(
        "request.validation_failed",
        extra={
            "errors": exc.errors(),
            "path": request.url.path,
            "request_id": rid,
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
        RequestValidationError,
        validation_exception_handler
    )

    app.add_exception_handler(
        HTTPException,
        http_exception_handler
    )

    app.add_exception_handler(
        CheckoutError,
        checkout_exception_handler
    )
