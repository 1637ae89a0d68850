"""
Maps fulfillment error kinds onto HTTP responses.

Routes convert service errors with `to_http_exception`; main.py also
registers `fulfillment_error_handler` for anything that escapes a route.
"""
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from fulfillment.exceptions import (
    AlreadyRespondedError, ConnectorUnavailableError, DuplicateAssignmentError, FulfillmentError,
    InvalidAssignmentError, InvalidOverrideError, InvalidTransitionError, NotFoundError, ProofError,
    ThresholdValidationError, TokenExpiredError, TokenNotFoundError
)

# Most specific first
ERROR_STATUS_CODES = [
    (NotFoundError, 404),
    (DuplicateAssignmentError, 409),
    (InvalidTransitionError, 409),
    (InvalidAssignmentError, 400),
    (InvalidOverrideError, 400),
    (ThresholdValidationError, 400),
    (TokenNotFoundError, 404),
    (TokenExpiredError, 410),
    (AlreadyRespondedError, 409),
    (ProofError, 400),
]


def status_code_for(exc: FulfillmentError) -> int:
    if isinstance(exc, ConnectorUnavailableError):
        return 503 if exc.retryable else 502
    for exc_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


def to_http_exception(exc: FulfillmentError) -> HTTPException:
    return HTTPException(status_code=status_code_for(exc), detail=exc.to_dict())


async def fulfillment_error_handler(request: Request, exc: FulfillmentError):
    return JSONResponse(status_code=status_code_for(exc), content={"detail": exc.to_dict()})
