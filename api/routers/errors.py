from fastapi import HTTPException, status

from services.errors import (
    AlreadyPaid,
    BusinessRuleError,
    DuplicateOrderNumber,
    GatewayError,
    InsufficientBalance,
    NotFound,
    PaymentVerificationError,
    ValidationFailed,
)

DOMAIN_ERRORS = (NotFound, BusinessRuleError, ValidationFailed, PaymentVerificationError, GatewayError)


def http_error(e: Exception) -> HTTPException:
    if isinstance(e, NotFound):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, InsufficientBalance):
        code = status.HTTP_402_PAYMENT_REQUIRED
    elif isinstance(e, (AlreadyPaid, DuplicateOrderNumber)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(e, ValidationFailed):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(e, GatewayError):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(e))
