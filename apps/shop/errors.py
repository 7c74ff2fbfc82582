"""HTTP mapping for domain errors (wired through REST_FRAMEWORK["EXCEPTION_HANDLER"])."""
from django.core.exceptions import ObjectDoesNotExist
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from .exceptions import (
    ConcurrencyTimeoutError,
    DomainError,
    EmptyOrderError,
    IllegalDeleteError,
    InsufficientStockError,
    InvalidQuantityError,
    InvalidTransitionError,
    ProductInUseError,
    UnknownAddressError,
    UnknownCustomerError,
    UnknownSkuError,
)

STATUS_BY_ERROR = {
    EmptyOrderError: status.HTTP_400_BAD_REQUEST,
    InvalidQuantityError: status.HTTP_400_BAD_REQUEST,
    UnknownSkuError: status.HTTP_404_NOT_FOUND,
    UnknownCustomerError: status.HTTP_404_NOT_FOUND,
    UnknownAddressError: status.HTTP_404_NOT_FOUND,
    InsufficientStockError: status.HTTP_409_CONFLICT,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    IllegalDeleteError: status.HTTP_409_CONFLICT,
    ProductInUseError: status.HTTP_409_CONFLICT,
    ConcurrencyTimeoutError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def exception_handler(exc, context):
    if isinstance(exc, DomainError):
        code = STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
        return Response({"error": exc.code, "detail": str(exc)}, status=code)
    if isinstance(exc, ObjectDoesNotExist):
        return Response({"error": "not_found", "detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
    return drf_exception_handler(exc, context)
