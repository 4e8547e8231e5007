from __future__ import annotations

from typing import Any, Dict, Optional

from db.models import DuplicateOrderInfo

NETWORK_ERROR = "network"
API_ERROR = "api"
AUTH_ERROR = "auth"
DUPLICATE_ORDER = "duplicate_order"

NETWORK_MESSAGE = "Network error. Please check your internet connection."
GENERIC_MESSAGE = "An unexpected error occurred"

STATUS_MESSAGES: Dict[int, str] = {
    400: "Invalid request. Please check your input.",
    401: "Your session has expired. Please log in again.",
    403: "You do not have permission to perform this action.",
    404: "The requested resource was not found.",
    409: "This request conflicts with the current state.",
    422: "Validation failed. Please check your input.",
    429: "Too many requests. Please slow down and try again.",
    500: "Server error. Please try again later.",
    502: "Service temporarily unavailable. Please try again later.",
    503: "Service temporarily unavailable. Please try again later.",
    504: "Service temporarily unavailable. Please try again later.",
}


class ShopperError(Exception):
    """Base class for errors raised by the client's domain layer."""


class ValidationError(ShopperError, ValueError):
    """
    Raised by client-side form checks. Never reaches the network layer;
    views show the message inline and keep the form open.
    """

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field


class DuplicateOrderError(ShopperError):
    def __init__(self, info: DuplicateOrderInfo) -> None:
        super().__init__(info.message)
        self.info = info


class ApiRequestError(ShopperError):
    """Raised by services that need a hard failure from a failed ApiResult."""

    def __init__(self, message: str, status: int = 0, kind: str = API_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.kind = kind


def error_message_for(status: int, body: Any) -> str:
    """
    Pick the message shown to the user for a failed response: the fixed
    table for known statuses, then the server's own message, then a generic one.
    401 and duplicate-order 409s prefer the server's message.
    """
    server_message = body.get("message") if isinstance(body, dict) else None
    if status == 409 and isinstance(body, dict) and body.get("duplicateOrder"):
        return server_message or STATUS_MESSAGES[409]
    # a rejected login and an expired token both answer 401
    if status == 401:
        return server_message or STATUS_MESSAGES[401]
    if status in STATUS_MESSAGES:
        return STATUS_MESSAGES[status]
    if status >= 500:
        return STATUS_MESSAGES[500]
    return server_message or GENERIC_MESSAGE


def error_kind_for(status: int, body: Any) -> str:
    if status == 401:
        return AUTH_ERROR
    if isinstance(body, dict) and body.get("duplicateOrder"):
        return DUPLICATE_ORDER
    return API_ERROR
