"""Typed domain exceptions for API error mapping.

These exceptions carry a machine-readable ``code`` and map onto HTTP
status codes in the application's exception handler, so services never
import FastAPI.

Usage:
    # In the store / service layer
    raise NotFoundError("Webhook", subscription_id)

    # In a route handler
    try:
        result = await dispatcher.test_subscription(subscription_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    code = "domain_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(DomainError):
    """Resource was not found. Maps to HTTP 404."""

    code = "not_found"
    status_code = 404

    def __init__(self, resource_type: str, identifier: object) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class ValidationError(DomainError):
    """Malformed input rejected before any mutation. Maps to HTTP 400."""

    code = "validation_error"
    status_code = 400


class ConflictError(DomainError):
    """Resource conflict (e.g., duplicate session id). Maps to HTTP 409."""

    code = "conflict"
    status_code = 409


class AuthenticationError(DomainError):
    """Inbound webhook signature or secret missing or invalid. Maps to HTTP 401."""

    code = "authentication_failed"
    status_code = 401


class UpstreamError(DomainError):
    """AI or commerce-platform collaborator failed. Maps to HTTP 500."""

    code = "upstream_error"
    status_code = 500

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service} request failed: {message}")
        self.service = service


class DeliveryError(DomainError):
    """A single webhook delivery was rejected by its target.

    Raised and caught inside the dispatcher for one target only; it never
    reaches the HTTP boundary.
    """

    code = "delivery_failed"
    status_code = 502

    def __init__(self, status_code: int | None, message: str) -> None:
        super().__init__(message)
        self.response_status = status_code
