"""Error handling for SalesBot.

Every failure that crosses a module boundary is a ``DomainError`` subclass
with a stable ``code``:

- not_found: lookup by id or key found no record
- validation_error: malformed input at the boundary
- conflict: uniqueness invariant would be violated
- authentication_failed: inbound webhook signature rejected
- upstream_error: AI or commerce collaborator failure
- delivery_failed: one webhook target rejected a delivery
"""

from salesbot.errors.domain import (
    AuthenticationError,
    ConflictError,
    DeliveryError,
    DomainError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)

__all__ = [
    "DomainError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "AuthenticationError",
    "UpstreamError",
    "DeliveryError",
]
