"""Entity records, drafts and partial-update patches for the in-memory store.

Records are frozen dataclasses: the store hands out snapshots and replaces
a record wholesale on update, so a caller holding a record never sees it
change underneath them. Relationships are plain integer foreign keys
resolved by lookup.

Each entity kind has three shapes:

- ``XDraft``: caller-supplied fields for creation (no id, no timestamps).
- ``X``: the stored record.
- ``XPatch``: every mutable field defaulting to ``UNSET``; only fields that
  are set are merged by ``apply_patch``. Blob fields (context, metadata,
  line items) are replaced wholesale, never deep-merged.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, TypeVar

_CENTS = Decimal("0.01")


def utc_now() -> datetime:
    """Current UTC time as an aware datetime."""
    return datetime.now(UTC)


def to_money(value: Decimal | float | int | str) -> Decimal:
    """Coerce a numeric value to a Decimal with two fraction digits.

    Args:
        value: Decimal, int, float or numeric string.

    Returns:
        Decimal quantized to cents.

    Raises:
        ValueError: If the value is not numeric.
    """
    try:
        # str() first so floats like 19.99 don't carry binary noise
        return Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise ValueError(f"Not a decimal amount: {value!r}") from None


class _Unset:
    """Marker for patch fields that were not supplied."""

    _instance = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


class ConversationStatus(str, Enum):
    """Conversation lifecycle values. No transition graph is enforced."""

    active = "active"
    completed = "completed"
    escalated = "escalated"


class MessageRole(str, Enum):
    """Author of a message."""

    user = "user"
    assistant = "assistant"
    system = "system"


class RecommendationType(str, Enum):
    """How a recommended product relates to the customer's request."""

    cross_sell = "cross_sell"
    upsell = "upsell"
    primary = "primary"


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConversationDraft:
    session_id: str
    customer_id: str | None = None
    customer_name: str | None = None
    status: str = ConversationStatus.active.value
    last_message: str | None = None
    context: dict | None = None

    def __post_init__(self) -> None:
        if not self.session_id:
            raise ValueError("session_id is required")


@dataclass(frozen=True)
class Conversation:
    id: int
    session_id: str
    customer_id: str | None
    customer_name: str | None
    status: str
    last_message: str | None
    context: dict | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class ConversationPatch:
    customer_id: str | None = UNSET
    customer_name: str | None = UNSET
    status: str = UNSET
    last_message: str | None = UNSET
    context: dict | None = UNSET


# ---------------------------------------------------------------------------
# Message
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MessageDraft:
    conversation_id: int
    role: str
    content: str
    metadata: dict | None = None

    def __post_init__(self) -> None:
        if self.role not in {r.value for r in MessageRole}:
            raise ValueError(f"Invalid message role: {self.role!r}")


@dataclass(frozen=True)
class Message:
    id: int
    conversation_id: int
    role: str
    content: str
    metadata: dict | None
    timestamp: datetime


# ---------------------------------------------------------------------------
# Product
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProductDraft:
    title: str
    price: Decimal
    external_id: str | None = None
    description: str | None = None
    compare_at_price: Decimal | None = None
    category: str | None = None
    tags: tuple[str, ...] = ()
    inventory: int = 0
    image_url: str | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        price = to_money(self.price)
        if price < 0:
            raise ValueError(f"Product price must be non-negative, got {price}")
        object.__setattr__(self, "price", price)
        if self.compare_at_price is not None:
            object.__setattr__(self, "compare_at_price", to_money(self.compare_at_price))
        object.__setattr__(self, "tags", tuple(self.tags))


@dataclass(frozen=True)
class Product:
    id: int
    external_id: str | None
    title: str
    description: str | None
    price: Decimal
    compare_at_price: Decimal | None
    category: str | None
    tags: tuple[str, ...]
    inventory: int
    image_url: str | None
    is_active: bool
    synced_at: datetime


@dataclass(frozen=True)
class ProductPatch:
    external_id: str | None = UNSET
    title: str = UNSET
    description: str | None = UNSET
    price: Decimal = UNSET
    compare_at_price: Decimal | None = UNSET
    category: str | None = UNSET
    tags: tuple[str, ...] = UNSET
    inventory: int = UNSET
    image_url: str | None = UNSET
    is_active: bool = UNSET

    @classmethod
    def from_draft(cls, draft: ProductDraft) -> "ProductPatch":
        """Patch that overwrites every product field with the draft's values."""
        return cls(**{f.name: getattr(draft, f.name) for f in fields(draft)})


# ---------------------------------------------------------------------------
# Order
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrderDraft:
    status: str
    total_amount: Decimal
    external_id: str | None = None
    conversation_id: int | None = None
    customer_id: str | None = None
    customer_email: str | None = None
    currency: str = "USD"
    line_items: list | None = None
    source: str = "ai_chatbot"

    def __post_init__(self) -> None:
        total = to_money(self.total_amount)
        if total < 0:
            raise ValueError(f"Order total must be non-negative, got {total}")
        object.__setattr__(self, "total_amount", total)


@dataclass(frozen=True)
class Order:
    id: int
    external_id: str | None
    conversation_id: int | None
    customer_id: str | None
    customer_email: str | None
    status: str
    total_amount: Decimal
    currency: str
    line_items: list | None
    source: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class OrderPatch:
    external_id: str | None = UNSET
    customer_email: str | None = UNSET
    status: str = UNSET
    total_amount: Decimal = UNSET
    line_items: list | None = UNSET


# ---------------------------------------------------------------------------
# Recommendation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RecommendationDraft:
    conversation_id: int
    product_id: int
    type: str
    confidence: Decimal
    reason: str | None = None
    presented: bool = False
    accepted: bool = False

    def __post_init__(self) -> None:
        if self.type not in {t.value for t in RecommendationType}:
            raise ValueError(f"Invalid recommendation type: {self.type!r}")
        confidence = to_money(self.confidence)
        if not Decimal("0") <= confidence <= Decimal("1"):
            raise ValueError(f"Confidence must be within [0, 1], got {confidence}")
        object.__setattr__(self, "confidence", confidence)


@dataclass(frozen=True)
class Recommendation:
    id: int
    conversation_id: int
    product_id: int
    type: str
    confidence: Decimal
    reason: str | None
    presented: bool
    accepted: bool
    created_at: datetime


@dataclass(frozen=True)
class RecommendationPatch:
    presented: bool = UNSET
    accepted: bool = UNSET
    reason: str | None = UNSET


# ---------------------------------------------------------------------------
# Webhook subscription
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SubscriptionDraft:
    url: str
    events: tuple[str, ...]
    secret: str
    description: str | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        if not self.secret:
            raise ValueError("Subscription secret is required")
        object.__setattr__(self, "events", tuple(self.events))


@dataclass(frozen=True)
class WebhookSubscription:
    id: int
    url: str
    events: tuple[str, ...]
    secret: str = field(repr=False)
    is_active: bool = True
    description: str | None = None
    last_triggered: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)

    def wants(self, event: str) -> bool:
        """True when this subscription is active and subscribed to ``event``."""
        return self.is_active and event in self.events


@dataclass(frozen=True)
class SubscriptionPatch:
    url: str = UNSET
    events: tuple[str, ...] = UNSET
    description: str | None = UNSET
    is_active: bool = UNSET
    last_triggered: datetime | None = UNSET


_R = TypeVar("_R")


def apply_patch(record: _R, patch: Any, **stamps: Any) -> _R:
    """Merge the set fields of ``patch`` onto ``record``.

    Args:
        record: Frozen entity record.
        patch: Matching ``XPatch`` instance.
        **stamps: Fields always overwritten (e.g. ``updated_at``).

    Returns:
        A new record with the patch applied.
    """
    changes = {
        f.name: getattr(patch, f.name)
        for f in fields(patch)
        if getattr(patch, f.name) is not UNSET
    }
    for key in ("price", "total_amount"):
        if key in changes:
            changes[key] = to_money(changes[key])
            if changes[key] < 0:
                raise ValueError(f"{key} must be non-negative, got {changes[key]}")
    if changes.get("compare_at_price") is not None:
        changes["compare_at_price"] = to_money(changes["compare_at_price"])
    for key in ("tags", "events"):
        if key in changes:
            changes[key] = tuple(changes[key])
    changes.update(stamps)
    return replace(record, **changes)
