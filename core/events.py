"""
Domain events for the invoice lifecycle.

Immutable event objects published after a lifecycle transition has
completed against the backend. Handlers react (refresh the held list,
render the saved bill) without the lifecycle knowing who is listening.

Events carry the draft as it was at publish time so handlers never read
a draft the user has since edited.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class BillingEvent:
    """Base class for all billing domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


@dataclass(frozen=True)
class InvoiceHeld(BillingEvent):
    """A draft was persisted as a held invoice. The draft itself stays open."""
    draft: Any = None  # InvoiceDraft; Any avoids a models import cycle
    held: Any = None   # backend response for the held record

    @classmethod
    def create(cls, draft: Any, held: Any) -> "InvoiceHeld":
        return cls(draft=draft.model_copy(deep=True), held=held)


@dataclass(frozen=True)
class InvoiceFinalized(BillingEvent):
    """A draft was saved as the authoritative bill."""
    draft: Any = None
    bill: Any = None

    @classmethod
    def create(cls, draft: Any, bill: Any) -> "InvoiceFinalized":
        return cls(draft=draft.model_copy(deep=True), bill=bill)


@dataclass(frozen=True)
class InvoiceLoaded(BillingEvent):
    """A held invoice or finalized bill was reopened as a draft."""
    draft: Any = None
    source: str = ""  # "held" or "bill"

    @classmethod
    def create(cls, draft: Any, source: str) -> "InvoiceLoaded":
        return cls(draft=draft.model_copy(deep=True), source=source)
