"""
Event bus for invoice lifecycle events.

Hold and save publish after the backend accepted the bill; handlers then
refresh the held list or load receipt settings. Handlers run in the
publisher's thread, so they see the same store context the request set
and their backend calls hit the same store. A failing handler is logged
and skipped: the bill is already held or saved and must not be reported
as failed.
"""

import logging
from typing import Callable, Dict, List

from core.events import BillingEvent

logger = logging.getLogger(__name__)


def _known_event_types() -> set[str]:
    return {cls.__name__ for cls in BillingEvent.__subclasses__()}


class EventBus:
    """
    In-process bus keyed by event class name ('InvoiceHeld',
    'InvoiceFinalized', 'InvoiceLoaded').
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, callback: Callable):
        """
        Register a handler for one lifecycle event.

        Raises ValueError for a name that is not a billing event, so a
        misspelt subscription fails at app start instead of never firing.
        """
        known = _known_event_types()
        if event_type not in known:
            raise ValueError(
                f"Unknown billing event '{event_type}'. Known: {', '.join(sorted(known))}"
            )
        self._subscribers.setdefault(event_type, []).append(callback)

    def publish(self, event: BillingEvent):
        event_type = event.__class__.__name__
        draft = getattr(event, "draft", None)
        draft_id = getattr(draft, "id", None)

        for callback in self._subscribers.get(event_type, []):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Handler %s failed for %s on draft %s (event_id=%s)",
                    getattr(callback, "__name__", repr(callback)),
                    event_type,
                    draft_id,
                    event.event_id,
                )
