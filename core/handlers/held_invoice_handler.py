"""
Handler for InvoiceHeld events.

After a hold succeeds, re-reads the held list so the resume picker shows
the new record.
"""

import logging
from typing import Callable

from core.events import InvoiceHeld

logger = logging.getLogger(__name__)


def handle_invoice_held(invoice_service) -> Callable:
    """
    Factory that returns an InvoiceHeld handler.

    Args:
        invoice_service: InvoiceService instance

    Returns:
        Handler callable that refreshes the held invoice list
    """

    def handler(event: InvoiceHeld):
        held = invoice_service.refresh_held_invoices()
        logger.info(f"Held list refreshed after hold of draft {event.draft.id}: {len(held)} held")

    return handler
