"""
Handler for InvoiceFinalized events.

Fetches the receipt display settings so the saved bill can be rendered
with the store's toggles.
"""

import logging
from typing import Callable

from core.events import InvoiceFinalized

logger = logging.getLogger(__name__)


def handle_invoice_finalized(invoice_service) -> Callable:
    """
    Factory that returns an InvoiceFinalized handler.

    Args:
        invoice_service: InvoiceService instance

    Returns:
        Handler callable that loads receipt settings for rendering
    """

    def handler(event: InvoiceFinalized):
        settings = invoice_service.load_receipt_settings()
        logger.info(
            f"Receipt settings ready for bill {(event.bill or {}).get('id')}: "
            f"{sum(1 for v in settings.model_dump().values() if v is True)} fields shown"
        )

    return handler
