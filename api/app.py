"""Application assembly: services, event handlers and the FastAPI app."""

import logging

from fastapi import FastAPI

from api.billing import create_billing_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware, StoreContextMiddleware
from clients.backend_client import BackendClient
from core.config import BillingConfig
from core.event_bus import EventBus
from core.handlers.finalized_invoice_handler import handle_invoice_finalized
from core.handlers.held_invoice_handler import handle_invoice_held
from core.services.customer_service import CustomerService
from core.services.invoice_service import InvoiceService

logger = logging.getLogger(__name__)


def build_services(config: BillingConfig, backend: BackendClient, event_bus: EventBus | None = None) -> dict:
    """Wire services and subscribe lifecycle handlers."""
    event_bus = event_bus or EventBus()
    customers = CustomerService(backend, country_code=config.default_country_code)
    invoice = InvoiceService(backend, customers, event_bus, config)

    event_bus.subscribe("InvoiceHeld", handle_invoice_held(invoice))
    event_bus.subscribe("InvoiceFinalized", handle_invoice_finalized(invoice))

    return {"invoice": invoice, "customer": customers, "event_bus": event_bus}


def create_app(services: dict) -> FastAPI:
    app = FastAPI(title="Billing Engine")
    app.add_middleware(StoreContextMiddleware)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(create_billing_router(services), prefix="/api")
    return app


def create_default_app(auth_token: str | None = None) -> FastAPI:
    """App wired from BILLING_* environment configuration."""
    config = BillingConfig.from_env()
    backend = BackendClient.from_config(config, auth_token=auth_token)
    logger.info(f"Billing API using backend {config.api_base_url}")
    return create_app(build_services(config, backend))
