"""
The store a request bills for, carried in a contextvar.

The backend scopes every billing endpoint by store (`/billing/<store>/bills`,
`/customers/<store>/...`). The middleware sets the store from the
`X-Store-ID` header; the backend client reads it through `store_path`.
"""

from contextvars import ContextVar
from contextlib import contextmanager
from urllib.parse import quote

_current_store_id: ContextVar[str | None] = ContextVar("current_store_id", default=None)


def get_current_store_id() -> str:
    """Raises RuntimeError when no store has been selected."""
    store_id = _current_store_id.get()
    if store_id is None:
        raise RuntimeError(
            "No store context set. Select a store before calling "
            "store-scoped billing code."
        )
    return store_id


def set_current_store_id(store_id: str | int) -> None:
    """
    Select the store. Numeric ids from the store profile are kept as
    strings so path building and header values compare equal.
    """
    store_id = str(store_id).strip()
    if not store_id:
        raise ValueError("Store id must not be blank")
    _current_store_id.set(store_id)


def clear_current_store_id() -> None:
    _current_store_id.set(None)


def store_path(prefix: str, suffix: str = "") -> str:
    """
    Backend path for the current store, e.g. store_path("billing", "/bills/hold")
    gives "/billing/store-42/bills/hold". The store segment is URL-quoted.
    """
    return f"/{prefix}/{quote(get_current_store_id(), safe='')}{suffix}"


@contextmanager
def store_context(store_id: str | int):
    """
    Bill against another store for the duration of the block, e.g. a
    handler refreshing the held list outside a request:

        with store_context("store-42"):
            invoice_service.refresh_held_invoices()
    """
    previous = _current_store_id.get()
    set_current_store_id(store_id)
    try:
        yield
    finally:
        if previous is None:
            clear_current_store_id()
        else:
            set_current_store_id(previous)
