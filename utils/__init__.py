"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, to_utc, parse_iso, to_iso_z, combine_date_time
from utils.store_context import (
    get_current_store_id,
    set_current_store_id,
    clear_current_store_id,
    store_context,
    store_path,
)
