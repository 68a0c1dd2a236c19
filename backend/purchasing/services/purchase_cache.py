# Overview: Cache keys and invalidation for the purchase read surface.

from __future__ import annotations

from flask import current_app

from .request_coalescer import RequestCoalescer


STATS_KEY = "purchases:stats"


def get_cache() -> RequestCoalescer:
    return current_app.extensions["purchase_cache"]


def detail_key(purchase_id: int) -> str:
    return f"purchase:{purchase_id}:detail"


def timeline_key(purchase_id: int) -> str:
    return f"purchase:{purchase_id}:timeline"


def payments_key(purchase_id: int) -> str:
    return f"purchase:{purchase_id}:payments"


def invalidate_purchase(purchase_id: int) -> None:
    """Drop every cached read for one purchase plus the cross-purchase stats."""
    cache = get_cache()
    cache.invalidate_prefix(f"purchase:{purchase_id}:")
    cache.invalidate(STATS_KEY)
