"""Helpers shared by the module services: pagination, status guards and formatting."""
from __future__ import annotations

import math
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Mapping, Sequence

from django.conf import settings
from django.core.cache import cache
from rest_framework.exceptions import ValidationError


def paginate(qs, page: int = 1, page_size: int = 10) -> tuple[list, dict]:
    page = max(int(page or 1), 1)
    page_size = max(int(page_size or 10), 1)
    total = qs.count()
    start = (page - 1) * page_size
    items = list(qs[start:start + page_size])
    return items, {
        'total': total,
        'page': page,
        'pageSize': page_size,
        'totalPages': math.ceil(total / page_size),
    }


def ensure_transition(transitions: Mapping[str, Sequence[str]], current: str, new: str) -> None:
    """Raise 400 unless ``new`` is an allowed next status of ``current``."""
    if new not in transitions.get(current, ()):
        raise ValidationError(f'Invalid status transition from {current} to {new}')


def ensure_status(obj, allowed: Sequence[str], message: str) -> None:
    if obj.status not in allowed:
        raise ValidationError(message)


def cached(key: str, build: Callable[[], dict], ttl: int | None = None) -> dict:
    payload = cache.get(key)
    if payload is None:
        payload = build()
        cache.set(key, payload, ttl or settings.STATS_CACHE_TTL)
    return payload


def iso(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def money(value) -> float:
    if value is None:
        return 0.0
    return float(Decimal(value).quantize(Decimal('0.01')))


def split_csv(value) -> list[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip().upper() for v in value if str(v).strip()]
    return [v.strip().upper() for v in str(value).split(',') if v.strip()]


def calculate_age(dob: date, today: date | None = None) -> int:
    today = today or date.today()
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age
