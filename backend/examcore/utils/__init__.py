"""Utility functions for the exam engine."""

import random
import uuid
from datetime import datetime, timezone
from typing import List, Sequence, TypeVar

T = TypeVar("T")


def new_id(prefix: str) -> str:
    """Short prefixed identifier, e.g. ``attempt_3f2a9c1b7d4e``."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by some Mongo drivers) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def whole_minutes_between(start: datetime, end: datetime) -> int:
    """Elapsed whole minutes, floored, never negative."""
    seconds = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    return max(0, int(seconds // 60))


def format_percentage(obtained: float, total: float) -> float:
    """Format percentage with 2 decimals."""
    if total == 0:
        return 0.0
    return round((obtained / total) * 100, 2)


def seeded_shuffle(items: Sequence[T], seed: str) -> List[T]:
    """Deterministic shuffle: the same seed always yields the same order."""
    shuffled = list(items)
    random.Random(seed).shuffle(shuffled)
    return shuffled
