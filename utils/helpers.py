# utils/helpers.py
import math
import random
import string
import time
from datetime import datetime, timedelta
from typing import Optional, Tuple

from core.constants import DEFAULT_PERIOD, DONOR_LEVELS, PERIODS


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_progress_percentage(raised: float, goal: float) -> int:
    """Whole-number percentage of goal reached, capped at 100."""
    if not goal or goal <= 0:
        return 0
    return min(round_half_up((raised or 0) / goal * 100), 100)


def calculate_days_remaining(end_date: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    if end_date is None:
        return None
    now = now or datetime.utcnow()
    days = (end_date - now).total_seconds() / 86400
    return max(math.ceil(days), 0)


def calculate_donor_level(total_donated: float) -> str:
    total = total_donated or 0
    for threshold, level in DONOR_LEVELS:
        if total >= threshold:
            return level
    return DONOR_LEVELS[-1][1]


def to_minor_units(amount: float) -> int:
    return round_half_up(amount * 100)


def _random_suffix(length: int) -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "".join(random.choices(alphabet, k=length))


def generate_receipt_number() -> str:
    return f"RCP-{int(time.time() * 1000)}-{_random_suffix(9)}"


def generate_reference_id(prefix: str = "IH") -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{_random_suffix(6)}"


def period_cutoff(period: Optional[str], now: Optional[datetime] = None) -> Tuple[str, datetime]:
    """Map 7d/30d/90d/1y to a start datetime; unknown periods fall back to 30d."""
    if period not in PERIODS:
        period = DEFAULT_PERIOD
    now = now or datetime.utcnow()
    return period, now - timedelta(days=PERIODS[period])
