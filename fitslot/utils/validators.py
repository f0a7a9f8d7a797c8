import re
from datetime import time
from typing import Iterable, Optional, Tuple
from fitslot.utils.timeutils import minutes_between


def validate_email(email: str) -> Tuple[bool, Optional[str]]:
    """Validate email format"""
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    if not email:
        return False, "Email is required"
    if not re.match(pattern, email):
        return False, "Invalid email format"
    return True, None


def validate_time_range(start: time, end: time) -> Tuple[bool, Optional[str]]:
    """Start must come strictly before end on the same day"""
    if start is None or end is None:
        return False, "Start and end time are required"
    if start >= end:
        return False, "Start time must be before end time"
    return True, None


def validate_slot_duration(duration_minutes) -> Tuple[bool, Optional[str]]:
    if not isinstance(duration_minutes, int) or isinstance(duration_minutes, bool):
        return False, "Slot duration must be a whole number of minutes"
    if duration_minutes <= 0:
        return False, "Slot duration must be positive"
    return True, None


def validate_tiling(start: time, end: time, duration_minutes: int) -> Tuple[bool, Optional[str]]:
    """The window must split into whole slots"""
    window = minutes_between(start, end)
    if window < duration_minutes:
        return False, "Window is shorter than one slot"
    if window % duration_minutes:
        return False, f"A {window} minute window does not divide into {duration_minutes} minute slots"
    return True, None


def validate_weekdays(days: Iterable) -> Tuple[bool, Optional[str]]:
    """ISO weekdays, 1 = Monday ... 7 = Sunday"""
    days = list(days or [])
    if not days:
        return False, "At least one day of week is required"
    for day in days:
        if not isinstance(day, int) or isinstance(day, bool) or not 1 <= day <= 7:
            return False, f"Invalid day of week: {day!r}"
    return True, None


def validate_credit_amount(amount) -> Tuple[bool, Optional[str]]:
    if not isinstance(amount, int) or isinstance(amount, bool):
        return False, "Credit amount must be a whole number"
    if amount == 0:
        return False, "Credit amount must not be zero"
    return True, None


def _is_whole(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_price(price) -> Tuple[bool, Optional[str]]:
    if isinstance(price, bool):
        return False, "Price must be a number"
    try:
        amount = float(price)
    except (TypeError, ValueError):
        return False, "Price must be a number"
    if amount < 0:
        return False, "Price must not be negative"
    return True, None


def validate_catalogue_item(data: dict, required: Iterable[str] = ()) -> Tuple[bool, Optional[str]]:
    """Fields shared by credit packages, pricing items and training plans"""
    for field in required:
        if data.get(field) in (None, ''):
            return False, f"{field} is required"

    if 'name' in data and not data['name']:
        return False, "Name must not be empty"
    for field in ('credits', 'validity_days'):
        if field in data and (not _is_whole(data[field]) or data[field] <= 0):
            return False, f"{field} must be a positive whole number"
    if 'bonus_credits' in data and data['bonus_credits'] is not None:
        if not _is_whole(data['bonus_credits']) or data['bonus_credits'] < 0:
            return False, "bonus_credits must not be negative"
    if 'sessions_count' in data and data['sessions_count'] is not None:
        if not _is_whole(data['sessions_count']) or data['sessions_count'] <= 0:
            return False, "sessions_count must be a positive whole number"
    if 'sort_order' in data and not _is_whole(data['sort_order']):
        return False, "sort_order must be a whole number"
    if 'price' in data:
        valid, error = validate_price(data['price'])
        if not valid:
            return False, error
    if 'duration_minutes' in data:
        valid, error = validate_slot_duration(data['duration_minutes'])
        if not valid:
            return False, error
    return True, None
