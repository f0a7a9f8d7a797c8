from .logger import setup_logger, get_logger
from .security import generate_token, verify_token
from .validators import (
    validate_email, validate_time_range, validate_slot_duration,
    validate_tiling, validate_weekdays, validate_credit_amount
)
from .timeutils import (
    parse_time, parse_date, to_minutes, from_minutes, add_minutes,
    minutes_between, overlaps, week_start, date_range
)
from .locks import KeyedLock

__all__ = [
    'setup_logger', 'get_logger',
    'generate_token', 'verify_token',
    'validate_email', 'validate_time_range', 'validate_slot_duration',
    'validate_tiling', 'validate_weekdays', 'validate_credit_amount',
    'parse_time', 'parse_date', 'to_minutes', 'from_minutes', 'add_minutes',
    'minutes_between', 'overlaps', 'week_start', 'date_range',
    'KeyedLock'
]
