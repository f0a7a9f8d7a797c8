from collections import defaultdict, namedtuple
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from sqlalchemy.orm import Session
from fitslot.database import Database
from fitslot.errors import ValidationError
from fitslot.models import AvailabilityBlock, Reservation, User
from fitslot.models.reservation import ReservationStatus
from fitslot.utils.timeutils import to_minutes, from_minutes, overlaps, date_range, parse_time
from fitslot.utils.logger import get_logger
from config.config import Config

logger = get_logger(__name__)

AvailableSlot = namedtuple('AvailableSlot', ['block_id', 'start', 'end'])

Range = Tuple[int, int]

MAX_RANGE_DAYS = 62


def _overlaps_any(start: int, end: int, ranges: Iterable[Range]) -> bool:
    return any(overlaps(start, end, r_start, r_end) for r_start, r_end in ranges)


def generate_grid_slots(block_start, block_end, duration: int,
                        break_after_slots: int = None, break_minutes: int = None) -> List[Range]:
    """Fixed-grid tiling of a block, in minutes since midnight.

    A trailing tile that does not fit is dropped. With a break configured, a
    pause of ``break_minutes`` follows every ``break_after_slots`` tiles.
    """
    start, end = to_minutes(block_start), to_minutes(block_end)
    if duration <= 0:
        return []

    slots = []
    current = start
    while current + duration <= end:
        slots.append((current, current + duration))
        current += duration
        if break_after_slots and break_minutes and len(slots) % break_after_slots == 0:
            current += break_minutes
    return slots


def generate_breaks(block_start, block_end, duration: int,
                    break_after_slots: int = None, break_minutes: int = None) -> List[Range]:
    """Break windows of a block, following the same grid as generate_grid_slots"""
    if not break_after_slots or not break_minutes or duration <= 0:
        return []

    end = to_minutes(block_end)
    breaks = []
    tiles = generate_grid_slots(block_start, block_end, duration, break_after_slots, break_minutes)
    for index, (_, tile_end) in enumerate(tiles, start=1):
        if index % break_after_slots == 0 and tile_end < end:
            breaks.append((tile_end, min(tile_end + break_minutes, end)))
    return breaks


def calculate_sticky_slots(block_start, block_end, duration: int,
                           reservations: Sequence[Range], breaks: Sequence[Range] = ()) -> List[Range]:
    """Slots adjacent to existing reservations, in minutes since midnight.

    Offers the slot ending where the earliest reservation starts, the slot
    starting where the latest one ends and, for every gap between
    neighbouring reservations whose free time is a whole multiple of the
    duration, the slot right after the earlier one and the slot right before
    the later one. A break touching a reservation is stepped over. Candidates
    outside the block or overlapping a reservation or break are discarded.
    """
    if not reservations or duration <= 0:
        return []

    start, end = to_minutes(block_start), to_minutes(block_end)
    booked = sorted((to_minutes(s), to_minutes(e)) for s, e in reservations)
    pauses = sorted(breaks)
    candidates: List[Range] = []

    def after(minute: int) -> int:
        for pause_start, pause_end in pauses:
            if pause_start == minute:
                return pause_end
        return minute

    def before(minute: int) -> int:
        for pause_start, pause_end in pauses:
            if pause_end == minute:
                return pause_start
        return minute

    earliest_start = before(min(s for s, _ in booked))
    latest_end = after(max(e for _, e in booked))

    candidates.append((earliest_start - duration, earliest_start))
    candidates.append((latest_end, latest_end + duration))

    for (_, current_end), (next_start, _) in zip(booked, booked[1:]):
        paused = sum(
            p_end - p_start for p_start, p_end in pauses
            if p_start >= current_end and p_end <= next_start
        )
        free = next_start - current_end - paused
        if free < duration or free % duration:
            continue
        first = after(current_end)
        last = before(next_start)
        candidates.append((first, first + duration))
        candidates.append((last - duration, last))

    result: Dict[int, Range] = {}
    for slot_start, slot_end in candidates:
        if slot_start < start or slot_end > end:
            continue
        if _overlaps_any(slot_start, slot_end, booked) or _overlaps_any(slot_start, slot_end, pauses):
            continue
        result.setdefault(slot_start, (slot_start, slot_end))

    return [result[key] for key in sorted(result)]


class AvailabilityService:
    """Derives the slots a client may book right now"""

    def __init__(self, database: Database, clock: Callable[[], datetime] = None):
        self.database = database
        self.clock = clock or datetime.now

    def blocks_for_date(self, db: Session, day: date) -> Tuple[List[AvailabilityBlock], List[AvailabilityBlock]]:
        """Active blocks defining time on ``day`` and blocked windows on it"""
        active = db.query(AvailabilityBlock).filter(AvailabilityBlock.is_active.is_(True)).all()

        open_blocks = [b for b in active if not b.is_blocked and b.applies_to(day)]
        blocked = [b for b in active if b.is_blocked and b.applies_to(day)]
        return open_blocks, blocked

    def confirmed_by_block(self, db: Session, day: date, block_ids: List[int]) -> Dict[int, List[Range]]:
        booked = defaultdict(list)
        for reservation in self._confirmed_reservations(db, day, block_ids):
            booked[reservation.block_id].append(
                (to_minutes(reservation.start_time), to_minutes(reservation.end_time))
            )
        return booked

    def compute_slots(self, db: Session, day: date) -> List[AvailableSlot]:
        """Bookable slots for ``day`` using an open session"""
        now = self.clock()
        if day < now.date():
            return []

        open_blocks, blocked_blocks = self.blocks_for_date(db, day)
        if not open_blocks:
            return []

        booked = self.confirmed_by_block(db, day, [b.id for b in open_blocks])
        blocked_ranges = [(to_minutes(b.start_time), to_minutes(b.end_time)) for b in blocked_blocks]

        slots: List[AvailableSlot] = []
        for block in open_blocks:
            existing = booked.get(block.id)
            if existing:
                ranges = calculate_sticky_slots(
                    block.start_time, block.end_time, block.slot_duration_minutes, existing,
                    breaks=self._breaks(block)
                )
            else:
                ranges = generate_grid_slots(
                    block.start_time, block.end_time, block.slot_duration_minutes,
                    block.break_after_slots, block.break_duration_minutes
                )

            for start, end in ranges:
                if _overlaps_any(start, end, blocked_ranges):
                    continue
                slots.append(AvailableSlot(block.id, from_minutes(start), from_minutes(end)))

        if day == now.date():
            slots = [s for s in slots if not self._is_past(day, s.start, now)]

        return sorted(slots, key=lambda s: (s.start, s.block_id))

    def compute_availability(self, day: date) -> List[Dict]:
        """Bookable slots for a date, sorted by start time"""
        with self.database.session() as db:
            slots = self.compute_slots(db, day)
        logger.debug(f"{len(slots)} bookable slots on {day}")
        return [self._serialize(day, slot) for slot in slots]

    def get_available_slots_range(self, start_date: date, end_date: date) -> List[Dict]:
        self._check_range(start_date, end_date)

        results = []
        with self.database.session() as db:
            for day in date_range(start_date, end_date):
                results.extend(self._serialize(day, slot) for slot in self.compute_slots(db, day))
        return results

    def validate_slot_for_reservation(self, day: date, start_time, end_time, block_id: int,
                                      db: Optional[Session] = None) -> bool:
        """Recompute availability and look for the exact (start, end, block) triple"""
        start, end = parse_time(start_time), parse_time(end_time)

        if db is not None:
            slots = self.compute_slots(db, day)
        else:
            with self.database.session() as session:
                slots = self.compute_slots(session, day)

        return AvailableSlot(block_id, start, end) in slots

    def get_admin_calendar(self, start_date: date, end_date: date) -> List[Dict]:
        """Admin view of block-generated slots.

        Every grid slot of every open block is listed with a status of
        ``reserved``, ``blocked``, ``past`` or ``available``, in that order of
        precedence. Confirmed reservations off the grid are listed as well.
        """
        self._check_range(start_date, end_date)
        now = self.clock()

        results = []
        with self.database.session() as db:
            users: Dict[int, User] = {}
            for day in date_range(start_date, end_date):
                open_blocks, blocked_blocks = self.blocks_for_date(db, day)
                if not open_blocks:
                    continue
                blocked_ranges = [(to_minutes(b.start_time), to_minutes(b.end_time)) for b in blocked_blocks]

                reservations = {}
                for reservation in self._confirmed_reservations(db, day, [b.id for b in open_blocks]):
                    key = (reservation.block_id, to_minutes(reservation.start_time),
                           to_minutes(reservation.end_time))
                    reservations[key] = reservation

                entries = []
                for block in open_blocks:
                    ranges = set(generate_grid_slots(
                        block.start_time, block.end_time, block.slot_duration_minutes,
                        block.break_after_slots, block.break_duration_minutes
                    ))
                    ranges.update((start, end) for block_id, start, end in reservations if block_id == block.id)

                    for start, end in ranges:
                        reservation = reservations.get((block.id, start, end))
                        if reservation is not None:
                            status = 'reserved'
                        elif _overlaps_any(start, end, blocked_ranges):
                            status = 'blocked'
                        elif self._is_past(day, from_minutes(start), now):
                            status = 'past'
                        else:
                            status = 'available'

                        entry = self._serialize(day, AvailableSlot(block.id, from_minutes(start), from_minutes(end)))
                        entry['id'] = f"{block.id}-{day.isoformat()}-{entry['start_time']}"
                        entry['status'] = status
                        entry['reservation'] = self._reservation_info(db, reservation, users) if reservation else None
                        entries.append(entry)

                results.extend(sorted(entries, key=lambda e: (e['start_time'], e['block_id'])))

        logger.debug(f"Admin calendar {start_date}..{end_date}: {len(results)} slots")
        return results

    def _confirmed_reservations(self, db: Session, day: date, block_ids: List[int]) -> List[Reservation]:
        if not block_ids:
            return []
        return db.query(Reservation).filter(
            Reservation.date == day,
            Reservation.block_id.in_(block_ids),
            Reservation.status == ReservationStatus.CONFIRMED
        ).all()

    @staticmethod
    def _breaks(block: AvailabilityBlock) -> List[Range]:
        return generate_breaks(
            block.start_time, block.end_time, block.slot_duration_minutes,
            block.break_after_slots, block.break_duration_minutes
        )

    @staticmethod
    def _is_past(day: date, start, now: datetime) -> bool:
        grace = timedelta(minutes=Config.PAST_SLOT_GRACE_MINUTES)
        return datetime.combine(day, start) + grace < now

    @staticmethod
    def _check_range(start_date: date, end_date: date):
        if end_date < start_date:
            raise ValidationError('End date must not be before start date')
        if (end_date - start_date).days > MAX_RANGE_DAYS:
            raise ValidationError(f'Date range is limited to {MAX_RANGE_DAYS} days')

    @staticmethod
    def _reservation_info(db: Session, reservation: Reservation, users: Dict[int, User]) -> Dict:
        if reservation.user_id not in users:
            users[reservation.user_id] = db.query(User).filter_by(id=reservation.user_id).first()
        user = users[reservation.user_id]
        return {
            'id': reservation.id,
            'user_id': reservation.user_id,
            'user_name': user.full_name if user else None,
            'user_email': user.email if user else None,
            'status': reservation.status.value,
            'note': reservation.note
        }

    @staticmethod
    def _serialize(day: date, slot: AvailableSlot) -> Dict:
        start = datetime.combine(day, slot.start)
        end = datetime.combine(day, slot.end)
        return {
            'block_id': slot.block_id,
            'date': day.isoformat(),
            'start_time': slot.start.strftime('%H:%M'),
            'end_time': slot.end.strftime('%H:%M'),
            'start': start.isoformat(),
            'end': end.isoformat()
        }
