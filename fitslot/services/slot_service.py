from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional
from sqlalchemy.orm import Session
from fitslot.database import Database
from fitslot.errors import NotFoundError, InvalidStateError, ValidationError
from fitslot.models import Reservation, Slot, SlotTemplate
from fitslot.models.reservation import ReservationStatus
from fitslot.models.slot import SlotStatus
from fitslot.utils.locks import KeyedLock, slot_key, week_key
from fitslot.utils.timeutils import parse_date, parse_time, add_minutes, minutes_between, week_start
from fitslot.utils.validators import validate_slot_duration
from fitslot.utils.logger import get_logger
from config.config import Config

logger = get_logger(__name__)


class SlotService:
    """Admin-managed slots and their lifecycle.

    LOCKED and UNLOCKED toggle freely. RESERVED is entered only through an
    admin reservation and left only through cancellation, which moves the
    slot to CANCELLED. A reserved slot cannot be edited, moved or deleted.

    Creating, moving and template-applying slots for one week are serialized
    by the week lock, taken before any slot lock.
    """

    def __init__(self, database: Database, locks: KeyedLock = None,
                 clock: Callable[[], datetime] = None):
        self.database = database
        self.locks = locks or KeyedLock()
        self.clock = clock or datetime.now

    def create_slot(self, date, start_time, duration_minutes: int = None,
                    admin_id: int = None, note: str = None) -> Dict:
        duration = duration_minutes or Config.DEFAULT_SLOT_DURATION_MINUTES
        valid, error = validate_slot_duration(duration)
        if not valid:
            raise ValidationError(error)

        try:
            day, start = parse_date(date), parse_time(start_time)
            end = add_minutes(start, duration)
        except ValueError as e:
            raise ValidationError(str(e))

        with self.locks.hold(week_key(week_start(day))):
            with self.database.session() as db:
                self._check_overlap(db, day, start, end, admin_id)
                slot = Slot(
                    date=day,
                    start_time=start,
                    end_time=end,
                    duration_minutes=duration,
                    status=SlotStatus.LOCKED,
                    admin_id=admin_id,
                    note=note
                )
                db.add(slot)
                db.flush()
                logger.info(f"Slot {slot.id} created on {day} {start}-{end}")
                return slot.to_dict()

    def get_slot(self, slot_id: int) -> Dict:
        with self.database.session() as db:
            return self._get(db, slot_id).to_dict()

    def update_slot(self, slot_id: int, data: Dict) -> Dict:
        """Edit status, note or assignee. Schedule changes go through move_slot."""
        status = data.get('status')
        if status is not None and not isinstance(status, SlotStatus):
            try:
                status = SlotStatus(status)
            except ValueError:
                raise ValidationError(f'Invalid slot status: {status!r}')

        with self.locks.hold(slot_key(slot_id)):
            with self.database.session() as db:
                slot = self._get(db, slot_id)

                if slot.status == SlotStatus.RESERVED:
                    raise InvalidStateError('Reserved slot cannot be edited, cancel the reservation first')
                if status == SlotStatus.RESERVED:
                    raise InvalidStateError('Slots are reserved only by creating a reservation')

                if status is not None and status != slot.status:
                    slot.status = status
                    slot.cancelled_at = self.clock() if status == SlotStatus.CANCELLED else None
                if 'note' in data:
                    slot.note = data['note'] or None
                if 'assigned_user_id' in data:
                    slot.assigned_user_id = data['assigned_user_id']

                db.flush()
                logger.info(f"Slot {slot.id} updated, status {slot.status.value}")
                return slot.to_dict()

    def move_slot(self, slot_id: int, date, start_time, end_time) -> Dict:
        try:
            day, start, end = parse_date(date), parse_time(start_time), parse_time(end_time)
        except ValueError as e:
            raise ValidationError(str(e))
        if start >= end:
            raise ValidationError('Start time must be before end time')

        with self.locks.hold(week_key(week_start(day))), self.locks.hold(slot_key(slot_id)):
            with self.database.session() as db:
                slot = self._get(db, slot_id)
                if slot.status == SlotStatus.RESERVED:
                    raise InvalidStateError('Reserved slot cannot be moved')

                self._check_overlap(db, day, start, end, slot.admin_id, exclude_id=slot.id)

                slot.date = day
                slot.start_time = start
                slot.end_time = end
                slot.duration_minutes = minutes_between(start, end)
                db.flush()
                logger.info(f"Slot {slot.id} moved to {day} {start}-{end}")
                return slot.to_dict()

    def delete_slot(self, slot_id: int) -> bool:
        with self.locks.hold(slot_key(slot_id)):
            with self.database.session() as db:
                slot = self._get(db, slot_id)
                if slot.status == SlotStatus.RESERVED:
                    raise InvalidStateError('Reserved slot cannot be deleted')
                db.delete(slot)
        logger.info(f"Slot {slot_id} deleted")
        return True

    def lock_slot(self, slot_id: int) -> Dict:
        return self._transition(slot_id, SlotStatus.LOCKED)

    def unlock_slot(self, slot_id: int) -> Dict:
        return self._transition(slot_id, SlotStatus.UNLOCKED)

    def block_slot(self, slot_id: int) -> Dict:
        return self._transition(slot_id, SlotStatus.BLOCKED)

    def _transition(self, slot_id: int, status: SlotStatus) -> Dict:
        with self.locks.hold(slot_key(slot_id)):
            with self.database.session() as db:
                slot = self._get(db, slot_id)
                if slot.status == SlotStatus.RESERVED:
                    raise InvalidStateError(f'Reserved slot cannot be set to {status.value}')
                slot.status = status
                slot.cancelled_at = None
                db.flush()
                logger.info(f"Slot {slot.id} is now {status.value}")
                return slot.to_dict()

    def get_slots(self, start_date, end_date) -> List[Dict]:
        """Admin view: every slot with its reservation"""
        start_day, end_day = self._parse_range(start_date, end_date)

        with self.database.session() as db:
            slots = self._slots_between(db, start_day, end_day).all()
            reservations = self._reservations_for(db, [s.id for s in slots])

            result = []
            for slot in slots:
                item = slot.to_dict()
                reservation = reservations.get(slot.id)
                item['reservation_id'] = reservation.id if reservation else None
                item['reservation_status'] = reservation.status.value if reservation else None
                result.append(item)
            return result

    def get_user_visible_slots(self, start_date, end_date) -> List[Dict]:
        """Client view: open and taken slots, no user data"""
        start_day, end_day = self._parse_range(start_date, end_date)

        with self.database.session() as db:
            slots = self._slots_between(db, start_day, end_day).filter(
                Slot.status.in_([SlotStatus.UNLOCKED, SlotStatus.RESERVED])
            ).all()
            public = ('id', 'date', 'start_time', 'end_time', 'duration_minutes', 'status')
            return [{key: value for key, value in slot.to_dict().items() if key in public} for slot in slots]

    def unlock_week(self, week_start_date) -> Dict:
        """LOCKED -> UNLOCKED for one week, as a single conditional update"""
        monday = week_start(self._parse_day(week_start_date))
        sunday = monday + timedelta(days=6)

        with self.locks.hold(week_key(monday)):
            with self.database.session() as db:
                unlocked = db.query(Slot).filter(
                    Slot.date >= monday,
                    Slot.date <= sunday,
                    Slot.status == SlotStatus.LOCKED
                ).update({Slot.status: SlotStatus.UNLOCKED}, synchronize_session=False)

        logger.info(f"Unlocked {unlocked} slots in week of {monday}")
        return {'unlocked_count': unlocked}

    def apply_template(self, template_id: int, week_start_date) -> Dict:
        """Create LOCKED slots for one week from a template.

        Definitions whose range is already covered by a live slot are skipped,
        so applying the same template twice creates nothing the second time.
        """
        monday = week_start(self._parse_day(week_start_date))

        with self.locks.hold(week_key(monday)):
            with self.database.session() as db:
                template = db.query(SlotTemplate).filter_by(id=template_id).first()
                if not template:
                    raise NotFoundError('Template not found')
                if not template.is_active:
                    raise InvalidStateError('Template is not active')

                created = []
                for definition in template.slots:
                    day = monday + timedelta(days=definition.day_offset)
                    if self._overlapping(db, day, definition.start_time, definition.end_time,
                                         template.admin_id).first():
                        continue

                    slot = Slot(
                        date=day,
                        start_time=definition.start_time,
                        end_time=definition.end_time,
                        duration_minutes=definition.duration_minutes,
                        status=SlotStatus.LOCKED,
                        template_id=template.id,
                        admin_id=template.admin_id
                    )
                    db.add(slot)
                    db.flush()
                    created.append(slot)

                logger.info(f"Template {template.id} applied to week of {monday}: {len(created)} slots")
                return {'created_count': len(created), 'slots': [s.to_dict() for s in created]}

    def _get(self, db: Session, slot_id: int) -> Slot:
        slot = db.query(Slot).filter_by(id=slot_id).first()
        if not slot:
            raise NotFoundError('Slot not found')
        return slot

    @staticmethod
    def _parse_day(value):
        try:
            return parse_date(value)
        except ValueError as e:
            raise ValidationError(str(e))

    def _parse_range(self, start_date, end_date):
        start_day, end_day = self._parse_day(start_date), self._parse_day(end_date)
        if end_day < start_day:
            raise ValidationError('End date must not be before start date')
        return start_day, end_day

    @staticmethod
    def _slots_between(db: Session, start_day, end_day):
        return db.query(Slot).filter(
            Slot.date >= start_day,
            Slot.date <= end_day
        ).order_by(Slot.date, Slot.start_time, Slot.id)

    @staticmethod
    def _overlapping(db: Session, day, start, end, admin_id: Optional[int], exclude_id: int = None):
        query = db.query(Slot).filter(
            Slot.date == day,
            Slot.status != SlotStatus.CANCELLED,
            Slot.start_time < end,
            Slot.end_time > start
        )
        if admin_id is None:
            query = query.filter(Slot.admin_id.is_(None))
        else:
            query = query.filter(Slot.admin_id == admin_id)
        if exclude_id is not None:
            query = query.filter(Slot.id != exclude_id)
        return query

    def _check_overlap(self, db: Session, day, start, end, admin_id, exclude_id=None):
        clash = self._overlapping(db, day, start, end, admin_id, exclude_id).first()
        if clash:
            raise ValidationError(
                f"Slot overlaps existing slot {clash.id} "
                f"({clash.start_time.strftime('%H:%M')}-{clash.end_time.strftime('%H:%M')})",
                code='SLOT_OVERLAP',
                details={'slot_id': clash.id}
            )

    @staticmethod
    def _reservations_for(db: Session, slot_ids: List[int]) -> Dict[int, Reservation]:
        """Confirmed reservation per slot, else the latest cancelled one"""
        if not slot_ids:
            return {}
        rows = db.query(Reservation).filter(Reservation.slot_id.in_(slot_ids)).order_by(
            Reservation.created_at, Reservation.id
        ).all()

        chosen: Dict[int, Reservation] = {}
        for reservation in rows:
            current = chosen.get(reservation.slot_id)
            if current is not None and current.status == ReservationStatus.CONFIRMED:
                continue
            chosen[reservation.slot_id] = reservation
        return chosen
