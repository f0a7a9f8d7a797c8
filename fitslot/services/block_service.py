from datetime import date
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from fitslot.database import Database, DatabaseManager
from fitslot.errors import NotFoundError, ValidationError
from fitslot.models import AvailabilityBlock
from fitslot.utils.timeutils import parse_time, parse_date, overlaps
from fitslot.utils.validators import (
    validate_time_range, validate_slot_duration, validate_tiling, validate_weekdays
)
from fitslot.utils.logger import get_logger
from config.config import Config

logger = get_logger(__name__)


class AvailabilityBlockService:
    """Admin management of availability blocks"""

    def __init__(self, database: Database):
        self.database = database
        self.block_db = DatabaseManager(database, AvailabilityBlock)

    def list_blocks(self, active_only: bool = False) -> List[Dict]:
        with self.database.session() as db:
            query = db.query(AvailabilityBlock)
            if active_only:
                query = query.filter(AvailabilityBlock.is_active.is_(True))
            blocks = query.order_by(AvailabilityBlock.start_time, AvailabilityBlock.id).all()
            return [b.to_dict() for b in blocks]

    def get_block(self, block_id: int) -> Dict:
        block = self.block_db.get(block_id)
        if not block:
            raise NotFoundError('Availability block not found')
        return block.to_dict()

    def create_block(self, data: Dict, admin_id: int = None) -> Dict:
        fields = self._parse(data)

        with self.database.session() as db:
            self._check_overlap(db, fields)
            block = AvailabilityBlock(admin_id=admin_id, **fields)
            db.add(block)
            db.flush()
            logger.info(f"Availability block created: {block.id} {block.start_time}-{block.end_time}")
            return block.to_dict()

    def update_block(self, block_id: int, data: Dict) -> Dict:
        with self.database.session() as db:
            block = db.query(AvailabilityBlock).filter_by(id=block_id).first()
            if not block:
                raise NotFoundError('Availability block not found')

            merged = block.to_dict()
            merged.update(data)
            fields = self._parse(merged)

            self._check_overlap(db, fields, exclude_id=block.id)
            for key, value in fields.items():
                setattr(block, key, value)
            db.flush()
            logger.info(f"Availability block updated: {block.id}")
            return block.to_dict()

    def delete_block(self, block_id: int) -> bool:
        if not self.block_db.delete(block_id):
            raise NotFoundError('Availability block not found')
        logger.info(f"Availability block deleted: {block_id}")
        return True

    def block_time(self, day: date, start_time, end_time, name: str = None) -> Dict:
        """Mark a window on one date as unavailable"""
        start, end = self._parse_range(start_time, end_time)
        with self.database.session() as db:
            existing = db.query(AvailabilityBlock).filter(
                AvailabilityBlock.is_active.is_(True),
                AvailabilityBlock.is_blocked.is_(True),
                AvailabilityBlock.specific_date == day,
                AvailabilityBlock.start_time == start
            ).first()
            if existing:
                return existing.to_dict()

            block = AvailabilityBlock(
                name=name,
                days_of_week=[],
                specific_date=day,
                start_time=start,
                end_time=end,
                slot_duration_minutes=Config.DEFAULT_SLOT_DURATION_MINUTES,
                is_recurring=False,
                is_blocked=True,
                is_active=True
            )
            db.add(block)
            db.flush()
            logger.info(f"Blocked {day} {start}-{end}")
            return block.to_dict()

    def unblock_time(self, day: date, start_time) -> bool:
        start = parse_time(start_time)
        with self.database.session() as db:
            existing = db.query(AvailabilityBlock).filter(
                AvailabilityBlock.is_blocked.is_(True),
                AvailabilityBlock.specific_date == day,
                AvailabilityBlock.start_time == start
            ).first()
            if not existing:
                raise NotFoundError('Blocked time not found')
            db.delete(existing)
            logger.info(f"Unblocked {day} {start}")
            return True

    def _parse_range(self, start_time, end_time):
        try:
            start, end = parse_time(start_time), parse_time(end_time)
        except ValueError as e:
            raise ValidationError(str(e))
        valid, error = validate_time_range(start, end)
        if not valid:
            raise ValidationError(error)
        return start, end

    def _parse(self, data: Dict) -> Dict:
        start, end = self._parse_range(data.get('start_time'), data.get('end_time'))

        duration = data.get('slot_duration_minutes', Config.DEFAULT_SLOT_DURATION_MINUTES)
        valid, error = validate_slot_duration(duration)
        if not valid:
            raise ValidationError(error)

        break_after = data.get('break_after_slots')
        break_minutes = data.get('break_duration_minutes')
        if break_after is not None or break_minutes is not None:
            if not break_after or not break_minutes or break_after <= 0 or break_minutes <= 0:
                raise ValidationError('Break needs both a positive slot count and duration')
        else:
            valid, error = validate_tiling(start, end, duration)
            if not valid:
                raise ValidationError(error)

        specific_date = data.get('specific_date')
        days = data.get('days_of_week') or []
        if specific_date:
            try:
                specific_date = parse_date(specific_date)
            except ValueError as e:
                raise ValidationError(str(e))
            days = []
        else:
            specific_date = None
            valid, error = validate_weekdays(days)
            if not valid:
                raise ValidationError(error)

        return {
            'name': data.get('name'),
            'days_of_week': sorted(set(days)),
            'specific_date': specific_date,
            'start_time': start,
            'end_time': end,
            'slot_duration_minutes': duration,
            'break_after_slots': break_after,
            'break_duration_minutes': break_minutes,
            'is_recurring': specific_date is None,
            'is_blocked': bool(data.get('is_blocked', False)),
            'is_active': bool(data.get('is_active', True))
        }

    def _check_overlap(self, db: Session, fields: Dict, exclude_id: Optional[int] = None):
        """Two open blocks may not claim the same time on the same day"""
        if fields['is_blocked'] or not fields['is_active']:
            return

        others = db.query(AvailabilityBlock).filter(
            AvailabilityBlock.is_active.is_(True),
            AvailabilityBlock.is_blocked.is_(False)
        ).all()

        for other in others:
            if other.id == exclude_id:
                continue
            if not overlaps(fields['start_time'], fields['end_time'], other.start_time, other.end_time):
                continue

            if fields['specific_date'] is not None:
                shares_day = other.applies_to(fields['specific_date'])
            elif other.specific_date is not None:
                shares_day = other.specific_date.isoweekday() in fields['days_of_week']
            else:
                shares_day = bool(set(fields['days_of_week']) & set(other.weekdays))

            if shares_day:
                raise ValidationError(
                    f"Block overlaps existing block '{other.name or 'Untitled'}' "
                    f"({other.start_time.strftime('%H:%M')}-{other.end_time.strftime('%H:%M')})",
                    code='BLOCK_OVERLAP',
                    details={'block_id': other.id}
                )
