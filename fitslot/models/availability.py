from sqlalchemy import Column, String, Integer, ForeignKey, Date, Time, JSON, Boolean
from .base import BaseModel, format_date, format_time, format_timestamp


class AvailabilityBlock(BaseModel):
    __tablename__ = 'availability_blocks'

    admin_id = Column(Integer, ForeignKey('users.id'))
    name = Column(String(255))

    # Recurring definition: ISO weekdays, 1 = Monday ... 7 = Sunday
    days_of_week = Column(JSON, nullable=False, default=list)

    # One-off definition
    specific_date = Column(Date, index=True)

    # Window
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_duration_minutes = Column(Integer, nullable=False, default=60)

    # Optional pause after every N slots
    break_after_slots = Column(Integer)
    break_duration_minutes = Column(Integer)

    # Flags
    is_recurring = Column(Boolean, default=True)
    is_blocked = Column(Boolean, default=False)  # window is unavailable, e.g. holiday
    is_active = Column(Boolean, default=True, index=True)

    @property
    def weekdays(self):
        return sorted({int(day) for day in (self.days_of_week or [])})

    def applies_to(self, day) -> bool:
        """True if this block defines time on the given date"""
        if self.specific_date is not None:
            return self.specific_date == day
        return day.isoweekday() in self.weekdays

    def to_dict(self):
        return {
            'id': self.id,
            'admin_id': self.admin_id,
            'name': self.name,
            'days_of_week': self.weekdays,
            'specific_date': format_date(self.specific_date),
            'start_time': format_time(self.start_time),
            'end_time': format_time(self.end_time),
            'slot_duration_minutes': self.slot_duration_minutes,
            'break_after_slots': self.break_after_slots,
            'break_duration_minutes': self.break_duration_minutes,
            'is_recurring': self.is_recurring,
            'is_blocked': self.is_blocked,
            'is_active': self.is_active,
            'created_at': format_timestamp(self.created_at)
        }
