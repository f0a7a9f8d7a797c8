from sqlalchemy import Column, String, Integer, ForeignKey, DateTime, Date, Time, Enum, Boolean
from sqlalchemy.orm import relationship
import enum
from .base import BaseModel, format_date, format_time, format_timestamp


class SlotStatus(enum.Enum):
    LOCKED = "locked"        # not visible to clients
    UNLOCKED = "unlocked"    # visible and bookable
    RESERVED = "reserved"
    CANCELLED = "cancelled"
    BLOCKED = "blocked"      # admin blocked, e.g. holiday


class Slot(BaseModel):
    __tablename__ = 'slots'

    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)

    status = Column(Enum(SlotStatus), nullable=False, default=SlotStatus.LOCKED, index=True)

    assigned_user_id = Column(Integer, ForeignKey('users.id'), index=True)
    note = Column(String(1000))

    template_id = Column(Integer, index=True)
    admin_id = Column(Integer, ForeignKey('users.id'), index=True)

    cancelled_at = Column(DateTime)

    def to_dict(self):
        return {
            'id': self.id,
            'date': format_date(self.date),
            'start_time': format_time(self.start_time),
            'end_time': format_time(self.end_time),
            'duration_minutes': self.duration_minutes,
            'status': self.status.value,
            'assigned_user_id': self.assigned_user_id,
            'note': self.note,
            'template_id': self.template_id,
            'admin_id': self.admin_id,
            'created_at': format_timestamp(self.created_at),
            'cancelled_at': format_timestamp(self.cancelled_at)
        }


class SlotTemplate(BaseModel):
    __tablename__ = 'slot_templates'

    name = Column(String(255), nullable=False)
    admin_id = Column(Integer, ForeignKey('users.id'))
    is_active = Column(Boolean, default=True)

    slots = relationship(
        "TemplateSlot",
        back_populates="template",
        cascade="all, delete-orphan",
        order_by=lambda: [TemplateSlot.day_of_week, TemplateSlot.start_time]
    )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'admin_id': self.admin_id,
            'is_active': self.is_active,
            'slots': [slot.to_dict() for slot in self.slots],
            'created_at': format_timestamp(self.created_at)
        }


class TemplateSlot(BaseModel):
    __tablename__ = 'template_slots'

    template_id = Column(Integer, ForeignKey('slot_templates.id'), nullable=False, index=True)

    # ISO weekday; offset from the week start is day_of_week - 1
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)

    template = relationship("SlotTemplate", back_populates="slots")

    @property
    def day_offset(self):
        return self.day_of_week - 1

    def to_dict(self):
        return {
            'id': self.id,
            'day_of_week': self.day_of_week,
            'start_time': format_time(self.start_time),
            'end_time': format_time(self.end_time),
            'duration_minutes': self.duration_minutes
        }
