from datetime import datetime
from sqlalchemy import Column, String, Integer, ForeignKey, DateTime, Date, Time, Enum, Index
from sqlalchemy.orm import relationship
import enum
from .base import BaseModel, format_date, format_time, format_timestamp


class ReservationStatus(enum.Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Reservation(BaseModel):
    __tablename__ = 'reservations'

    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Lookup-only references, never cascaded
    block_id = Column(Integer, index=True)
    slot_id = Column(Integer, index=True)
    pricing_item_id = Column(Integer)

    # Schedule
    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    # Status
    status = Column(Enum(ReservationStatus), nullable=False, default=ReservationStatus.CONFIRMED, index=True)
    cancelled_at = Column(DateTime)

    credits_used = Column(Integer, nullable=False, default=1)
    note = Column(String(1000))

    # Relationships
    user = relationship("User", back_populates="reservations")

    # One confirmed reservation per computed slot and per admin slot
    __table_args__ = (
        Index(
            'uq_reservations_block_slot_confirmed', 'block_id', 'date', 'start_time',
            unique=True,
            sqlite_where=status == ReservationStatus.CONFIRMED,
            postgresql_where=status == ReservationStatus.CONFIRMED
        ),
        Index(
            'uq_reservations_slot_confirmed', 'slot_id',
            unique=True,
            sqlite_where=status == ReservationStatus.CONFIRMED,
            postgresql_where=status == ReservationStatus.CONFIRMED
        ),
    )

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.start_time)

    @property
    def ends_at(self) -> datetime:
        return datetime.combine(self.date, self.end_time)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'block_id': self.block_id,
            'slot_id': self.slot_id,
            'pricing_item_id': self.pricing_item_id,
            'date': format_date(self.date),
            'start_time': format_time(self.start_time),
            'end_time': format_time(self.end_time),
            'status': self.status.value,
            'credits_used': self.credits_used,
            'note': self.note,
            'created_at': format_timestamp(self.created_at),
            'cancelled_at': format_timestamp(self.cancelled_at)
        }
