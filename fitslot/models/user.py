from sqlalchemy import Column, String, Boolean, Enum, Integer
from sqlalchemy.orm import relationship
import enum
from .base import BaseModel, format_timestamp


class UserRole(enum.Enum):
    CLIENT = "client"
    ADMIN = "admin"


class User(BaseModel):
    __tablename__ = 'users'

    # Basic Info
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100))
    last_name = Column(String(100))
    phone = Column(String(20))
    role = Column(Enum(UserRole), nullable=False, default=UserRole.CLIENT)

    # Status
    is_active = Column(Boolean, default=True)

    # Materialized ledger balance; written only by CreditService
    credits = Column(Integer, nullable=False, default=0)

    # Relationships
    reservations = relationship("Reservation", back_populates="user", lazy='dynamic')
    credit_transactions = relationship("CreditTransaction", back_populates="user", lazy='dynamic')

    @property
    def full_name(self):
        return f"{self.first_name or ''} {self.last_name or ''}".strip() or None

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'name': self.full_name,
            'phone': self.phone,
            'role': self.role.value if self.role else None,
            'is_active': self.is_active,
            'credits': self.credits,
            'created_at': format_timestamp(self.created_at)
        }
