from sqlalchemy import Column, String, Integer, Float, ForeignKey, Enum, Boolean
from sqlalchemy.orm import relationship
import enum
from .base import BaseModel, format_timestamp


class TransactionType(enum.Enum):
    PURCHASE = "purchase"
    RESERVATION = "reservation"
    REFUND = "refund"
    ADMIN_ADJUSTMENT = "admin_adjustment"
    PLAN_PURCHASE = "plan_purchase"


class CreditTransaction(BaseModel):
    """Append-only ledger entry; a user's balance is the sum of their amounts"""
    __tablename__ = 'credit_transactions'

    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    amount = Column(Integer, nullable=False)  # signed
    transaction_type = Column(Enum(TransactionType), nullable=False)

    # Reservation id for RESERVATION/REFUND, package id for PURCHASE
    reference_id = Column(Integer, index=True)

    # Gateway payment id, unique per payment
    external_payment_id = Column(String(255), unique=True)

    note = Column(String(500))

    # Relationships
    user = relationship("User", back_populates="credit_transactions")

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'amount': self.amount,
            'type': self.transaction_type.value,
            'reference_id': self.reference_id,
            'external_payment_id': self.external_payment_id,
            'note': self.note,
            'created_at': format_timestamp(self.created_at)
        }


class CreditPackage(BaseModel):
    __tablename__ = 'credit_packages'

    name = Column(String(255), nullable=False)
    description = Column(String(500))
    credits = Column(Integer, nullable=False)
    bonus_credits = Column(Integer, nullable=False, default=0)
    price = Column(Float, nullable=False)
    currency = Column(String(3), default='CZK')
    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)

    @property
    def total_credits(self):
        return self.credits + (self.bonus_credits or 0)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'credits': self.credits,
            'bonus_credits': self.bonus_credits,
            'total_credits': self.total_credits,
            'price': self.price,
            'currency': self.currency,
            'is_active': self.is_active,
            'sort_order': self.sort_order
        }


class PricingItem(BaseModel):
    """What a booking costs in credits"""
    __tablename__ = 'pricing_items'

    name = Column(String(255), nullable=False)
    description = Column(String(500))
    credits = Column(Integer, nullable=False)
    duration_minutes = Column(Integer, default=60)
    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'credits': self.credits,
            'duration_minutes': self.duration_minutes,
            'is_active': self.is_active,
            'sort_order': self.sort_order
        }
