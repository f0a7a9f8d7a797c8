from sqlalchemy import Column, String, Integer, Float, ForeignKey, Date, Boolean, Enum
from sqlalchemy.orm import relationship
import enum
from .base import BaseModel, format_date, format_timestamp


class PurchaseStatus(enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class TrainingPlan(BaseModel):
    """A plan a client buys with credits"""
    __tablename__ = 'training_plans'

    name = Column(String(255), nullable=False)
    description = Column(String(2000))
    credits = Column(Integer, nullable=False)
    price = Column(Float, nullable=False, default=0)
    currency = Column(String(3), default='CZK')
    validity_days = Column(Integer, nullable=False, default=30)
    sessions_count = Column(Integer)
    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)

    purchases = relationship("PurchasedPlan", back_populates="plan", lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'credits': self.credits,
            'price': self.price,
            'currency': self.currency,
            'validity_days': self.validity_days,
            'sessions_count': self.sessions_count,
            'is_active': self.is_active,
            'sort_order': self.sort_order
        }


class PurchasedPlan(BaseModel):
    __tablename__ = 'purchased_plans'

    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey('training_plans.id'), nullable=False, index=True)

    credits_used = Column(Integer, nullable=False)
    purchase_date = Column(Date, nullable=False)
    expiry_date = Column(Date, nullable=False)
    sessions_remaining = Column(Integer)
    status = Column(Enum(PurchaseStatus), nullable=False, default=PurchaseStatus.ACTIVE)

    # Relationships
    plan = relationship("TrainingPlan", back_populates="purchases")

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'plan_id': self.plan_id,
            'plan_name': self.plan.name if self.plan else None,
            'credits_used': self.credits_used,
            'purchase_date': format_date(self.purchase_date),
            'expiry_date': format_date(self.expiry_date),
            'sessions_remaining': self.sessions_remaining,
            'status': self.status.value,
            'created_at': format_timestamp(self.created_at)
        }
