from .user import User
from .availability import AvailabilityBlock
from .slot import Slot, SlotTemplate, TemplateSlot
from .reservation import Reservation
from .credit import CreditTransaction, CreditPackage, PricingItem
from .plan import TrainingPlan, PurchasedPlan

__all__ = [
    'User', 'AvailabilityBlock', 'Slot', 'SlotTemplate', 'TemplateSlot',
    'Reservation', 'CreditTransaction', 'CreditPackage', 'PricingItem',
    'TrainingPlan', 'PurchasedPlan'
]
