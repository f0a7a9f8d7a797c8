from datetime import datetime, timedelta
from typing import Callable, Dict, List
from sqlalchemy.orm import Session
from fitslot.database import Database, DatabaseManager
from fitslot.errors import NotFoundError, InvalidStateError, ValidationError
from fitslot.models import TrainingPlan, PurchasedPlan
from fitslot.models.credit import TransactionType
from fitslot.models.plan import PurchaseStatus
from fitslot.services.credit_service import CreditService
from fitslot.utils.locks import KeyedLock, user_key
from fitslot.utils.validators import validate_catalogue_item
from fitslot.utils.logger import get_logger

logger = get_logger(__name__)


class PlanService:
    """Training plans and their purchase with credits"""

    def __init__(self, database: Database, credit_service: CreditService, locks: KeyedLock = None,
                 clock: Callable[[], datetime] = None):
        self.database = database
        self.credits = credit_service
        self.locks = locks or credit_service.locks
        self.clock = clock or datetime.now
        self.plan_db = DatabaseManager(database, TrainingPlan)

    def list_plans(self, active_only: bool = True) -> List[Dict]:
        with self.database.session() as db:
            query = db.query(TrainingPlan)
            if active_only:
                query = query.filter(TrainingPlan.is_active.is_(True))
            return [p.to_dict() for p in query.order_by(TrainingPlan.sort_order, TrainingPlan.id).all()]

    def get_plan(self, plan_id: int) -> Dict:
        plan = self.plan_db.get(plan_id)
        if not plan:
            raise NotFoundError('Plan not found')
        return plan.to_dict()

    def create_plan(self, data: Dict) -> Dict:
        self._validate(data, required=('name', 'credits'))

        plan = self.plan_db.create(
            name=data['name'],
            description=data.get('description'),
            credits=data['credits'],
            price=float(data.get('price', 0)),
            currency=data.get('currency', 'CZK'),
            validity_days=data.get('validity_days', 30),
            sessions_count=data.get('sessions_count'),
            is_active=data.get('is_active', True),
            sort_order=data.get('sort_order', 0)
        )
        logger.info(f"Training plan created: {plan.id}")
        return plan.to_dict()

    def update_plan(self, plan_id: int, data: Dict) -> Dict:
        allowed = {'name', 'description', 'credits', 'price', 'currency', 'validity_days',
                   'sessions_count', 'is_active', 'sort_order'}
        changes = {k: v for k, v in data.items() if k in allowed}
        self._validate(changes)
        if 'price' in changes:
            changes['price'] = float(changes['price'])

        plan = self.plan_db.update(plan_id, **changes)
        if not plan:
            raise NotFoundError('Plan not found')
        return plan.to_dict()

    def delete_plan(self, plan_id: int) -> bool:
        """Plans with purchases are deactivated instead of removed"""
        with self.database.session() as db:
            plan = self._get(db, plan_id)
            if plan.purchases.count():
                plan.is_active = False
                logger.info(f"Training plan {plan_id} has purchases, deactivated")
            else:
                db.delete(plan)
                logger.info(f"Training plan {plan_id} deleted")
        return True

    def purchase_plan(self, user_id: int, plan_id: int) -> Dict:
        """Pay for a plan with credits; the debit and the purchase commit together"""
        with self.locks.hold(user_key(user_id)):
            with self.database.session() as db:
                user = self.credits.get_user(db, user_id)
                plan = self._get(db, plan_id)
                if not plan.is_active:
                    raise InvalidStateError('This plan is not available for purchase')

                owned = db.query(PurchasedPlan).filter_by(
                    user_id=user.id, plan_id=plan.id, status=PurchaseStatus.ACTIVE
                ).first()
                if owned:
                    raise InvalidStateError('You have already purchased this plan')

                self.credits.debit(
                    db, user, plan.credits, TransactionType.PLAN_PURCHASE,
                    reference_id=plan.id,
                    note=f'Purchased plan {plan.name}'
                )

                today = self.clock().date()
                purchase = PurchasedPlan(
                    user_id=user.id,
                    plan_id=plan.id,
                    credits_used=plan.credits,
                    purchase_date=today,
                    expiry_date=today + timedelta(days=plan.validity_days),
                    sessions_remaining=plan.sessions_count,
                    status=PurchaseStatus.ACTIVE
                )
                db.add(purchase)
                db.flush()

                logger.info(f"User {user_id} purchased plan {plan.id} for {plan.credits} credits")
                result = purchase.to_dict()
                result['balance'] = user.credits
                return result

    def get_user_plans(self, user_id: int) -> List[Dict]:
        with self.database.session() as db:
            purchases = db.query(PurchasedPlan).filter_by(user_id=user_id).order_by(
                PurchasedPlan.purchase_date.desc(), PurchasedPlan.id.desc()
            ).all()
            return [p.to_dict() for p in purchases]

    def _get(self, db: Session, plan_id: int) -> TrainingPlan:
        plan = db.query(TrainingPlan).filter_by(id=plan_id).first()
        if not plan:
            raise NotFoundError('Plan not found')
        return plan

    @staticmethod
    def _validate(data: Dict, required=()):
        valid, error = validate_catalogue_item(data, required)
        if not valid:
            raise ValidationError(error)
