from typing import Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from fitslot.database import Database, DatabaseManager
from fitslot.errors import NotFoundError, InsufficientCreditsError, ValidationError
from fitslot.models import User, CreditTransaction, CreditPackage, PricingItem
from fitslot.models.credit import TransactionType
from fitslot.utils.locks import KeyedLock, user_key
from fitslot.utils.validators import validate_credit_amount, validate_catalogue_item
from fitslot.utils.logger import get_logger
from config.config import Config

logger = get_logger(__name__)


class CreditService:
    """Credit ledger: append-only transactions plus the derived balance.

    Nothing else writes ``User.credits``. Every change goes through
    :meth:`record_transaction`, which appends the row and then recomputes the
    balance from the ledger, so the two cannot drift apart.
    """

    def __init__(self, database: Database, locks: KeyedLock = None):
        self.database = database
        self.locks = locks or KeyedLock()
        self.package_db = DatabaseManager(database, CreditPackage)
        self.pricing_db = DatabaseManager(database, PricingItem)

    def get_user(self, db: Session, user_id: int) -> User:
        user = db.query(User).filter_by(id=user_id).first()
        if not user:
            raise NotFoundError('User not found')
        return user

    def ledger_sum(self, db: Session, user_id: int) -> int:
        total = db.query(func.coalesce(func.sum(CreditTransaction.amount), 0)).filter(
            CreditTransaction.user_id == user_id
        ).scalar()
        return int(total or 0)

    def record_transaction(self, db: Session, user: User, amount: int,
                           transaction_type: TransactionType, reference_id: int = None,
                           note: str = None, external_payment_id: str = None) -> CreditTransaction:
        """Append a ledger row and recompute the user's balance"""
        transaction = CreditTransaction(
            user_id=user.id,
            amount=amount,
            transaction_type=transaction_type,
            reference_id=reference_id,
            external_payment_id=external_payment_id,
            note=note
        )
        db.add(transaction)
        db.flush()

        user.credits = self.ledger_sum(db, user.id)
        db.flush()

        logger.info(
            f"Ledger {transaction_type.value} {amount:+d} for user {user.id} "
            f"(ref={reference_id}), balance now {user.credits}"
        )
        return transaction

    def debit(self, db: Session, user: User, amount: int, transaction_type: TransactionType,
              reference_id: int = None, note: str = None) -> Optional[CreditTransaction]:
        """Take credits off a user, refusing to go below zero. Zero is a no-op."""
        if amount < 0:
            raise ValidationError('Debit amount must not be negative')
        if amount == 0:
            return None
        balance = self.ledger_sum(db, user.id)
        if balance < amount:
            raise InsufficientCreditsError(
                f'Not enough credits. Required: {amount}, Available: {balance}',
                details={'required': amount, 'available': balance}
            )
        return self.record_transaction(db, user, -amount, transaction_type, reference_id, note)

    def refund(self, db: Session, user: User, amount: int, reference_id: int,
               note: str = None) -> Optional[CreditTransaction]:
        if amount <= 0:
            return None
        return self.record_transaction(db, user, amount, TransactionType.REFUND, reference_id, note)

    def resolve_reservation_credits(self, db: Session, pricing_item_id: int = None) -> int:
        """Credits a booking costs: from the pricing item, else the default"""
        if pricing_item_id is None:
            return Config.DEFAULT_RESERVATION_CREDITS
        item = db.query(PricingItem).filter_by(id=pricing_item_id).first()
        if not item or not item.is_active:
            raise NotFoundError('Pricing item not found')
        return item.credits

    def get_balance(self, user_id: int) -> Dict:
        with self.database.session() as db:
            user = self.get_user(db, user_id)
            return {'user_id': user.id, 'balance': user.credits}

    def get_transactions(self, user_id: int, limit: int = 50) -> List[Dict]:
        with self.database.session() as db:
            self.get_user(db, user_id)
            transactions = db.query(CreditTransaction).filter_by(user_id=user_id).order_by(
                CreditTransaction.created_at.desc(), CreditTransaction.id.desc()
            ).limit(limit).all()
            return [t.to_dict() for t in transactions]

    def get_all_transactions(self, limit: int = 100) -> List[Dict]:
        with self.database.session() as db:
            transactions = db.query(CreditTransaction).order_by(
                CreditTransaction.created_at.desc(), CreditTransaction.id.desc()
            ).limit(limit).all()
            return [t.to_dict() for t in transactions]

    def verify_ledger(self, user_id: int) -> bool:
        """True when the stored balance equals the sum of the ledger"""
        with self.database.session() as db:
            user = self.get_user(db, user_id)
            return user.credits == self.ledger_sum(db, user_id)

    def adjust_credits(self, user_id: int, amount: int, note: str = None) -> int:
        """Admin correction; recorded like any other ledger entry"""
        valid, error = validate_credit_amount(amount)
        if not valid:
            raise ValidationError(error)

        with self.locks.hold(user_key(user_id)):
            with self.database.session() as db:
                user = self.get_user(db, user_id)
                balance = self.ledger_sum(db, user.id)
                if balance + amount < 0:
                    raise InsufficientCreditsError(
                        f'Adjustment would leave a negative balance ({balance + amount})',
                        details={'available': balance, 'amount': amount}
                    )
                self.record_transaction(
                    db, user, amount, TransactionType.ADMIN_ADJUSTMENT,
                    note=note or 'Adjusted by admin'
                )
                return user.credits

    def add_credits_from_payment(self, user_id: int, package_id: int, external_payment_id: str) -> int:
        """Credit a purchased package. Replays of the same payment id are ignored."""
        if not external_payment_id:
            raise ValidationError('External payment id is required')

        with self.locks.hold(user_key(user_id)):
            with self.database.session() as db:
                user = self.get_user(db, user_id)

                existing = db.query(CreditTransaction).filter_by(
                    external_payment_id=external_payment_id
                ).first()
                if existing:
                    logger.warning(f"Payment {external_payment_id} already credited, skipping")
                    return user.credits

                package = db.query(CreditPackage).filter_by(id=package_id).first()
                if not package:
                    raise NotFoundError('Package not found')

                self.record_transaction(
                    db, user, package.total_credits, TransactionType.PURCHASE,
                    reference_id=package.id,
                    note=f'Purchased {package.name}',
                    external_payment_id=external_payment_id
                )
                return user.credits

    def get_packages(self, active_only: bool = True) -> List[Dict]:
        with self.database.session() as db:
            query = db.query(CreditPackage)
            if active_only:
                query = query.filter(CreditPackage.is_active.is_(True))
            return [p.to_dict() for p in query.order_by(CreditPackage.sort_order, CreditPackage.id).all()]

    def get_package(self, package_id: int, active_only: bool = True) -> Dict:
        package = self.package_db.get(package_id)
        if not package or (active_only and not package.is_active):
            raise NotFoundError('Package not found')
        return package.to_dict()

    def create_package(self, data: Dict) -> Dict:
        _check_catalogue(data, required=('name', 'credits', 'price'))

        package = self.package_db.create(
            name=data['name'],
            description=data.get('description'),
            credits=data['credits'],
            bonus_credits=data.get('bonus_credits', 0) or 0,
            price=float(data['price']),
            currency=data.get('currency', 'CZK'),
            is_active=data.get('is_active', True),
            sort_order=data.get('sort_order', 0)
        )
        logger.info(f"Credit package created: {package.id}")
        return package.to_dict()

    def update_package(self, package_id: int, data: Dict) -> Dict:
        allowed = {'name', 'description', 'credits', 'bonus_credits', 'price', 'currency', 'is_active', 'sort_order'}
        changes = {k: v for k, v in data.items() if k in allowed}
        _check_catalogue(changes)
        if 'price' in changes:
            changes['price'] = float(changes['price'])

        package = self.package_db.update(package_id, **changes)
        if not package:
            raise NotFoundError('Package not found')
        return package.to_dict()

    def delete_package(self, package_id: int) -> bool:
        if not self.package_db.delete(package_id):
            raise NotFoundError('Package not found')
        return True

    def get_pricing_items(self, active_only: bool = True) -> List[Dict]:
        with self.database.session() as db:
            query = db.query(PricingItem)
            if active_only:
                query = query.filter(PricingItem.is_active.is_(True))
            return [p.to_dict() for p in query.order_by(PricingItem.sort_order, PricingItem.id).all()]

    def create_pricing_item(self, data: Dict) -> Dict:
        _check_catalogue(data, required=('name', 'credits'))

        item = self.pricing_db.create(
            name=data['name'],
            description=data.get('description'),
            credits=data['credits'],
            duration_minutes=data.get('duration_minutes', Config.DEFAULT_SLOT_DURATION_MINUTES),
            is_active=data.get('is_active', True),
            sort_order=data.get('sort_order', 0)
        )
        logger.info(f"Pricing item created: {item.id}")
        return item.to_dict()

    def update_pricing_item(self, item_id: int, data: Dict) -> Dict:
        allowed = {'name', 'description', 'credits', 'duration_minutes', 'is_active', 'sort_order'}
        changes = {k: v for k, v in data.items() if k in allowed}
        _check_catalogue(changes)

        item = self.pricing_db.update(item_id, **changes)
        if not item:
            raise NotFoundError('Pricing item not found')
        return item.to_dict()

    def delete_pricing_item(self, item_id: int) -> bool:
        if not self.pricing_db.delete(item_id):
            raise NotFoundError('Pricing item not found')
        return True


def _check_catalogue(data: Dict, required=()):
    valid, error = validate_catalogue_item(data, required)
    if not valid:
        raise ValidationError(error)
