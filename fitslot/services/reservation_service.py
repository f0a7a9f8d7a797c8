from datetime import date, datetime, timedelta
from typing import Callable, Dict, List
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from fitslot.database import Database
from fitslot.errors import (
    NotFoundError, InvalidStateError, AlreadyCancelledError, SlotUnavailableError,
    InsufficientCreditsError, NotOwnerError, CancellationWindowPassedError, ValidationError
)
from fitslot.models import AvailabilityBlock, Reservation, Slot
from fitslot.models.credit import TransactionType
from fitslot.models.reservation import ReservationStatus
from fitslot.models.slot import SlotStatus
from fitslot.services.availability_service import AvailabilityService
from fitslot.services.credit_service import CreditService
from fitslot.utils.locks import KeyedLock, block_date_key, slot_key, reservation_key, user_key
from fitslot.utils.timeutils import parse_date, parse_time, overlaps
from fitslot.utils.logger import get_logger
from config.config import Config

logger = get_logger(__name__)


class ReservationService:
    """Service for booking and cancelling reservations.

    Creates for one (block, date) are serialized by a keyed lock held across
    availability revalidation and commit. The per-user lock is always taken
    last, and every lock is taken before the session opens.
    """

    def __init__(self, database: Database, availability_service: AvailabilityService,
                 credit_service: CreditService, locks: KeyedLock = None,
                 clock: Callable[[], datetime] = None):
        self.database = database
        self.availability = availability_service
        self.credits = credit_service
        self.locks = locks or credit_service.locks
        self.clock = clock or datetime.now

    def create_reservation(self, user_id: int, block_id: int, date, start_time, end_time,
                           pricing_item_id: int = None) -> Dict:
        """Book a computed slot for a client"""
        day, start, end = self._parse_schedule(date, start_time, end_time)
        self._check_horizon(day, Config.MAX_ADVANCE_BOOKING_DAYS, allow_past=False)

        with self.locks.hold(block_date_key(block_id, day)), self.locks.hold(user_key(user_id)):
            with self.database.session() as db:
                user = self.credits.get_user(db, user_id)

                block = db.query(AvailabilityBlock).filter_by(id=block_id).with_for_update().first()
                if not block or not self.availability.validate_slot_for_reservation(
                        day, start, end, block_id, db=db):
                    logger.warning(f"Slot {day} {start}-{end} on block {block_id} unavailable for user {user_id}")
                    raise SlotUnavailableError('Selected slot is not available')

                self._check_user_overlap(db, user_id, day, start, end)

                cost = self.credits.resolve_reservation_credits(db, pricing_item_id)
                self._check_balance(db, user.id, cost)

                reservation = Reservation(
                    user_id=user.id,
                    block_id=block_id,
                    pricing_item_id=pricing_item_id,
                    date=day,
                    start_time=start,
                    end_time=end,
                    status=ReservationStatus.CONFIRMED,
                    credits_used=cost
                )
                db.add(reservation)
                self._flush_reservation(db, reservation)

                self.credits.debit(
                    db, user, cost, TransactionType.RESERVATION,
                    reference_id=reservation.id,
                    note=f'Reservation on {day.isoformat()} {start.strftime("%H:%M")}'
                )

                logger.info(f"Reservation {reservation.id} created for user {user_id} on {day} {start}-{end}")
                return reservation.to_dict()

    def cancel_reservation(self, user_id: int, reservation_id: int) -> Dict:
        """Client cancel with full refund, allowed until the cancellation window"""
        with self.locks.hold(reservation_key(reservation_id)), self.locks.hold(user_key(user_id)):
            with self.database.session() as db:
                reservation = self._get(db, reservation_id)

                if reservation.user_id != user_id:
                    logger.warning(f"User {user_id} tried to cancel reservation {reservation_id} of another user")
                    raise NotOwnerError('You can only cancel your own reservations')
                self._check_cancellable(reservation)

                window = timedelta(hours=Config.CANCELLATION_WINDOW_HOURS)
                if reservation.starts_at - self.clock() < window:
                    logger.warning(f"Cancellation of reservation {reservation_id} rejected, inside window")
                    raise CancellationWindowPassedError(
                        f'Reservations can only be cancelled at least '
                        f'{Config.CANCELLATION_WINDOW_HOURS} hours in advance'
                    )

                self._mark_cancelled(db, reservation, refund=True, note='Refund for cancelled reservation')
                return reservation.to_dict()

    def admin_cancel_reservation(self, reservation_id: int, refund_credits: bool = True) -> Dict:
        """Cancel any reservation without owner or window checks"""
        owner_id = self._owner_of(reservation_id)

        with self.locks.hold(reservation_key(reservation_id)), self.locks.hold(user_key(owner_id)):
            with self.database.session() as db:
                reservation = self._get(db, reservation_id)
                self._check_cancellable(reservation)
                self._mark_cancelled(
                    db, reservation, refund=refund_credits,
                    note='Refund for reservation cancelled by admin'
                )
                return reservation.to_dict()

    def admin_create_reservation(self, slot_id: int, user_id: int, deduct_credits: bool = True,
                                 note: str = None) -> Dict:
        """Book an admin-managed slot for a user, bypassing computed availability"""
        with self.locks.hold(slot_key(slot_id)), self.locks.hold(user_key(user_id)):
            with self.database.session() as db:
                slot = db.query(Slot).filter_by(id=slot_id).with_for_update().first()
                if not slot:
                    raise NotFoundError('Slot not found')
                if slot.status in (SlotStatus.RESERVED, SlotStatus.BLOCKED):
                    raise InvalidStateError(f'Slot is {slot.status.value} and cannot be reserved')

                self._check_horizon(slot.date, Config.ADMIN_MAX_ADVANCE_BOOKING_DAYS, allow_past=True)

                user = self.credits.get_user(db, user_id)
                self._check_user_overlap(db, user_id, slot.date, slot.start_time, slot.end_time)

                cost = 1 if deduct_credits else 0
                self._check_balance(db, user.id, cost)

                reservation = Reservation(
                    user_id=user.id,
                    slot_id=slot.id,
                    date=slot.date,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    status=ReservationStatus.CONFIRMED,
                    credits_used=cost,
                    note=note
                )
                db.add(reservation)
                self._flush_reservation(db, reservation)

                slot.status = SlotStatus.RESERVED
                slot.assigned_user_id = user.id
                slot.cancelled_at = None
                if note:
                    slot.note = note

                self.credits.debit(
                    db, user, cost, TransactionType.RESERVATION,
                    reference_id=reservation.id,
                    note=f'Admin reservation on {slot.date.isoformat()}'
                )

                logger.info(f"Admin reservation {reservation.id} on slot {slot.id} for user {user_id}")
                return reservation.to_dict()

    def get_reservation(self, reservation_id: int) -> Dict:
        with self.database.session() as db:
            return self._get(db, reservation_id).to_dict()

    def get_user_reservations(self, user_id: int) -> List[Dict]:
        with self.database.session() as db:
            reservations = db.query(Reservation).filter_by(user_id=user_id).order_by(
                Reservation.date.desc(), Reservation.start_time.desc()
            ).all()
            return [r.to_dict() for r in reservations]

    def get_upcoming_reservations(self, user_id: int) -> List[Dict]:
        """Confirmed reservations from today on"""
        today = self.clock().date()
        with self.database.session() as db:
            reservations = db.query(Reservation).filter(
                Reservation.user_id == user_id,
                Reservation.status == ReservationStatus.CONFIRMED,
                Reservation.date >= today
            ).order_by(Reservation.date, Reservation.start_time).all()
            return [r.to_dict() for r in reservations]

    def get_reservations_by_date_range(self, start_date, end_date) -> List[Dict]:
        try:
            start_day, end_day = parse_date(start_date), parse_date(end_date)
        except ValueError as e:
            raise ValidationError(str(e))
        if end_day < start_day:
            raise ValidationError('End date must not be before start date')

        with self.database.session() as db:
            reservations = db.query(Reservation).filter(
                Reservation.date >= start_day,
                Reservation.date <= end_day
            ).order_by(Reservation.date, Reservation.start_time).all()
            return [r.to_dict() for r in reservations]

    def update_reservation_note(self, reservation_id: int, note: str = None) -> Dict:
        with self.database.session() as db:
            reservation = self._get(db, reservation_id)
            reservation.note = note or None
            db.flush()
            return reservation.to_dict()

    def _get(self, db: Session, reservation_id: int) -> Reservation:
        reservation = db.query(Reservation).filter_by(id=reservation_id).first()
        if not reservation:
            raise NotFoundError('Reservation not found')
        return reservation

    @staticmethod
    def _flush_reservation(db: Session, reservation: Reservation):
        """Insert the row, reporting a confirmed duplicate as an unavailable slot"""
        try:
            db.flush()
        except IntegrityError:
            logger.warning(
                f"Reservation {reservation.date} {reservation.start_time} "
                f"(block={reservation.block_id}, slot={reservation.slot_id}) already taken"
            )
            raise SlotUnavailableError('Selected slot is not available')

    def _owner_of(self, reservation_id: int) -> int:
        with self.database.session() as db:
            return self._get(db, reservation_id).user_id

    @staticmethod
    def _parse_schedule(day, start_time, end_time):
        try:
            day, start, end = parse_date(day), parse_time(start_time), parse_time(end_time)
        except ValueError as e:
            raise ValidationError(str(e))
        if start >= end:
            raise ValidationError('Start time must be before end time')
        return day, start, end

    def _check_horizon(self, day: date, max_days: int, allow_past: bool):
        today = self.clock().date()
        if not allow_past and day < today:
            raise ValidationError('Cannot create reservation for a past date')
        if day > today + timedelta(days=max_days):
            raise ValidationError(f'Cannot create reservation more than {max_days} days in advance')

    def _check_user_overlap(self, db: Session, user_id: int, day: date, start, end):
        own = db.query(Reservation).filter(
            Reservation.user_id == user_id,
            Reservation.date == day,
            Reservation.status == ReservationStatus.CONFIRMED
        ).all()
        for other in own:
            if overlaps(start, end, other.start_time, other.end_time):
                logger.warning(f"User {user_id} already has reservation {other.id} at {day} {other.start_time}")
                raise SlotUnavailableError(
                    'You already have a reservation at this time',
                    details={'reservation_id': other.id}
                )

    def _check_balance(self, db: Session, user_id: int, cost: int):
        balance = self.credits.ledger_sum(db, user_id)
        if balance < cost:
            logger.warning(f"User {user_id} has {balance} credits, needs {cost}")
            raise InsufficientCreditsError(
                f'Not enough credits. Required: {cost}, Available: {balance}',
                details={'required': cost, 'available': balance}
            )

    @staticmethod
    def _check_cancellable(reservation: Reservation):
        if reservation.status == ReservationStatus.CANCELLED:
            raise AlreadyCancelledError('Reservation is already cancelled')
        if reservation.status != ReservationStatus.CONFIRMED:
            raise InvalidStateError(f'Reservation is {reservation.status.value} and cannot be cancelled')

    def _mark_cancelled(self, db: Session, reservation: Reservation, refund: bool, note: str):
        """Conditional CONFIRMED -> CANCELLED; only one concurrent caller wins"""
        now = self.clock()
        updated = db.query(Reservation).filter(
            Reservation.id == reservation.id,
            Reservation.status == ReservationStatus.CONFIRMED
        ).update(
            {Reservation.status: ReservationStatus.CANCELLED, Reservation.cancelled_at: now},
            synchronize_session=False
        )
        if updated == 0:
            raise AlreadyCancelledError('Reservation is already cancelled')
        db.refresh(reservation)

        if reservation.slot_id is not None:
            slot = db.query(Slot).filter_by(id=reservation.slot_id).first()
            if slot and slot.status == SlotStatus.RESERVED:
                slot.status = SlotStatus.CANCELLED
                slot.cancelled_at = now

        if refund and reservation.credits_used > 0:
            user = self.credits.get_user(db, reservation.user_id)
            self.credits.refund(db, user, reservation.credits_used, reservation.id, note)

        logger.info(f"Reservation {reservation.id} cancelled (refund={refund and reservation.credits_used > 0})")
