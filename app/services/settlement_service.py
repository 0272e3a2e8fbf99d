"""
Règlement d'un trajet terminé.

- Validation : le prix passe du pool "attente" au chauffeur. Déclenchée par
  le passager (validation -> "validé") ou par un employé qui tranche un
  litige en faveur du chauffeur (validation -> "résolu"). Les deux chemins
  passent par `_pay_driver`, avec la même convention de signe.
- Remboursement : un employé tranche en faveur du passager. Le pool
  "attente" rend le prix, le pool de frais rend les frais de service, et le
  passager reçoit prix + 1 crédit de compensation (validation -> "remboursé").

Chaque changement de statut est un compare-and-swap, et la transaction
comptable porte la clé `reglement:<id>` : une validation n'est réglée
qu'une seule fois, même si passager et employé agissent en même temps.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from app.core.config import settings
from app.core.errors import AuthorizationError, Conflict, NotFound, ValidationError
from app.db.session import run_in_transaction
from app.models.credit import LedgerTransactionKind
from app.models.review import Review
from app.models.ride import Ride
from app.models.user import User
from app.models.validation import Validation, ValidationStatus
from app.schemas.ledger import ESCROW_POOL, PLATFORM_FEE_POOL, UserAccount
from app.schemas.validation import DisputeOutcome
from app.services import archive_service
from app.services.ledger import LedgerService
from app.services.ride_service import get_ride
from app.services.user_service import ensure_active, ensure_staff, log_admin_action

logger = logging.getLogger(__name__)

def get_validation(db: Session, validation_id: int) -> Validation:
    validation = db.get(Validation, validation_id)
    if not validation:
        raise NotFound("Cette validation n'existe plus.")
    return validation

def _transition(session: Session, validation: Validation, expected: ValidationStatus,
                new: ValidationStatus, **values):
    now = datetime.now(timezone.utc)
    result = session.exec(
        update(Validation)
        .where(Validation.id == validation.id, Validation.status == expected)
        .values(status=new, updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise Conflict("Cette validation a déjà été traitée.")

def _settlement_key(validation: Validation) -> str:
    return f"reglement:{validation.id}"

def _pay_driver(session: Session, validation: Validation, ride: Ride, actor: User, description: str):
    ledger = LedgerService(session)
    ledger.begin(
        LedgerTransactionKind.TRIP_VALIDATION,
        key=_settlement_key(validation),
        ride_id=ride.id,
        validation_id=validation.id,
        actor_id=actor.id,
        description=description,
    )
    ledger.transfer(ESCROW_POOL, UserAccount(user_id=validation.driver_id), ride.price)

# --- CÔTÉ PASSAGER ---
def list_pending_validations(db: Session, passenger: User) -> List[Validation]:
    statement = select(Validation).where(
        Validation.passenger_id == passenger.id,
        Validation.status.in_([ValidationStatus.PENDING, ValidationStatus.DISPUTED]),
    ).order_by(Validation.created_at)
    return db.exec(statement).all()

def _own_pending_validation(db: Session, passenger: User, validation_id: int) -> Validation:
    ensure_active(passenger)
    validation = get_validation(db, validation_id)
    if validation.passenger_id != passenger.id:
        raise AuthorizationError("Vous n'êtes pas autorisé à voir cette validation.")
    if validation.status != ValidationStatus.PENDING:
        raise Conflict("Cette validation a déjà été traitée.")
    return validation

def validate_trip(db: Session, passenger: User, validation_id: int,
                  rating: Optional[int] = None, comment: Optional[str] = None) -> Validation:
    """Le passager confirme le trajet : le chauffeur est payé, un avis peut être laissé."""
    validation = _own_pending_validation(db, passenger, validation_id)
    if rating is not None and not 1 <= rating <= 5:
        raise ValidationError("La note doit être comprise entre 1 et 5.")
    ride = get_ride(db, validation.ride_id)

    def work(session: Session) -> Optional[Review]:
        _transition(session, validation, ValidationStatus.PENDING, ValidationStatus.VALIDATED)
        _pay_driver(session, validation, ride, passenger, "Validation du trajet par le passager")
        if rating is None:
            return None
        review = Review(
            driver_id=validation.driver_id,
            author_id=passenger.id,
            ride_id=ride.id,
            rating=rating,
            comment=comment,
        )
        session.add(review)
        return review

    review = run_in_transaction(db, work)
    db.refresh(validation)
    logger.info(f"Validation {validation.id} confirmée par {passenger.email}, {ride.price} crédits au chauffeur")

    archive_service.archive_transaction(
        validation.driver_id, ride.price, LedgerTransactionKind.TRIP_VALIDATION,
        "Paiement du trajet", ride_id=ride.id,
    )
    if review is not None:
        archive_service.archive_review(review)
    return validation

def open_dispute(db: Session, passenger: User, validation_id: int, reason: str) -> Validation:
    """Le passager conteste le trajet. Aucun crédit ne bouge avant la décision d'un employé."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Merci de décrire le problème rencontré.")
    validation = _own_pending_validation(db, passenger, validation_id)

    run_in_transaction(db, lambda session: _transition(
        session, validation, ValidationStatus.PENDING, ValidationStatus.DISPUTED,
        dispute_reason=reason, disputed_at=datetime.now(timezone.utc),
    ))
    db.refresh(validation)
    logger.info(f"Litige ouvert sur la validation {validation.id} par {passenger.email}")
    archive_service.archive_dispute(validation, "En cours")
    return validation

# --- CÔTÉ EMPLOYÉ ---
def list_disputes(db: Session, employee: User) -> List[Validation]:
    ensure_staff(employee)
    statement = select(Validation).where(Validation.status == ValidationStatus.DISPUTED).order_by(Validation.disputed_at)
    return db.exec(statement).all()

def resolve_dispute(db: Session, employee: User, validation_id: int, outcome: DisputeOutcome) -> Validation:
    ensure_staff(employee)
    validation = get_validation(db, validation_id)
    if validation.status != ValidationStatus.DISPUTED:
        raise Conflict("Cette validation n'est pas en litige.")
    ride = get_ride(db, validation.ride_id)
    now = datetime.now(timezone.utc)
    refund = ride.price + settings.DISPUTE_COMPENSATION

    def work(session: Session):
        if outcome == DisputeOutcome.DRIVER:
            _transition(session, validation, ValidationStatus.DISPUTED, ValidationStatus.RESOLVED,
                        resolution="validé", decided_by=employee.id, resolved_at=now)
            _pay_driver(session, validation, ride, employee, "Paiement suite à la résolution du litige")
            action = "Litige résolu en faveur du chauffeur"
        else:
            _transition(session, validation, ValidationStatus.DISPUTED, ValidationStatus.REFUNDED,
                        resolution="remboursé", decided_by=employee.id, resolved_at=now)
            ledger = LedgerService(session)
            ledger.begin(
                LedgerTransactionKind.DISPUTE_REFUND,
                key=_settlement_key(validation),
                ride_id=ride.id,
                validation_id=validation.id,
                actor_id=employee.id,
                description="Remboursement passager suite litige",
            )
            ledger.debit(ESCROW_POOL, ride.price)
            ledger.debit(PLATFORM_FEE_POOL, settings.SERVICE_FEE)
            ledger.credit(UserAccount(user_id=validation.passenger_id), refund)
            action = "Litige résolu en faveur du passager"
        log_admin_action(session, employee, action, target_user_id=validation.passenger_id,
                         details=f"validation {validation.id}")

    run_in_transaction(db, work)
    db.refresh(validation)
    logger.info(f"Litige {validation.id} tranché par {employee.email} : {outcome.value}")

    if outcome == DisputeOutcome.DRIVER:
        archive_service.archive_transaction(
            validation.driver_id, ride.price, LedgerTransactionKind.TRIP_VALIDATION,
            "Paiement suite à la résolution du litige", ride_id=ride.id,
        )
        archive_service.archive_dispute(validation, "Validé", employee.id)
    else:
        archive_service.archive_transaction(
            validation.passenger_id, refund, LedgerTransactionKind.DISPUTE_REFUND,
            "Remboursement passager suite litige", ride_id=ride.id,
        )
        archive_service.archive_dispute(validation, "Remboursé", employee.id)
    return validation
