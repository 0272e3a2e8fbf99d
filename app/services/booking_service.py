"""
Réservation d'une place par un passager, et annulation de cette réservation.

Une réservation est une seule transaction :
    1. prise d'une place (UPDATE conditionnel seats_taken < seats)
    2. inscription du passager (contrainte unique trajet/passager)
    3. débit passager prix + frais, crédit pool de frais, crédit pool "attente"
Si une étape échoue, rien n'est appliqué.
"""
import logging
from typing import Optional
from uuid import uuid4

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.core.config import settings
from app.core.errors import Conflict, InsufficientFunds, NotFound, SeatUnavailable, ValidationError
from app.db.session import run_in_transaction
from app.models.credit import LedgerTransactionKind
from app.models.ride import Ride, RidePassenger, RideStatus
from app.models.user import PASSENGER, User
from app.schemas.ledger import ESCROW_POOL, PLATFORM_FEE_POOL, UserAccount
from app.services import archive_service
from app.services.ledger import LedgerService
from app.services.ride_service import get_ride
from app.services.user_service import ensure_ride_role

logger = logging.getLogger(__name__)

def _find_booking(db: Session, ride_id: int, passenger: User) -> Optional[RidePassenger]:
    return db.exec(select(RidePassenger).where(
        RidePassenger.ride_id == ride_id,
        RidePassenger.passenger_id == passenger.id,
    )).first()

def book_ride(db: Session, passenger: User, ride_id: int, idempotency_key: Optional[str] = None) -> dict:
    ensure_ride_role(passenger, PASSENGER)
    ride = get_ride(db, ride_id)
    if ride.driver_id == passenger.id:
        raise ValidationError("Vous ne pouvez pas réserver votre propre trajet.")
    if ride.status != RideStatus.ACTIVE:
        raise ValidationError("Ce covoiturage n'est plus ouvert à la réservation.")
    if _find_booking(db, ride.id, passenger):
        raise Conflict("Vous participez déjà à ce covoiturage.")

    price = ride.price
    total = price + settings.SERVICE_FEE
    account = UserAccount(user_id=passenger.id)

    # Contrôle anticipé : aucun verrou pris si le solde est de toute façon insuffisant
    available = LedgerService(db).balance(account)
    if available < total:
        raise InsufficientFunds(
            f"Solde insuffisant pour participer à ce covoiturage ({total} crédits nécessaires, {available} disponibles).",
            required=total,
            available=available,
        )

    # Clé client propre au passager : deux passagers peuvent envoyer la même valeur
    key = f"reservation:{passenger.id}:{idempotency_key or uuid4()}"

    def work(session: Session) -> int:
        claimed = session.exec(
            update(Ride)
            .where(Ride.id == ride.id, Ride.status == RideStatus.ACTIVE, Ride.seats_taken < Ride.seats)
            .values(seats_taken=Ride.seats_taken + 1)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise SeatUnavailable("Plus aucune place disponible sur ce covoiturage.")

        session.add(RidePassenger(ride_id=ride.id, passenger_id=passenger.id))
        try:
            session.flush()
        except IntegrityError as e:
            raise Conflict("Vous participez déjà à ce covoiturage.") from e

        ledger = LedgerService(session)
        ledger.begin(
            LedgerTransactionKind.BOOKING,
            key=key,
            ride_id=ride.id,
            actor_id=passenger.id,
            description="Réservation d'une place",
        )
        ledger.debit(account, total)
        ledger.credit(PLATFORM_FEE_POOL, settings.SERVICE_FEE)
        ledger.credit(ESCROW_POOL, price)
        return ledger.balance(account)

    balance = run_in_transaction(db, work)
    logger.info(f"Réservation : {passenger.email} sur le trajet {ride_id} ({total} crédits, clé {key})")
    archive_service.archive_transaction(
        passenger.id, -total, LedgerTransactionKind.BOOKING, "Réservation d'une place", ride_id=ride_id,
    )
    return {"ride_id": ride_id, "passenger_id": passenger.id, "amount_paid": total, "balance": balance}

def cancel_booking(db: Session, passenger: User, ride_id: int) -> dict:
    """Le passager se désiste : prix + frais de service lui sont rendus."""
    ride = get_ride(db, ride_id)
    booking = _find_booking(db, ride.id, passenger)
    if not booking:
        raise NotFound("Vous ne participez pas à ce covoiturage.")
    if ride.status != RideStatus.ACTIVE:
        raise ValidationError("Ce covoiturage a déjà démarré ou a été annulé.")

    refund = ride.price + settings.SERVICE_FEE
    account = UserAccount(user_id=passenger.id)
    booking_id = booking.id

    def work(session: Session) -> int:
        removed = session.exec(
            delete(RidePassenger).where(RidePassenger.id == booking_id).execution_options(synchronize_session=False)
        )
        if removed.rowcount != 1:
            raise Conflict("Cette réservation a déjà été annulée.")

        released = session.exec(
            update(Ride)
            .where(Ride.id == ride.id, Ride.status == RideStatus.ACTIVE, Ride.seats_taken > 0)
            .values(seats_taken=Ride.seats_taken - 1)
            .execution_options(synchronize_session=False)
        )
        if released.rowcount != 1:
            raise Conflict("Ce covoiturage a changé de statut, annulation impossible.")

        ledger = LedgerService(session)
        ledger.begin(
            LedgerTransactionKind.BOOKING_CANCELLATION,
            key=f"annulation_reservation:{booking_id}",
            ride_id=ride.id,
            actor_id=passenger.id,
            description="Remboursement suite à l'annulation de la réservation",
        )
        ledger.debit(ESCROW_POOL, ride.price)
        ledger.debit(PLATFORM_FEE_POOL, settings.SERVICE_FEE)
        ledger.credit(account, refund)
        return ledger.balance(account)

    balance = run_in_transaction(db, work)
    logger.info(f"Réservation annulée : {passenger.email} sur le trajet {ride_id} ({refund} crédits rendus)")
    archive_service.archive_transaction(
        passenger.id, refund, LedgerTransactionKind.BOOKING_CANCELLATION,
        "Remboursement suite à l'annulation de la réservation", ride_id=ride_id,
    )
    return {"ride_id": ride_id, "passenger_id": passenger.id, "refund": refund, "balance": balance}
