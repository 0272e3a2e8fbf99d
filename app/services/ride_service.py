import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import delete, func, update
from sqlmodel import Session, select

from app.core.config import settings
from app.core.errors import AuthorizationError, Conflict, NotFound, ValidationError
from app.db.session import run_in_transaction
from app.models.credit import LedgerTransactionKind
from app.models.ride import Ride, RidePassenger, RideStatus
from app.models.user import DRIVER, User
from app.models.validation import Validation
from app.models.vehicle import Vehicle
from app.schemas.ledger import ESCROW_POOL, PLATFORM_FEE_POOL, UserAccount
from app.schemas.ride import RideCreate, VehicleCreate
from app.services import archive_service
from app.services.ledger import LedgerService
from app.services.user_service import ensure_active, ensure_ride_role
from app.workers.archive_task import send_cancellation_email_task

logger = logging.getLogger(__name__)

PLATE_PATTERN = re.compile(r"^[A-Z]{2}-[0-9]{3}-[A-Z]{2}$")

# --- VÉHICULES ---
def normalize_plate(value: str) -> str:
    plate = (value or "").strip().upper()
    if not PLATE_PATTERN.match(plate):
        raise ValidationError("Format de plaque invalide (ex: AB-123-CD).")
    return plate

def register_vehicle(db: Session, owner: User, data: VehicleCreate) -> Vehicle:
    ensure_ride_role(owner, DRIVER)
    plate = normalize_plate(data.plate)
    if not data.brand.strip() or not data.model.strip() or not data.color.strip():
        raise ValidationError("Tous les champs sont obligatoires.")
    if data.seats < 1 or data.seats > 9:
        raise ValidationError("Le nombre de places doit être entre 1 et 9.")

    # Vérification si le véhicule existe déjà
    if db.get(Vehicle, plate):
        raise Conflict("Un véhicule avec cette plaque existe déjà.")

    vehicle = Vehicle(**data.model_dump(exclude={"plate"}), plate=plate, owner_id=owner.id)
    db.add(vehicle)
    db.commit()
    db.refresh(vehicle)
    logger.info(f"Véhicule {plate} enregistré pour {owner.email}")
    return vehicle

def list_vehicles(db: Session, owner: User) -> List[Vehicle]:
    return db.exec(select(Vehicle).where(Vehicle.owner_id == owner.id)).all()

# --- TRAJETS ---
def get_ride(db: Session, ride_id: int) -> Ride:
    ride = db.get(Ride, ride_id)
    if not ride:
        raise NotFound("Ce covoiturage n'existe plus.")
    return ride

def passenger_ids(db: Session, ride_id: int) -> List[UUID]:
    statement = select(RidePassenger.passenger_id).where(RidePassenger.ride_id == ride_id).order_by(RidePassenger.id)
    return list(db.exec(statement).all())

def publish_ride(db: Session, driver: User, data: RideCreate) -> Ride:
    """
    Publie un trajet. La publication coûte PUBLICATION_FEE crédits au
    conducteur, versés à la plateforme dans la même transaction.
    """
    ensure_ride_role(driver, DRIVER)
    vehicle = db.get(Vehicle, (data.vehicle_plate or "").strip().upper())
    if not vehicle:
        raise NotFound("Véhicule non trouvé.")
    if vehicle.owner_id != driver.id:
        raise AuthorizationError("Ce véhicule ne vous appartient pas.")
    if not data.origin.strip() or not data.destination.strip():
        raise ValidationError("Les villes de départ et d'arrivée sont obligatoires.")
    if data.price <= 0:
        raise ValidationError("Le prix doit être un nombre entier supérieur à 0.")
    if data.seats < 1 or data.seats > vehicle.seats:
        raise ValidationError(f"Ce véhicule peut accueillir jusqu'à {vehicle.seats} passagers.")
    if data.arrival_at <= data.departure_at:
        raise ValidationError("L'arrivée doit être postérieure au départ.")

    def work(session: Session) -> Ride:
        ride = Ride(
            driver_id=driver.id,
            vehicle_plate=vehicle.plate,
            origin=data.origin.strip(),
            destination=data.destination.strip(),
            departure_at=data.departure_at,
            arrival_at=data.arrival_at,
            price=data.price,
            seats=data.seats,
            is_eco=vehicle.is_electric,
        )
        session.add(ride)
        session.flush()

        if settings.PUBLICATION_FEE > 0:
            ledger = LedgerService(session)
            ledger.begin(
                LedgerTransactionKind.PUBLICATION,
                key=f"publication:{ride.id}",
                ride_id=ride.id,
                actor_id=driver.id,
                description="Frais de publication d'un trajet",
            )
            ledger.transfer(UserAccount(user_id=driver.id), PLATFORM_FEE_POOL, settings.PUBLICATION_FEE)
        return ride

    ride = run_in_transaction(db, work)
    db.refresh(ride)
    logger.info(f"Trajet {ride.id} publié : {ride.origin} -> {ride.destination} ({ride.price} crédits)")
    if settings.PUBLICATION_FEE > 0:
        archive_service.archive_transaction(
            driver.id, -settings.PUBLICATION_FEE, LedgerTransactionKind.PUBLICATION,
            "Frais de publication d'un trajet", ride_id=ride.id,
        )
    return ride

def search_rides(db: Session, user: User, origin: Optional[str] = None, destination: Optional[str] = None,
                 day: Optional[date] = None, max_price: Optional[int] = None, eco_only: bool = False) -> List[Ride]:
    """Trajets ouverts à la réservation, hors trajets de l'utilisateur."""
    statement = select(Ride).where(Ride.status == RideStatus.ACTIVE, Ride.driver_id != user.id)
    if origin:
        statement = statement.where(func.lower(Ride.origin).contains(origin.strip().lower()))
    if destination:
        statement = statement.where(func.lower(Ride.destination).contains(destination.strip().lower()))
    if day:
        start = datetime.combine(day, time.min)
        statement = statement.where(Ride.departure_at >= start, Ride.departure_at < start + timedelta(days=1))
    if max_price is not None:
        statement = statement.where(Ride.price <= max_price)
    if eco_only:
        statement = statement.where(Ride.is_eco == True)  # noqa: E712
    return db.exec(statement.order_by(Ride.departure_at)).all()

def _transition(session: Session, ride: Ride, expected: RideStatus, new: RideStatus, **values):
    """Changement de statut en compare-and-swap : échoue si le trajet a changé entre-temps."""
    result = session.exec(
        update(Ride)
        .where(Ride.id == ride.id, Ride.status == expected)
        .values(status=new, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise Conflict(f"Le trajet n'est plus au statut '{expected.value}'.")

def _ensure_driver(ride: Ride, driver: User):
    ensure_active(driver)
    if ride.driver_id != driver.id:
        raise AuthorizationError("Vous n'êtes pas le conducteur de ce voyage.")

def start_ride(db: Session, driver: User, ride_id: int) -> Ride:
    ride = get_ride(db, ride_id)
    _ensure_driver(ride, driver)
    if ride.status != RideStatus.ACTIVE:
        raise ValidationError("Seul un trajet actif peut être démarré.")

    run_in_transaction(db, lambda session: _transition(
        session, ride, RideStatus.ACTIVE, RideStatus.IN_PROGRESS, started_at=datetime.now(timezone.utc),
    ))
    db.refresh(ride)
    logger.info(f"Trajet {ride.id} démarré")
    archive_service.archive_ride(ride, passenger_ids(db, ride.id))
    return ride

def finish_ride(db: Session, driver: User, ride_id: int) -> List[Validation]:
    """Termine le trajet et ouvre une validation par passager."""
    ride = get_ride(db, ride_id)
    _ensure_driver(ride, driver)
    if ride.status != RideStatus.IN_PROGRESS:
        raise ValidationError("Seul un trajet en cours peut être terminé.")

    def work(session: Session) -> List[Validation]:
        _transition(session, ride, RideStatus.IN_PROGRESS, RideStatus.FINISHED,
                    finished_at=datetime.now(timezone.utc))
        validations = [
            Validation(ride_id=ride.id, passenger_id=pid, driver_id=ride.driver_id)
            for pid in passenger_ids(session, ride.id)
        ]
        session.add_all(validations)
        return validations

    validations = run_in_transaction(db, work)
    db.refresh(ride)
    for validation in validations:
        db.refresh(validation)
    logger.info(f"Trajet {ride.id} terminé, {len(validations)} validation(s) en attente")
    archive_service.archive_ride(ride, [v.passenger_id for v in validations])
    return validations

def cancel_ride(db: Session, driver: User, ride_id: int) -> dict:
    """
    Annulation par le conducteur : chaque passager récupère prix + frais de
    service, pris sur le pool "attente" et le pool de frais.
    """
    ride = get_ride(db, ride_id)
    _ensure_driver(ride, driver)
    if ride.status != RideStatus.ACTIVE:
        raise ValidationError("Seul un trajet actif peut être annulé.")
    refund = ride.price + settings.SERVICE_FEE

    def work(session: Session) -> List[UUID]:
        # Le passage en "inactif" ferme les réservations avant de lister les passagers
        _transition(session, ride, RideStatus.ACTIVE, RideStatus.INACTIVE, seats_taken=0)
        passengers = passenger_ids(session, ride.id)
        if passengers:
            ledger = LedgerService(session)
            ledger.begin(
                LedgerTransactionKind.RIDE_CANCELLATION,
                key=f"annulation_trajet:{ride.id}",
                ride_id=ride.id,
                actor_id=driver.id,
                description="Remboursement suite à l'annulation du covoiturage",
            )
            for pid in passengers:
                ledger.debit(ESCROW_POOL, ride.price)
                ledger.debit(PLATFORM_FEE_POOL, settings.SERVICE_FEE)
                ledger.credit(UserAccount(user_id=pid), refund)
            session.exec(delete(RidePassenger).where(RidePassenger.ride_id == ride.id))
        return passengers

    passengers = run_in_transaction(db, work)
    db.refresh(ride)
    logger.info(f"Trajet {ride.id} annulé, {len(passengers)} passager(s) remboursé(s) de {refund} crédits")

    archive_service.archive_ride(ride, [])
    for pid in passengers:
        archive_service.archive_transaction(
            pid, refund, LedgerTransactionKind.RIDE_CANCELLATION,
            "Remboursement suite à l'annulation du covoiturage", ride_id=ride.id,
        )
        _notify_cancellation(db, pid, ride, refund)

    return {"ride_id": ride.id, "refunded_passengers": len(passengers), "refund_per_passenger": refund}

def _notify_cancellation(db: Session, passenger_id: UUID, ride: Ride, refund: int):
    passenger = db.get(User, passenger_id)
    if not passenger:
        return
    try:
        send_cancellation_email_task.delay(
            to_email=passenger.email,
            to_name=passenger.pseudo,
            trip_date=ride.departure_at.strftime("%d/%m/%Y"),
            trip_departure=ride.origin,
            trip_arrival=ride.destination,
            refund_amount=refund,
        )
    except Exception as e:
        # On continue même en cas d'erreur d'email
        logger.error(f"Email d'annulation non envoyé à {passenger.email} : {e}")
