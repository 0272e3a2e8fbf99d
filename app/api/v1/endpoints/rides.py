from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Header, status

from app.api.deps import CurrentUser, DbSession
from app.schemas.ride import (
    BookingOut,
    CancellationOut,
    RideCreate,
    RideDetailOut,
    RideOut,
    VehicleCreate,
    VehicleOut,
)
from app.schemas.validation import ValidationOut
from app.services import booking_service, ride_service
from app.services.review_service import average_rating

router = APIRouter()

# --- VÉHICULES ---
@router.post("/vehicles", response_model=VehicleOut, status_code=status.HTTP_201_CREATED)
def add_vehicle(body: VehicleCreate, db: DbSession, current_user: CurrentUser):
    return ride_service.register_vehicle(db, current_user, body)

@router.get("/vehicles", response_model=List[VehicleOut])
def my_vehicles(db: DbSession, current_user: CurrentUser):
    return ride_service.list_vehicles(db, current_user)

# --- TRAJETS ---
@router.post("/rides", response_model=RideOut, status_code=status.HTTP_201_CREATED)
def publish_ride(body: RideCreate, db: DbSession, current_user: CurrentUser):
    """Publie un trajet (coûte les frais de publication au conducteur)."""
    return ride_service.publish_ride(db, current_user, body)

@router.get("/rides", response_model=List[RideOut])
def search_rides(
    db: DbSession,
    current_user: CurrentUser,
    origin: Optional[str] = None,
    destination: Optional[str] = None,
    day: Optional[date] = None,
    max_price: Optional[int] = None,
    eco: bool = False,
):
    return ride_service.search_rides(db, current_user, origin, destination, day, max_price, eco)

@router.get("/rides/{ride_id}", response_model=RideDetailOut)
def read_ride(ride_id: int, db: DbSession, current_user: CurrentUser):
    ride = ride_service.get_ride(db, ride_id)
    return RideDetailOut(
        **RideOut.model_validate(ride, from_attributes=True).model_dump(),
        passenger_ids=ride_service.passenger_ids(db, ride.id),
        driver_rating=average_rating(db, ride.driver_id),
    )

# --- RÉSERVATIONS ---
@router.post("/rides/{ride_id}/booking", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
def book_ride(
    ride_id: int,
    db: DbSession,
    current_user: CurrentUser,
    idempotency_key: Optional[str] = Header(default=None),
):
    return booking_service.book_ride(db, current_user, ride_id, idempotency_key=idempotency_key)

@router.delete("/rides/{ride_id}/booking")
def cancel_booking(ride_id: int, db: DbSession, current_user: CurrentUser):
    return booking_service.cancel_booking(db, current_user, ride_id)

# --- CYCLE DE VIE (conducteur) ---
@router.post("/rides/{ride_id}/start", response_model=RideOut)
def start_ride(ride_id: int, db: DbSession, current_user: CurrentUser):
    return ride_service.start_ride(db, current_user, ride_id)

@router.post("/rides/{ride_id}/finish", response_model=List[ValidationOut])
def finish_ride(ride_id: int, db: DbSession, current_user: CurrentUser):
    return ride_service.finish_ride(db, current_user, ride_id)

@router.post("/rides/{ride_id}/cancel", response_model=CancellationOut)
def cancel_ride(ride_id: int, db: DbSession, current_user: CurrentUser):
    return ride_service.cancel_ride(db, current_user, ride_id)
