from datetime import date, datetime, timezone
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, Field, field_validator

from app.models.ride import RideStatus

# Ce que le conducteur envoie pour enregistrer un véhicule
class VehicleCreate(BaseModel):
    plate: str
    brand: str
    model: str
    color: str
    first_registration: Optional[date] = None
    seats: int = 4
    is_electric: bool = False
    smoker: bool = False
    pets: bool = False
    music: bool = False

class VehicleOut(VehicleCreate):
    owner_id: UUID

# Publication d'un trajet
class RideCreate(BaseModel):
    vehicle_plate: str
    origin: str
    destination: str
    departure_at: datetime
    arrival_at: datetime
    price: int
    seats: int

    # Stockage en UTC naïf : une heure avec fuseau est convertie
    @field_validator("departure_at", "arrival_at")
    @classmethod
    def to_naive_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

class RideOut(BaseModel):
    id: int
    driver_id: UUID
    vehicle_plate: str
    origin: str
    destination: str
    departure_at: datetime
    arrival_at: datetime
    price: int
    seats: int
    seats_taken: int
    is_eco: bool
    status: RideStatus

class RideDetailOut(RideOut):
    passenger_ids: List[UUID] = Field(default_factory=list)
    driver_rating: Optional[float] = None

class BookingOut(BaseModel):
    ride_id: int
    passenger_id: UUID
    amount_paid: int
    balance: int

class CancellationOut(BaseModel):
    ride_id: int
    refunded_passengers: int
    refund_per_passenger: int
