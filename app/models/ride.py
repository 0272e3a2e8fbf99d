from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID
from sqlmodel import Field, SQLModel, UniqueConstraint

class RideStatus(str, Enum):
    ACTIVE = "actif"         # publié, réservations ouvertes
    IN_PROGRESS = "en_cours"
    FINISHED = "terminé"
    INACTIVE = "inactif"     # annulé par le conducteur

class Ride(SQLModel, table=True):
    __tablename__ = "rides"

    id: Optional[int] = Field(default=None, primary_key=True)
    driver_id: UUID = Field(foreign_key="users.id", index=True)
    vehicle_plate: str = Field(foreign_key="vehicles.plate")

    origin: str = Field(index=True)
    destination: str = Field(index=True)
    departure_at: datetime = Field(index=True)
    arrival_at: datetime
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    price: int
    seats: int
    # Maintenu uniquement par des UPDATE conditionnels (seats_taken <= seats)
    seats_taken: int = Field(default=0)
    is_eco: bool = Field(default=False)

    status: RideStatus = Field(default=RideStatus.ACTIVE, index=True)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def free_seats(self) -> int:
        return self.seats - self.seats_taken

class RidePassenger(SQLModel, table=True):
    __tablename__ = "ride_passengers"
    # Les id ne sont jamais réutilisés : ils servent à la clé comptable des annulations
    __table_args__ = (
        UniqueConstraint("ride_id", "passenger_id", name="uq_ride_passenger"),
        {"sqlite_autoincrement": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    ride_id: int = Field(foreign_key="rides.id", index=True)
    passenger_id: UUID = Field(foreign_key="users.id", index=True)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
