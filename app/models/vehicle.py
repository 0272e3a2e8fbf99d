from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID
from sqlmodel import Field, SQLModel

class Vehicle(SQLModel, table=True):
    __tablename__ = "vehicles"

    # La plaque sert de clé primaire (format AB-123-CD)
    plate: str = Field(primary_key=True)
    owner_id: UUID = Field(foreign_key="users.id", index=True)

    brand: str
    model: str
    color: str
    first_registration: Optional[date] = None
    seats: int
    is_electric: bool = Field(default=False)

    # Préférences du conducteur
    smoker: bool = Field(default=False)
    pets: bool = Field(default=False)
    music: bool = Field(default=False)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
