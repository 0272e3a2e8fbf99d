from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import UUID, uuid4
from sqlmodel import Field, SQLModel, AutoString, Column, JSON
from pydantic import EmailStr

class UserRole(str, Enum):
    USER = "user"
    EMPLOYEE = "employé"
    ADMIN = "administrateur"

class UserStatus(str, Enum):
    ACTIVE = "actif"
    BLOCKED = "bloqué"

# Rôles cumulables d'un utilisateur "user"
DRIVER = "chauffeur"
PASSENGER = "passager"
RIDE_ROLES = (DRIVER, PASSENGER)

class User(SQLModel, table=True):
    __tablename__ = "users"  # Nom explicite de la table dans Postgres

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    email: EmailStr = Field(unique=True, index=True, sa_type=AutoString)
    hashed_password: str

    pseudo: str
    photo_url: Optional[str] = None

    # Rôle d'accès (user / employé / administrateur)
    role: UserRole = Field(default=UserRole.USER)
    # Rôles de covoiturage (chauffeur, passager)
    roles: List[str] = Field(default_factory=lambda: [PASSENGER], sa_column=Column(JSON))

    status: UserStatus = Field(default=UserStatus.ACTIVE)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.EMPLOYEE, UserRole.ADMIN)

    def has_ride_role(self, ride_role: str) -> bool:
        return ride_role in (self.roles or [])
