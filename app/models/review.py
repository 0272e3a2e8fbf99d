from datetime import datetime, timezone
from typing import Optional
from uuid import UUID
from sqlmodel import Field, SQLModel

class Review(SQLModel, table=True):
    __tablename__ = "reviews"

    id: Optional[int] = Field(default=None, primary_key=True)
    driver_id: UUID = Field(foreign_key="users.id", index=True)
    author_id: UUID = Field(foreign_key="users.id", index=True)
    ride_id: Optional[int] = Field(default=None, foreign_key="rides.id")

    rating: int  # 1 à 5
    comment: Optional[str] = None

    # Modération par un employé
    edited: bool = Field(default=False)
    edited_by: Optional[UUID] = Field(default=None, foreign_key="users.id")
    edit_reason: Optional[str] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class AdminAction(SQLModel, table=True):
    """Journal des actions de modération (employés et administrateurs)."""
    __tablename__ = "admin_actions"

    id: Optional[int] = Field(default=None, primary_key=True)
    actor_id: UUID = Field(foreign_key="users.id", index=True)
    action: str
    target_user_id: Optional[UUID] = Field(default=None, foreign_key="users.id")
    review_id: Optional[int] = None
    details: Optional[str] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
