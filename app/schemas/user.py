from datetime import datetime
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, EmailStr

from app.models.user import UserRole, UserStatus

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    pseudo: str

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"

class UserOut(BaseModel):
    id: UUID
    email: str
    pseudo: str
    photo_url: Optional[str] = None
    role: UserRole
    roles: List[str]
    status: UserStatus
    created_at: datetime

class RolesUpdate(BaseModel):
    roles: List[str]

class StatusUpdate(BaseModel):
    status: UserStatus

class AdminActionOut(BaseModel):
    actor_id: UUID
    action: str
    target_user_id: Optional[UUID] = None
    review_id: Optional[int] = None
    details: Optional[str] = None
    created_at: datetime
