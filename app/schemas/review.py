from datetime import datetime
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, Field

class ReviewOut(BaseModel):
    id: int
    driver_id: UUID
    author_id: UUID
    ride_id: Optional[int] = None
    rating: int
    comment: Optional[str] = None
    edited: bool
    edit_reason: Optional[str] = None
    created_at: datetime

class DriverReviewsOut(BaseModel):
    driver_id: UUID
    average_rating: Optional[float] = None
    count: int
    reviews: List[ReviewOut]

class ReviewEdit(BaseModel):
    comment: str
    reason: str = Field(min_length=1)
