from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, status

from app.api.deps import CurrentUser, DbSession
from app.schemas.review import DriverReviewsOut, ReviewEdit, ReviewOut
from app.services import review_service

router = APIRouter()

@router.get("/drivers/{driver_id}", response_model=DriverReviewsOut)
def driver_reviews(driver_id: UUID, db: DbSession, current_user: CurrentUser):
    reviews = review_service.list_driver_reviews(db, driver_id)
    return DriverReviewsOut(
        driver_id=driver_id,
        average_rating=review_service.average_rating(db, driver_id),
        count=len(reviews),
        reviews=[ReviewOut.model_validate(review, from_attributes=True) for review in reviews],
    )

# --- MODÉRATION (employés) ---
@router.get("", response_model=List[ReviewOut])
def list_reviews(db: DbSession, current_user: CurrentUser, month: Optional[str] = None):
    return review_service.list_reviews(db, current_user, month)

@router.put("/{review_id}", response_model=ReviewOut)
def edit_review(review_id: int, body: ReviewEdit, db: DbSession, current_user: CurrentUser):
    return review_service.edit_review(db, current_user, review_id, body.comment, body.reason)

@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_review(review_id: int, db: DbSession, current_user: CurrentUser):
    review_service.delete_review(db, current_user, review_id)
