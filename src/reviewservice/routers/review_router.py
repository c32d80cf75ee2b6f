from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from . import http_error
from ..errors import ReviewServiceError
from ..models import ReviewResponse, ReviewStatus
from ..service import ReviewService

# Global variable to hold the review service instance
review_service: ReviewService = None

def set_review_service(service: ReviewService):
    """Set the review service instance."""
    global review_service
    review_service = service

def get_review_service() -> ReviewService:
    if not review_service:
        raise HTTPException(status_code=500, detail="Review service not initialized")
    return review_service

# Create router
router = APIRouter(prefix="/reviews", tags=["reviews"])

# Request models; malformed bodies are answered with 400 by the app
class CreateReviewRequest(BaseModel):
    product_id: str
    user_id: Optional[str] = None
    rating: int
    comment: Optional[str] = None

class UpdateReviewRequest(BaseModel):
    status: Optional[str] = None
    rating: Optional[int] = None
    comment: Optional[str] = None

# Endpoints
@router.post("", status_code=201)
async def create_review(request: CreateReviewRequest):
    """Submit a review."""
    service = get_review_service()
    try:
        review = await service.submit_review(
            product_id=request.product_id,
            user_id=request.user_id,
            rating=request.rating,
            comment=request.comment
        )
    except ReviewServiceError as e:
        raise http_error(e) from e

    return {"message": "Review added", "review": ReviewResponse(**review)}

@router.get("")
async def list_reviews(status: Optional[ReviewStatus] = None):
    """List all reviews, optionally only those in one moderation state."""
    service = get_review_service()
    try:
        reviews = await service.list_reviews(status=status)
    except ReviewServiceError as e:
        raise http_error(e) from e

    return [ReviewResponse(**review) for review in reviews]

@router.get("/user/{user_id}")
async def get_user_reviews(user_id: str, limit: int = 50, offset: int = 0):
    """Get reviews written by a user."""
    service = get_review_service()
    try:
        reviews = await service.get_user_reviews(user_id, limit=limit, offset=offset)
    except ReviewServiceError as e:
        raise http_error(e) from e

    return [ReviewResponse(**review) for review in reviews]

@router.get("/{product_id}")
async def get_product_reviews(
    product_id: str,
    status: Optional[ReviewStatus] = None,
    limit: int = 50,
    offset: int = 0
):
    """Get reviews for a product."""
    service = get_review_service()
    try:
        reviews = await service.get_product_reviews(
            product_id, status=status, limit=limit, offset=offset
        )
    except ReviewServiceError as e:
        raise http_error(e) from e

    return [ReviewResponse(**review) for review in reviews]

@router.put("/{review_id}")
async def update_review(review_id: int, request: UpdateReviewRequest):
    """Moderate or edit a review."""
    service = get_review_service()
    try:
        review = await service.update_review(
            review_id,
            status=request.status,
            rating=request.rating,
            comment=request.comment
        )
    except ReviewServiceError as e:
        raise http_error(e) from e

    message = "Review approved" if request.status == ReviewStatus.APPROVED.value else "Review updated"
    return {"message": message, "review": ReviewResponse(**review)}

@router.delete("/{review_id}")
async def delete_review(review_id: int):
    """Delete a review."""
    service = get_review_service()
    try:
        review = await service.remove_review(review_id)
    except ReviewServiceError as e:
        raise http_error(e) from e

    return {"message": "Review deleted", "review": ReviewResponse(**review)}
