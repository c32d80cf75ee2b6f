from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ReviewStatus(str, Enum):
    """Moderation state of a review."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"


class ReviewCreate(BaseModel):
    """Model for creating a new review."""
    product_id: str = Field(..., min_length=1, description="Product ID being reviewed")
    user_id: Optional[str] = Field(None, description="User ID who wrote the review, None for guests")
    rating: int = Field(..., ge=1, le=5, description="Rating from 1 to 5")
    comment: Optional[str] = Field(None, description="Optional review text")


class ReviewUpdate(BaseModel):
    """Model for editing an existing review."""
    rating: Optional[int] = Field(None, ge=1, le=5, description="Rating from 1 to 5")
    comment: Optional[str] = Field(None, description="Optional review text")


class ReviewResponse(BaseModel):
    """Model for review response data."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: str
    user_id: Optional[str] = None
    rating: int
    comment: Optional[str] = None
    status: Optional[ReviewStatus] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class ProductResponse(BaseModel):
    """Model for a product with its rating aggregate."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: Optional[str] = None
    product_line: Optional[str] = None
    item_code: Optional[str] = None
    price: Optional[float] = None
    description: Optional[str] = None
    ingredients: Optional[str] = None
    category: Optional[str] = None
    target_area: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    value: Optional[str] = None
    value_descriptor: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    average_rating: float = 0.0
    ratings_count: int = 0


class ProductRating(BaseModel):
    """The stored rating aggregate of one product."""
    product_id: str
    average_rating: float
    ratings_count: int


class ProductReviewsSummary(BaseModel):
    """Model for product review summary statistics."""
    product_id: str
    total_reviews: int
    average_rating: float
    rating_distribution: dict = Field(description="Count of counted reviews per rating (1-5)")


class HealthResponse(BaseModel):
    """Model for health check response."""
    status: str
    service: str
