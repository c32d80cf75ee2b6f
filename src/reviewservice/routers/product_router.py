from fastapi import APIRouter

from . import http_error
from .review_router import get_review_service
from ..errors import ReviewServiceError
from ..models import ProductResponse, ProductReviewsSummary

router = APIRouter(prefix="/products", tags=["products"])

@router.get("")
async def list_products():
    """List all products with their rating aggregate."""
    service = get_review_service()
    try:
        products = await service.list_products()
    except ReviewServiceError as e:
        raise http_error(e) from e

    return [ProductResponse(**product) for product in products]

@router.get("/{product_id}")
async def get_product(product_id: str):
    """Get one product."""
    service = get_review_service()
    try:
        product = await service.get_product(product_id)
    except ReviewServiceError as e:
        raise http_error(e) from e

    return ProductResponse(**product)

@router.get("/{product_id}/rating")
async def get_product_rating_summary(product_id: str):
    """Live rating statistics over the reviews that count."""
    service = get_review_service()
    try:
        summary = await service.get_product_review_summary(product_id)
    except ReviewServiceError as e:
        raise http_error(e) from e

    return ProductReviewsSummary(**summary)

@router.post("/{product_id}/rating/recompute")
async def recompute_product_rating(product_id: str):
    """Rebuild the stored rating aggregate from the review rows."""
    service = get_review_service()
    try:
        rating = await service.recompute_product_rating(product_id)
    except ReviewServiceError as e:
        raise http_error(e) from e

    return {"message": "Product rating recomputed", "rating": rating}
