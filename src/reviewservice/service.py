"""
Review Service

Submits and moderates reviews and keeps each product's rating aggregate
(``average_rating``, ``ratings_count``) equal to the mean of the reviews the
active policy counts.

Every operation runs in a single transaction, so a review write and the
aggregate write it causes commit together. Aggregate writes are
compare-and-swap on the product's version column and are retried from a
fresh read when another request got there first.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from .database import DatabaseManager, ProductRepository, ReviewRepository
from .database.models import Product
from .errors import (
    AggregateConflictError,
    DuplicateReviewError,
    ProductNotFoundError,
    ReviewNotFoundError,
    ReviewServiceError,
    StorageError,
    ValidationError,
)
from .models import ProductRating, ReviewCreate, ReviewStatus, ReviewUpdate
from .policies import RatingPolicy

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 5

# Given the freshly read product, returns the new (ratings_count, rating_sum)
AggregateStep = Callable[[Product], Awaitable[Tuple[int, float]]]


def round_rating(rating_sum: float, ratings_count: int) -> float:
    """Average rounded to two decimals; 0 when nothing is counted."""
    if ratings_count <= 0:
        return 0.0
    return round(rating_sum / ratings_count, 2)


def counted_sum(product: Product) -> float:
    """Sum of the ratings behind a product's stored aggregate.

    ``rating_sum`` is only trusted while it still agrees with
    ``average_rating``; the catalogue may create or edit products without
    touching it, in which case ``average_rating * ratings_count`` is used.
    """
    ratings_count = product.ratings_count or 0
    average_rating = product.average_rating or 0.0
    rating_sum = product.rating_sum or 0.0
    if round_rating(rating_sum, ratings_count) == round(average_rating, 2):
        return rating_sum
    return average_rating * ratings_count


def _validation_message(exc: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )


class ReviewService:
    """Review submission, moderation and rating aggregation."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        policy: RatingPolicy,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self.db_manager = db_manager
        self.policy = policy
        self.max_retries = max_retries

    @asynccontextmanager
    async def _transaction(self):
        """Yield review and product stores sharing one transaction."""
        try:
            async with self.db_manager.get_session() as session:
                yield ReviewRepository(session), ProductRepository(session)
        except ReviewServiceError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Database error: {str(e)}")
            raise StorageError(f"Database error: {str(e)}") from e

    # Aggregate maintenance

    async def _write_aggregate(
        self, products: ProductRepository, product_id: str, step: AggregateStep
    ) -> ProductRating:
        for attempt in range(1, self.max_retries + 1):
            product = await products.get(product_id)
            if product is None:
                raise ProductNotFoundError(product_id)

            ratings_count, rating_sum = await step(product)
            average_rating = round_rating(rating_sum, ratings_count)

            written = await products.set_aggregate(
                product_id,
                average_rating=average_rating,
                ratings_count=ratings_count,
                rating_sum=rating_sum,
                expected_version=product.version,
            )
            if written:
                logger.info(
                    f"Product {product_id} rating is now {average_rating} "
                    f"over {ratings_count} reviews"
                )
                return ProductRating(
                    product_id=product_id,
                    average_rating=average_rating,
                    ratings_count=ratings_count,
                )

            logger.warning(
                f"Concurrent rating update on product {product_id} "
                f"(attempt {attempt}/{self.max_retries}), retrying"
            )

        raise AggregateConflictError(product_id, self.max_retries)

    async def _add_to_aggregate(
        self, products: ProductRepository, product_id: str, rating: int
    ) -> ProductRating:
        async def step(product: Product) -> Tuple[int, float]:
            return product.ratings_count + 1, counted_sum(product) + rating

        return await self._write_aggregate(products, product_id, step)

    async def _recompute_aggregate(
        self,
        reviews: ReviewRepository,
        products: ProductRepository,
        product_id: str,
        missing_ok: bool = False,
    ) -> Optional[ProductRating]:
        async def step(product: Product) -> Tuple[int, float]:
            ratings_count, rating_sum, _ = await reviews.rating_stats(
                product_id, self.policy.counted_status
            )
            return ratings_count, rating_sum

        try:
            return await self._write_aggregate(products, product_id, step)
        except ProductNotFoundError:
            if not missing_ok:
                raise
            logger.warning(f"Product {product_id} no longer exists, rating not updated")
            return None

    # Commands

    async def submit_review(
        self,
        product_id: str,
        user_id: Optional[str],
        rating: int,
        comment: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Store a new review and, if it counts right away, fold it into the rating.

        Raises:
            ValidationError: missing product id or rating outside 1-5
            ProductNotFoundError: the product does not exist
            DuplicateReviewError: the user already reviewed this product
            StorageError: the database failed
        """
        try:
            review_data = ReviewCreate(
                product_id=product_id,
                user_id=user_id or None,
                rating=rating,
                comment=comment,
            )
        except PydanticValidationError as e:
            raise ValidationError(_validation_message(e)) from e

        async with self._transaction() as (reviews, products):
            if await products.get(review_data.product_id) is None:
                raise ProductNotFoundError(review_data.product_id)

            if review_data.user_id is not None:
                existing = await reviews.find_by_product_and_user(
                    review_data.product_id, review_data.user_id
                )
                if existing:
                    raise DuplicateReviewError(review_data.product_id, review_data.user_id)

            review = await reviews.insert(review_data, status=self.policy.initial_status)
            logger.info(
                f"Review {review.id} stored for product {review.product_id} "
                f"(status={review.status})"
            )

            if self.policy.counts_on_submit:
                await self._add_to_aggregate(products, review.product_id, review.rating)

            return review.to_dict()

    async def update_review(
        self,
        review_id: int,
        status: Optional[ReviewStatus] = None,
        rating: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Change a review's moderation status and/or its content.

        Approving always recomputes the product's rating from the approved
        reviews. Other changes recompute only when they change what counts.
        """
        try:
            changes = ReviewUpdate(rating=rating, comment=comment)
            if status is not None:
                status = ReviewStatus(status)
        except (PydanticValidationError, ValueError) as e:
            message = _validation_message(e) if isinstance(e, PydanticValidationError) else str(e)
            raise ValidationError(message) from e

        if status is not None and not self.policy.moderated:
            raise ValidationError(
                f"Review moderation is disabled under the {self.policy.name} rating policy"
            )

        async with self._transaction() as (reviews, products):
            review = await reviews.find_by_id(review_id)
            if not review:
                raise ReviewNotFoundError(review_id)

            was_counted = self.policy.counts(review.status)
            old_rating = review.rating

            if status is not None:
                review.status = status.value
            if changes.rating is not None:
                review.rating = changes.rating
            if changes.comment is not None:
                review.comment = changes.comment
            review = await reviews.save(review)

            now_counted = self.policy.counts(review.status)
            needs_recompute = (
                status == ReviewStatus.APPROVED
                or was_counted != now_counted
                or (now_counted and review.rating != old_rating)
            )
            if needs_recompute:
                await self._recompute_aggregate(
                    reviews, products, review.product_id, missing_ok=True
                )

            return review.to_dict()

    async def approve_review(self, review_id: int) -> Dict[str, Any]:
        """Move a review to APPROVED and recompute its product's rating."""
        return await self.update_review(review_id, status=ReviewStatus.APPROVED)

    async def unapprove_review(self, review_id: int) -> Dict[str, Any]:
        """Send an approved review back to PENDING and recompute its product's rating."""
        return await self.update_review(review_id, status=ReviewStatus.PENDING)

    async def edit_review(
        self, review_id: int, rating: Optional[int] = None, comment: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self.update_review(review_id, rating=rating, comment=comment)

    async def remove_review(self, review_id: int) -> Dict[str, Any]:
        """Delete a review; its product's rating is recomputed if it counted."""
        async with self._transaction() as (reviews, products):
            review = await reviews.find_by_id(review_id)
            if not review:
                raise ReviewNotFoundError(review_id)

            removed = review.to_dict()
            await reviews.delete(review)
            logger.info(f"Review {review_id} removed from product {removed['product_id']}")

            if self.policy.counts(removed['status']):
                await self._recompute_aggregate(
                    reviews, products, removed['product_id'], missing_ok=True
                )

            return removed

    async def recompute_product_rating(self, product_id: str) -> ProductRating:
        """Rebuild a product's rating from its review rows."""
        async with self._transaction() as (reviews, products):
            return await self._recompute_aggregate(reviews, products, product_id)

    # Queries

    async def get_review(self, review_id: int) -> Dict[str, Any]:
        async with self._transaction() as (reviews, _):
            review = await reviews.find_by_id(review_id)
            if not review:
                raise ReviewNotFoundError(review_id)
            return review.to_dict()

    async def list_reviews(self, status: Optional[ReviewStatus] = None) -> List[Dict[str, Any]]:
        async with self._transaction() as (reviews, _):
            return [review.to_dict() for review in await reviews.list_all(status)]

    async def get_product_reviews(
        self,
        product_id: str,
        status: Optional[ReviewStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        async with self._transaction() as (reviews, _):
            found = await reviews.find_by_product(
                product_id, status=status, limit=limit, offset=max(0, offset)
            )
            return [review.to_dict() for review in found]

    async def get_user_reviews(self, user_id: str, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        async with self._transaction() as (reviews, _):
            found = await reviews.find_by_user(user_id, limit=limit, offset=max(0, offset))
            return [review.to_dict() for review in found]

    async def get_product_review_summary(self, product_id: str) -> Dict[str, Any]:
        """Live statistics over the reviews the active policy counts."""
        async with self._transaction() as (reviews, _):
            total_reviews, rating_sum, distribution = await reviews.rating_stats(
                product_id, self.policy.counted_status
            )
            return {
                "product_id": product_id,
                "total_reviews": total_reviews,
                "average_rating": round_rating(rating_sum, total_reviews),
                "rating_distribution": distribution,
            }

    async def get_product(self, product_id: str) -> Dict[str, Any]:
        async with self._transaction() as (_, products):
            product = await products.get(product_id)
            if not product:
                raise ProductNotFoundError(product_id)
            return product.to_dict()

    async def list_products(self) -> List[Dict[str, Any]]:
        async with self._transaction() as (_, products):
            return [product.to_dict() for product in await products.list_all()]
