import logging
from typing import Optional, List, Tuple, Dict

from sqlalchemy import select, update, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import ProductReview, Product
from ..errors import DuplicateReviewError
from ..models import ReviewCreate, ReviewStatus

logger = logging.getLogger(__name__)


class ReviewRepository:
    """Review store bound to one session, so callers control the transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, review: ReviewCreate, status: Optional[ReviewStatus] = None) -> ProductReview:
        """Insert a review; the (product_id, user_id) unique key rejects duplicates."""
        db_review = ProductReview(
            product_id=review.product_id,
            user_id=review.user_id,
            rating=review.rating,
            comment=review.comment,
            status=status.value if status else None,
        )

        try:
            self.session.add(db_review)
            await self.session.flush()  # Flush to get the ID
            await self.session.refresh(db_review)  # Refresh to get server defaults
            return db_review
        except IntegrityError as e:
            if "UNIQUE constraint failed" in str(e) or "unique_product_user_review" in str(e):
                raise DuplicateReviewError(review.product_id, review.user_id) from e
            raise

    async def find_by_id(self, review_id: int) -> Optional[ProductReview]:
        result = await self.session.execute(
            select(ProductReview).where(ProductReview.id == review_id)
        )
        return result.scalar_one_or_none()

    async def find_by_product_and_user(self, product_id: str, user_id: str) -> Optional[ProductReview]:
        result = await self.session.execute(
            select(ProductReview).where(
                and_(ProductReview.product_id == product_id, ProductReview.user_id == user_id)
            )
        )
        return result.scalar_one_or_none()

    async def find_by_product(
        self,
        product_id: str,
        status: Optional[ReviewStatus] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[ProductReview]:
        """Reviews for a product, newest first, optionally filtered by status."""
        query = select(ProductReview).where(ProductReview.product_id == product_id)
        if status is not None:
            query = query.where(ProductReview.status == status.value)
        query = query.order_by(ProductReview.created_at.desc(), ProductReview.id.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def find_by_user(self, user_id: str, limit: int = 50, offset: int = 0) -> List[ProductReview]:
        result = await self.session.execute(
            select(ProductReview)
            .where(ProductReview.user_id == user_id)
            .order_by(ProductReview.created_at.desc(), ProductReview.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def list_all(self, status: Optional[ReviewStatus] = None) -> List[ProductReview]:
        query = select(ProductReview)
        if status is not None:
            query = query.where(ProductReview.status == status.value)
        result = await self.session.execute(query.order_by(ProductReview.id))
        return list(result.scalars().all())

    async def update_status(self, review_id: int, status: ReviewStatus) -> Optional[ProductReview]:
        review = await self.find_by_id(review_id)
        if not review:
            return None

        review.status = status.value
        return await self.save(review)

    async def save(self, review: ProductReview) -> ProductReview:
        """Flush pending changes to a loaded review and reload its columns."""
        await self.session.flush()
        await self.session.refresh(review)
        return review

    async def delete(self, review: ProductReview) -> None:
        await self.session.delete(review)
        await self.session.flush()

    async def rating_stats(
        self, product_id: str, status: Optional[ReviewStatus] = None
    ) -> Tuple[int, float, Dict[str, int]]:
        """Count, rating sum and 1-5 distribution of a product's reviews.

        With ``status`` set only reviews in that state are included.
        """
        query = (
            select(ProductReview.rating, func.count(ProductReview.id))
            .where(ProductReview.product_id == product_id)
            .group_by(ProductReview.rating)
        )
        if status is not None:
            query = query.where(ProductReview.status == status.value)

        result = await self.session.execute(query)

        distribution = {str(rating): 0 for rating in range(1, 6)}
        count = 0
        total = 0.0
        for rating, rating_count in result.all():
            distribution[str(rating)] = int(rating_count)
            count += rating_count
            total += rating * rating_count
        return count, total, distribution


class ProductRepository:
    """Product aggregate store bound to one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, product_id: str) -> Optional[Product]:
        """Read a product, bypassing any copy already held by the session."""
        result = await self.session.execute(
            select(Product)
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> List[Product]:
        result = await self.session.execute(select(Product).order_by(Product.id))
        return list(result.scalars().all())

    async def create(self, product_id: str, average_rating: float = 0.0, ratings_count: int = 0, **fields) -> Product:
        """Insert a product, optionally seeded with an existing aggregate."""
        product = Product(
            id=product_id,
            average_rating=average_rating,
            ratings_count=ratings_count,
            rating_sum=average_rating * ratings_count,
            version=0,
            **fields,
        )
        self.session.add(product)
        await self.session.flush()
        return product

    async def set_aggregate(
        self,
        product_id: str,
        average_rating: float,
        ratings_count: int,
        rating_sum: float,
        expected_version: int,
    ) -> bool:
        """Write the aggregate only if nobody else wrote it since ``expected_version``.

        Returns False when the version moved on; the caller must re-read.
        """
        result = await self.session.execute(
            update(Product)
            .where(and_(Product.id == product_id, Product.version == expected_version))
            .values(
                average_rating=average_rating,
                ratings_count=ratings_count,
                rating_sum=rating_sum,
                version=Product.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
