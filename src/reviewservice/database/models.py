from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class ProductReview(Base):
    """SQLAlchemy model for product reviews."""
    __tablename__ = 'product_reviews'

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(String(255), nullable=False, index=True)
    # NULL for guest reviews; NULLs never collide in the unique key below
    user_id = Column(String(255), nullable=True, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    # PENDING/APPROVED under moderation, NULL when reviews count immediately
    status = Column(String(16), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint('rating >= 1 AND rating <= 5', name='check_rating_range'),
        UniqueConstraint('product_id', 'user_id', name='unique_product_user_review'),
        Index('idx_product_reviews_product_status', 'product_id', 'status'),
    )

    def to_dict(self):
        """Convert model to dictionary."""
        return {
            'id': self.id,
            'product_id': self.product_id,
            'user_id': self.user_id,
            'rating': self.rating,
            'comment': self.comment,
            'status': self.status,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }


class Product(Base):
    """SQLAlchemy model for catalogue products and their rating aggregate.

    Products are owned by the catalogue; this service only writes the
    aggregate columns, always through a version compare-and-swap.
    """
    __tablename__ = 'products'

    id = Column(String(255), primary_key=True)
    title = Column(String(255), nullable=True)
    product_line = Column(String(255), nullable=True)
    item_code = Column(String(255), nullable=True)
    price = Column(Float, nullable=True)
    description = Column(Text, nullable=True)
    ingredients = Column(Text, nullable=True)
    category = Column(String(255), nullable=True)
    target_area = Column(String(255), nullable=True)
    tags = Column(JSON, nullable=True)
    value = Column(String(255), nullable=True)
    value_descriptor = Column(String(255), nullable=True)
    images = Column(JSON, nullable=True)

    average_rating = Column(Float, nullable=False, default=0.0)
    ratings_count = Column(Integer, nullable=False, default=0)
    rating_sum = Column(Float, nullable=False, default=0.0)
    version = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint('ratings_count >= 0', name='check_ratings_count_non_negative'),
    )

    def to_dict(self):
        """Convert model to dictionary."""
        return {
            'id': self.id,
            'title': self.title,
            'product_line': self.product_line,
            'item_code': self.item_code,
            'price': self.price,
            'description': self.description,
            'ingredients': self.ingredients,
            'category': self.category,
            'target_area': self.target_area,
            'tags': self.tags or [],
            'value': self.value,
            'value_descriptor': self.value_descriptor,
            'images': self.images or [],
            'average_rating': self.average_rating or 0.0,
            'ratings_count': self.ratings_count or 0,
        }
