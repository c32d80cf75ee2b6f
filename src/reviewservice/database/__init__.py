from .connection import DatabaseManager
from .repository import ReviewRepository, ProductRepository
from .models import Base, ProductReview, Product

__all__ = ["DatabaseManager", "ReviewRepository", "ProductRepository", "Base", "ProductReview", "Product"]
