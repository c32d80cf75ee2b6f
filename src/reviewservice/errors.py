"""Errors raised by the review service.

Every error carries the HTTP status the web layer answers with.
"""


class ReviewServiceError(Exception):
    """Base class for all review service errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ReviewServiceError):
    """Malformed input: bad rating, missing ids, unknown status."""

    status_code = 400


class DuplicateReviewError(ReviewServiceError):
    """The user has already reviewed this product."""

    status_code = 400

    def __init__(self, product_id: str, user_id: str):
        super().__init__("User has already reviewed this product")
        self.product_id = product_id
        self.user_id = user_id


class ProductNotFoundError(ReviewServiceError):
    status_code = 404

    def __init__(self, product_id: str):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class ReviewNotFoundError(ReviewServiceError):
    status_code = 404

    def __init__(self, review_id: int):
        super().__init__(f"Review {review_id} not found")
        self.review_id = review_id


class StorageError(ReviewServiceError):
    """Wraps any failure of the underlying database."""

    status_code = 500


class AggregateConflictError(StorageError):
    """The product aggregate kept changing under a compare-and-swap write."""

    def __init__(self, product_id: str, attempts: int):
        super().__init__(
            f"Rating aggregate for product {product_id} was modified concurrently "
            f"{attempts} times in a row"
        )
        self.product_id = product_id
        self.attempts = attempts
