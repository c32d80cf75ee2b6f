from fastapi import HTTPException

from ..errors import ReviewServiceError


def http_error(error: ReviewServiceError) -> HTTPException:
    """Translate a service error into the HTTP error the client sees."""
    return HTTPException(status_code=error.status_code, detail=error.message)
