from fastapi import HTTPException, status

from listings_api.services.repository import (
    RepositoryConflictError,
    RepositoryError,
    RepositoryForbiddenError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)

_STATUS_BY_ERROR: tuple[tuple[type[RepositoryError], int], ...] = (
    (RepositoryUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (RepositoryNotFoundError, status.HTTP_404_NOT_FOUND),
    (RepositoryConflictError, status.HTTP_409_CONFLICT),
    (RepositoryForbiddenError, status.HTTP_403_FORBIDDEN),
    (RepositoryValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def to_http_exception(exc: RepositoryError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="repository error")
