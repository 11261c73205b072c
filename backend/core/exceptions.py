"""Custom exceptions for the catalog backend."""


class CatalogException(Exception):
    """Base exception for the catalog backend."""

    error_code = "catalog_error"

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(CatalogException):
    """Resource not found exception."""

    error_code = "not_found"

    def __init__(self, message: str = "Resource not found"):
        """Initialize NotFoundError with 404 status code."""
        super().__init__(message, 404)


class ForbiddenError(CatalogException):
    """Operation not allowed in the current state."""

    error_code = "forbidden"

    def __init__(self, message: str = "Forbidden"):
        """Initialize ForbiddenError with 403 status code."""
        super().__init__(message, 403)


class ValidationError(CatalogException):
    """Validation error exception."""

    error_code = "validation_error"

    def __init__(self, message: str = "Validation failed"):
        """Initialize ValidationError with 422 status code."""
        super().__init__(message, 422)


class ConflictError(CatalogException):
    """Resource conflict exception."""

    error_code = "conflict"

    def __init__(self, message: str = "Resource conflict"):
        """Initialize ConflictError with 409 status code."""
        super().__init__(message, 409)


class InvalidParentError(CatalogException):
    """Parent category is missing or would create a cycle."""

    error_code = "invalid_parent"

    def __init__(self, message: str = "Invalid parent category"):
        """Initialize InvalidParentError with 400 status code."""
        super().__init__(message, 400)


class HasChildrenError(ForbiddenError):
    """Category still has sub-categories."""

    error_code = "has_children"

    def __init__(self, message: str = "Category has sub-categories"):
        super().__init__(message)


class HasProductsError(ForbiddenError):
    """Category still has products attached."""

    error_code = "has_products"

    def __init__(self, message: str = "Category contains products"):
        super().__init__(message)


class HasOffersError(ForbiddenError):
    """Entity still has offers attached."""

    error_code = "has_offers"

    def __init__(self, message: str = "Entity has associated offers"):
        super().__init__(message)
