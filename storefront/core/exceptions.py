from typing import Any, List, Optional


class StorefrontError(Exception):
    """Base class for errors raised by the storefront services.

    ``kind`` is stable and is what the HTTP layer maps to a status code.
    """

    kind = "storefront_error"

    def __init__(self, message: str, errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []


class ValidationError(StorefrontError):
    kind = "validation_error"

    def __init__(self, message: str = "Validation Error", errors: Optional[List[Any]] = None):
        super().__init__(message, errors)


class NotFoundError(StorefrontError):
    kind = "not_found"

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")
        self.resource = resource


class InsufficientStock(StorefrontError):
    kind = "insufficient_stock"

    def __init__(self, available: int, variant_id: Optional[int] = None):
        super().__init__(f"Insufficient stock. Only {available} items available")
        self.available = available
        self.variant_id = variant_id


class ForbiddenError(StorefrontError):
    kind = "forbidden"

    def __init__(self, message: str = "Forbidden Access"):
        super().__init__(message)


class ConflictError(StorefrontError):
    kind = "conflict"

    def __init__(self, message: str = "Resource was modified concurrently, please retry"):
        super().__init__(message)
