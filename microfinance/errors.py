"""
Domain errors raised by the back-office managers.

Each error maps onto one HTTP status in the API layer.
"""


class MicrofinanceError(Exception):
    """Base class for domain errors"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MicrofinanceError, ValueError):
    """Malformed request or missing required field"""

    status_code = 400


class NotFoundError(MicrofinanceError, LookupError):
    """Referenced loan, group, customer or user does not exist"""

    status_code = 404


class ConflictError(MicrofinanceError):
    """Duplicate identifier or a rule that forbids the mutation"""

    status_code = 400
