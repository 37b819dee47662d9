"""
Custom Exception Classes for the Blog API

Every failure an operation can report is one of these classes. The HTTP layer
maps each class to a status code through ``status_code``.
"""


class BlogError(Exception):
    """Base exception for all blog API errors."""
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__


class ConfigurationError(BlogError):
    """Raised when configuration validation fails or required settings are missing."""
    pass


# =============================================================================
# Caller Errors
# =============================================================================

class ValidationError(BlogError):
    """Malformed or missing input."""
    status_code = 400


class DuplicateEmailError(ValidationError):
    """Email already registered."""
    pass


class AuthenticationError(BlogError):
    """Missing or invalid credentials."""
    status_code = 401


class AuthorizationError(BlogError):
    """Not allowed to perform this action."""
    status_code = 403


class NotFoundError(BlogError):
    """Resource not found."""
    status_code = 404


# =============================================================================
# Dependency Errors
# =============================================================================

class DependencyError(BlogError):
    """A backing service is unavailable."""
    status_code = 500
