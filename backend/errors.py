"""
Error taxonomy shared by services and routes.

Subclassing the builtin exceptions keeps the route layer simple: it maps
`ValueError` to 4xx and `PermissionError` to 401/403 without knowing about
every service.
"""


class ValidationError(ValueError):
    """Malformed input. Raised before any side effect happens."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class AuthorizationError(PermissionError):
    """Unknown device, wrong token (401) or disabled device (403)."""

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.status_code = status_code


class LabelerError(RuntimeError):
    """The image labeling service failed, timed out or returned junk."""
