"""
Error taxonomy shared by the service layer and the HTTP layer.

Services raise one of these and never return a sentinel for failure; the
handlers registered in ``quickblog.main`` render each kind as
``{"success": false, "error": message}`` with its ``status_code``.
"""


class QuickblogError(Exception):
    status_code: int = 500
    default_message: str = "Server error."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(QuickblogError):
    status_code = 400
    default_message = "Invalid input."


class Unauthenticated(QuickblogError):
    status_code = 401
    default_message = "Not authorized to access this route."


class InvalidToken(Unauthenticated):
    default_message = "Not authorized, token failed."


class Forbidden(QuickblogError):
    status_code = 403
    default_message = "Not authorized to perform this action."


class NotFound(QuickblogError):
    status_code = 404
    default_message = "Resource not found."


class InvalidId(NotFound):
    default_message = "Invalid ID format."


class ServerError(QuickblogError):
    pass
