# errors.py
class AppError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthorized(AppError):
    status_code = 401


class Forbidden(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


class ValidationFailure(AppError):
    status_code = 400


class UpstreamFailure(AppError):
    """Store or LLM call failed."""
    status_code = 502
