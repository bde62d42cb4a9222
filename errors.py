# errors.py
from typing import Optional


# --- Custom Exceptions ---
class AppError(Exception):
    """Base class for app-specific errors."""
    status_code = 400
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": str(self)}

class ValidationError(AppError):
    status_code = 400

class AuthError(AppError):
    status_code = 401

class NotFoundError(AppError):
    status_code = 404

class ConflictError(AppError):
    status_code = 409

class ConfigurationError(AppError):
    """Pflicht-API-Key fehlt. Wird nie wiederholt."""
    status_code = 500

class DatabaseError(AppError):
    status_code = 500

class ExternalAPIError(AppError):
    status_code = 502  # Bad gateway / upstream error

class MalformedResponseError(ExternalAPIError):
    """Antwort des Providers passt nicht zum erwarteten Schema."""
    status_code = 502

class EmptyRecommendationsError(AppError):
    """Batch hat nach der Auflösung keinen einzigen Kandidaten mehr."""
    status_code = 404
