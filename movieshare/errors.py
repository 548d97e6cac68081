"""
Exception hierarchy for the movie sharing service.

Validation errors are raised before any collaborator is called. Collaborator
errors wrap failures from the auth provider, document store or object storage
and carry the collaborator's message text.
"""


class MovieShareError(Exception):
    """Base class for every error raised by movieshare services."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# --- Validation ---

class UploadValidationError(MovieShareError):
    pass


class PasswordMismatchError(MovieShareError):
    def __init__(self, message: str = "Passwords do not match"):
        super().__init__(message)


# --- Collaborators ---

class AuthError(MovieShareError):
    pass


class StorageError(MovieShareError):
    pass


class AssetNotFoundError(StorageError):
    def __init__(self, path: str):
        super().__init__(f"Object not found: {path}")
        self.path = path


class ThumbnailError(MovieShareError):
    pass


class MovieNotFoundError(MovieShareError):
    def __init__(self, movie_id: str):
        super().__init__("Movie not found")
        self.movie_id = movie_id


# --- Orchestration ---

class NotSignedInError(MovieShareError):
    pass


class UploadError(MovieShareError):
    """An upload orchestration step failed; ``step`` names the failing step."""

    def __init__(self, message: str, step: str):
        super().__init__(message)
        self.step = step
