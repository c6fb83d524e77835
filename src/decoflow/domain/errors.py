class AppError(Exception):
    """Base app error."""

    user_message = "Something went wrong."


class ValidationError(AppError):
    user_message = "Some of the data is not valid."


class NotFoundError(AppError):
    user_message = "The requested item no longer exists."


class SchemaInitError(AppError):
    """The database schema could not be created or migrated; the app must not continue."""

    user_message = "The database could not be opened. Please restart the app."


class BlobStoreError(AppError):
    """Disk-level failure while copying or listing image files."""

    user_message = "Could not access the image storage."


class InvalidArchiveError(AppError):
    """Raised before any destructive step: live data is untouched."""

    user_message = "Invalid or corrupted backup file."


class PartialRestoreError(AppError):
    """Raised after the live data was wiped: the store may be half restored."""

    user_message = "The backup could not be fully restored. Data may be inconsistent, restart the app."


class ExportError(AppError):
    user_message = "Could not export the backup. Please try again."
