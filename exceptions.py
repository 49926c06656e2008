class BookingEngineError(Exception):
    """Base exception for pricing and booking errors"""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class InvalidConfigurationError(BookingEngineError):
    status_code = 400


class ComponentNotFoundError(BookingEngineError):
    status_code = 404


class ItineraryValidationError(BookingEngineError):
    status_code = 400

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Itinerary is not valid")


class RecordDecodeError(BookingEngineError):
    status_code = 500


class StorageError(BookingEngineError):
    status_code = 503


class DiscountExhaustedError(BookingEngineError):
    """Raised by the store when a capped code ran out during finalize."""

    status_code = 409


class DuplicateReferenceError(BookingEngineError):
    """Reference number already taken; the caller draws a new one."""

    status_code = 409


class UploadRejectedError(BookingEngineError):
    status_code = 400


class DocumentAttachedError(BookingEngineError):
    """The upload already belongs to a saved booking."""

    status_code = 409


class NotificationError(BookingEngineError):
    status_code = 502
