class AccessWindowError(Exception):
    """Base class for recoverable access-window errors."""


class InvalidPackageError(AccessWindowError):
    """Package duration is not a positive integer or its unit is unknown."""


class MalformedWindowError(AccessWindowError):
    """Window whose end_time is not after its start_time."""


class DeserializationError(AccessWindowError):
    """Persisted window could not be parsed back."""


class InvalidPhoneNumberError(AccessWindowError):
    pass


class PackageNotFoundError(AccessWindowError):
    pass


class PaymentFailedError(AccessWindowError):
    def __init__(self, message: str, reference: str = None):
        super().__init__(message)
        self.reference = reference
