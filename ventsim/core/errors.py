"""
Validation errors raised by configuration calls.

All are input errors raised synchronously where the bad value is offered;
none is retryable.
"""


class VentSimError(ValueError):
    """Base class for simulator validation errors."""
    pass


class InvalidSettings(VentSimError):
    """Raised for ventilator settings that cannot produce a breath cycle."""
    pass


class InvalidParameters(VentSimError):
    """Raised for patient or alveolar unit parameters outside their domain."""
    pass


class InvalidModelState(VentSimError):
    """Raised when a lung model is stepped without a usable unit set."""
    pass
