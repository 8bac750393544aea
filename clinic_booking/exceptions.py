"""
Errors raised by the booking services.

Every error carries a human readable ``message`` and a machine readable
``code``. Views translate the four families below into HTTP statuses:

- ValidationError        -> 400
- IdentityMismatchError  -> 400
- NotFoundError          -> 404
- ConflictError          -> 409
"""


class BookingError(Exception):
    """Base exception for booking failures."""

    def __init__(self, message, code="booking_error"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class ValidationError(BookingError):
    """Submitted values are bad. The caller can fix the input and resubmit."""

    def __init__(self, message, code="invalid"):
        super().__init__(message, code=code)


class InvalidReferenceError(ValidationError):
    """One or more referenced ids do not exist."""

    def __init__(
        self,
        missing=(),
        message="Invalid PatientId, DoctorId, ClinicId, or CategoryId.",
    ):
        self.missing = tuple(missing)
        super().__init__(message, code="invalid_reference")


class DoctorClinicMismatchError(ValidationError):
    def __init__(self, message="Doctor is not assigned to the selected clinic."):
        super().__init__(message, code="doctor_clinic_mismatch")


class InvalidDurationError(ValidationError):
    def __init__(self, message="Duration must be positive."):
        super().__init__(message, code="invalid_duration")


class ConflictError(BookingError):
    """The request clashes with data that already exists."""

    def __init__(self, message, code="conflict"):
        super().__init__(message, code=code)


class AppointmentConflictError(ConflictError):
    """The patient already has an overlapping appointment at the clinic."""

    def __init__(
        self,
        existing=None,
        message=(
            "This patient already has an appointment at this clinic "
            "during the selected time."
        ),
    ):
        self.existing = existing
        super().__init__(message, code="appointment_conflict")


class DuplicateError(ConflictError):
    def __init__(self, message):
        super().__init__(message, code="duplicate")


class DependencyError(ConflictError):
    """A row cannot be deleted while other rows still reference it."""

    def __init__(self, message):
        super().__init__(message, code="has_dependents")


class NotFoundError(BookingError):
    def __init__(self, message="Not found.", code="not_found"):
        super().__init__(message, code=code)


class IdentityMismatchError(BookingError):
    """The id in the route disagrees with the id in the payload."""

    def __init__(self, route_id=None, payload_id=None):
        self.route_id = route_id
        self.payload_id = payload_id
        super().__init__(
            f"Route id {route_id} does not match payload id {payload_id}.",
            code="id_mismatch",
        )
