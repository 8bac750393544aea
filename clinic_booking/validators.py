from dataclasses import dataclass
from datetime import datetime, timedelta

from .exceptions import (
    DoctorClinicMismatchError,
    InvalidDurationError,
    InvalidReferenceError,
)
from .store import EntityKind


@dataclass(frozen=True)
class AppointmentCandidate:
    """Values proposed for a new or edited appointment."""

    patient_id: int
    doctor_id: int
    clinic_id: int
    category_id: int
    start_utc: datetime
    duration_minutes: int

    @property
    def end_utc(self):
        return self.start_utc + timedelta(minutes=self.duration_minutes)


def validate_references(store, candidate):
    """
    Check that a candidate appointment points at valid, consistent rows.

    Checks run in a fixed order and the first failing group raises:

    1. patient, doctor, clinic and category must all exist. All four are
       looked up before raising so ``InvalidReferenceError.missing`` lists every
       missing kind.
    2. the doctor must belong to the submitted clinic.
    3. the duration must be positive and the appointment must end within
       the range ``datetime`` can represent.

    Returns the doctor instance on success. Has no side effects.
    """
    doctor = store.find_doctor(candidate.doctor_id)

    lookups = [
        (EntityKind.PATIENT, store.exists(EntityKind.PATIENT, candidate.patient_id)),
        (EntityKind.DOCTOR, doctor is not None),
        (EntityKind.CLINIC, store.exists(EntityKind.CLINIC, candidate.clinic_id)),
        (EntityKind.CATEGORY, store.exists(EntityKind.CATEGORY, candidate.category_id)),
    ]
    missing = [kind for kind, found in lookups if not found]
    if missing:
        raise InvalidReferenceError(missing=missing)

    if doctor.clinic_id != candidate.clinic_id:
        raise DoctorClinicMismatchError()

    if candidate.duration_minutes <= 0:
        raise InvalidDurationError()

    try:
        candidate.end_utc
    except OverflowError:
        raise InvalidDurationError("Appointment would end past the last supported date.")

    return doctor
