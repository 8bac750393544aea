"""
Appointment booking services.

Create, update and delete run their checks in a fixed order and stop at the
first failure:

1. Route id must match the payload id (update only, no store access)
2. The appointment must exist (update and delete)
3. Patient, doctor, clinic and category must exist, the doctor must work at
   the clinic, and the duration must be positive
4. The patient must not already be booked at the clinic during the slot
5. The row is written

Steps 2 to 5 run in one transaction. The patient row is locked with
select_for_update() before the overlap check so two concurrent bookings for
the same patient cannot both pass the check and both insert.

The reference-data helpers at the bottom of the module enforce the unique
fields and delete guards of clinics, specialities, categories, doctors and
patients.
"""

import logging

from django.db import IntegrityError, transaction
from django.db.models import ProtectedError

from .exceptions import (
    AppointmentConflictError,
    BookingError,
    ConflictError,
    DependencyError,
    DuplicateError,
    IdentityMismatchError,
    InvalidReferenceError,
    NotFoundError,
    ValidationError,
)
from .models import Appointment, Clinic, Doctor, Patient, Speciality
from .overlap import find_conflict
from .store import MODEL_FOR_KIND, DjangoEntityStore, EntityKind
from .validators import validate_references

logger = logging.getLogger(__name__)

NAMED_KINDS = (EntityKind.CLINIC, EntityKind.SPECIALITY, EntityKind.CATEGORY)

DELETE_BLOCKED_MESSAGES = {
    EntityKind.CLINIC: "Cannot delete clinic with existing doctors or appointments.",
    EntityKind.SPECIALITY: "Cannot delete speciality with assigned doctors.",
    EntityKind.CATEGORY: "Cannot delete category used by appointments.",
    EntityKind.DOCTOR: "Cannot delete doctor with existing appointments.",
    EntityKind.PATIENT: "Cannot delete patient with existing appointments.",
}


def _check_identity(route_id, payload_id):
    if route_id != payload_id:
        raise IdentityMismatchError(route_id=route_id, payload_id=payload_id)


def _ensure_no_conflict(store, candidate, exclude_id=None):
    existing = find_conflict(
        store,
        patient_id=candidate.patient_id,
        clinic_id=candidate.clinic_id,
        start_utc=candidate.start_utc,
        duration_minutes=candidate.duration_minutes,
        exclude_id=exclude_id,
    )
    if existing is not None:
        raise AppointmentConflictError(existing=existing)


# Appointments


def create_appointment(candidate, store=None):
    """
    Book a new appointment.

    Args:
        candidate: The AppointmentCandidate to admit.
        store: EntityStore to read from and write to. Defaults to the ORM.

    Returns:
        The saved Appointment.

    Raises:
        InvalidReferenceError: A referenced id does not exist.
        DoctorClinicMismatchError: The doctor works at another clinic.
        InvalidDurationError: The duration is not positive.
        AppointmentConflictError: The patient is already booked at the clinic.
        ConflictError: The database rejected the write.
    """
    store = store or DjangoEntityStore()

    try:
        with store.atomic():
            store.lock_patients([candidate.patient_id])
            validate_references(store, candidate)
            _ensure_no_conflict(store, candidate)

            appointment = store.insert_appointment(
                Appointment(
                    patient_id=candidate.patient_id,
                    doctor_id=candidate.doctor_id,
                    clinic_id=candidate.clinic_id,
                    category_id=candidate.category_id,
                    start_utc=candidate.start_utc,
                    duration_minutes=candidate.duration_minutes,
                )
            )
    except BookingError as e:
        logger.warning(
            "Rejected appointment for patient %s at clinic %s: %s",
            candidate.patient_id,
            candidate.clinic_id,
            e.code,
        )
        raise
    except IntegrityError as e:
        logger.warning("Appointment insert failed at commit: %s", e)
        raise ConflictError("The appointment conflicts with existing data.") from e

    logger.info(
        "Booked appointment %s for patient %s at clinic %s",
        appointment.pk,
        appointment.patient_id,
        appointment.clinic_id,
    )
    return appointment


def update_appointment(appointment_id, payload_id, candidate, store=None):
    """
    Replace the bookable fields of an existing appointment.

    The overlap check skips the appointment itself, so saving an
    appointment with unchanged values always succeeds.

    Raises:
        IdentityMismatchError: ``appointment_id`` differs from ``payload_id``.
        NotFoundError: No appointment has ``appointment_id``.
        plus everything ``create_appointment`` raises.
    """
    _check_identity(appointment_id, payload_id)
    store = store or DjangoEntityStore()

    try:
        with store.atomic():
            appointment = store.find_appointment(appointment_id)
            if appointment is None:
                raise NotFoundError("Appointment not found.")

            store.lock_patients([appointment.patient_id, candidate.patient_id])
            validate_references(store, candidate)
            _ensure_no_conflict(store, candidate, exclude_id=appointment.pk)

            appointment.patient_id = candidate.patient_id
            appointment.doctor_id = candidate.doctor_id
            appointment.clinic_id = candidate.clinic_id
            appointment.category_id = candidate.category_id
            appointment.start_utc = candidate.start_utc
            appointment.duration_minutes = candidate.duration_minutes
            store.update_appointment(appointment)
    except BookingError as e:
        logger.warning("Rejected update of appointment %s: %s", appointment_id, e.code)
        raise
    except IntegrityError as e:
        logger.warning("Appointment %s update failed at commit: %s", appointment_id, e)
        raise ConflictError("The appointment conflicts with existing data.") from e

    logger.info("Updated appointment %s", appointment_id)
    return appointment


def delete_appointment(appointment_id, store=None):
    store = store or DjangoEntityStore()

    with store.atomic():
        appointment = store.find_appointment(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment not found.")
        store.delete_appointment(appointment)

    logger.info("Deleted appointment %s", appointment_id)


def check_appointment(candidate, exclude_id=None, store=None):
    """
    Run the booking rules without writing anything.

    Used by forms that save the row themselves, such as the admin. Raises
    the same errors as ``create_appointment``.
    """
    store = store or DjangoEntityStore()
    validate_references(store, candidate)
    _ensure_no_conflict(store, candidate, exclude_id=exclude_id)


# Reference data


def _get_or_not_found(kind, pk):
    instance = MODEL_FOR_KIND[kind].objects.filter(pk=pk).first()
    if instance is None:
        raise NotFoundError(f"{kind.label} not found.")
    return instance


def create_named(kind, name, **fields):
    """Create a clinic, speciality or category with a unique name."""
    model = MODEL_FOR_KIND[kind]
    with transaction.atomic():
        if model.objects.filter(name=name).exists():
            raise DuplicateError(f"{kind.label} name already exists.")
        return model.objects.create(name=name, **fields)


def update_named(kind, pk, payload_id, name, **fields):
    _check_identity(pk, payload_id)
    model = MODEL_FOR_KIND[kind]
    with transaction.atomic():
        instance = _get_or_not_found(kind, pk)
        if model.objects.filter(name=name).exclude(pk=pk).exists():
            raise DuplicateError(f"{kind.label} name already exists.")

        instance.name = name
        for field, value in fields.items():
            setattr(instance, field, value)
        instance.save()
    return instance


def _check_doctor_references(clinic_id, speciality_id):
    clinic_exists = Clinic.objects.filter(pk=clinic_id).exists()
    speciality_exists = Speciality.objects.filter(pk=speciality_id).exists()
    if not clinic_exists or not speciality_exists:
        missing = []
        if not clinic_exists:
            missing.append(EntityKind.CLINIC)
        if not speciality_exists:
            missing.append(EntityKind.SPECIALITY)
        raise InvalidReferenceError(
            missing=missing, message="Invalid ClinicId or SpecialityId."
        )


def _check_doctor_unique(first_name, last_name, clinic_id, speciality_id, exclude_pk=None):
    duplicates = Doctor.objects.filter(
        first_name=first_name,
        last_name=last_name,
        clinic_id=clinic_id,
        speciality_id=speciality_id,
    )
    if exclude_pk is not None:
        duplicates = duplicates.exclude(pk=exclude_pk)
    if duplicates.exists():
        raise DuplicateError("Duplicate doctor at the same clinic/speciality.")


def create_doctor(*, first_name, last_name, clinic_id, speciality_id):
    with transaction.atomic():
        _check_doctor_references(clinic_id, speciality_id)
        _check_doctor_unique(first_name, last_name, clinic_id, speciality_id)
        return Doctor.objects.create(
            first_name=first_name,
            last_name=last_name,
            clinic_id=clinic_id,
            speciality_id=speciality_id,
        )


def update_doctor(pk, payload_id, *, first_name, last_name, clinic_id, speciality_id):
    _check_identity(pk, payload_id)
    with transaction.atomic():
        doctor = _get_or_not_found(EntityKind.DOCTOR, pk)
        _check_doctor_references(clinic_id, speciality_id)
        _check_doctor_unique(
            first_name, last_name, clinic_id, speciality_id, exclude_pk=pk
        )

        # Existing bookings name the doctor's clinic, moving would break them
        if doctor.clinic_id != clinic_id and doctor.appointments.exists():
            raise DependencyError(
                "Cannot move a doctor with existing appointments to another clinic."
            )

        doctor.first_name = first_name
        doctor.last_name = last_name
        doctor.clinic_id = clinic_id
        doctor.speciality_id = speciality_id
        doctor.save()
    return doctor


def _normalized_email(email):
    normalized = Patient.normalize_email(email)
    if not normalized:
        raise ValidationError("Email is required.", code="email_required")
    return normalized


def create_patient(*, first_name, last_name, email, birth_date):
    email = _normalized_email(email)
    with transaction.atomic():
        if Patient.objects.filter(email=email).exists():
            raise DuplicateError("Email already exists.")
        return Patient.objects.create(
            first_name=first_name,
            last_name=last_name,
            email=email,
            birth_date=birth_date,
        )


def update_patient(pk, payload_id, *, first_name, last_name, email, birth_date):
    _check_identity(pk, payload_id)
    email = _normalized_email(email)
    with transaction.atomic():
        patient = _get_or_not_found(EntityKind.PATIENT, pk)
        if Patient.objects.filter(email=email).exclude(pk=pk).exists():
            raise DuplicateError("Email already exists.")

        patient.first_name = first_name
        patient.last_name = last_name
        patient.email = email
        patient.birth_date = birth_date
        patient.save()
    return patient


def find_patient_by_email(email):
    normalized = Patient.normalize_email(email)
    patient = Patient.objects.filter(email=normalized).first() if normalized else None
    if patient is None:
        raise NotFoundError("Patient not found.")
    return patient


def delete_entity(kind, pk, store=None):
    """
    Delete a reference row unless other rows still point at it.

    Deletes never cascade: a clinic with doctors or appointments, a
    speciality with doctors, and a category, doctor or patient with
    appointments are all kept and ``DependencyError`` is raised.
    """
    if kind is EntityKind.APPOINTMENT:
        return delete_appointment(pk, store=store)

    store = store or DjangoEntityStore()
    try:
        with store.atomic():
            instance = store.find(kind, pk)
            if instance is None:
                raise NotFoundError(f"{kind.label} not found.")

            blocking = store.dependents(kind, instance)
            if blocking:
                logger.warning(
                    "Refused to delete %s %s, still referenced by %s",
                    kind.value,
                    pk,
                    ", ".join(blocking),
                )
                raise DependencyError(DELETE_BLOCKED_MESSAGES[kind])

            instance.delete()
    except ProtectedError as e:
        raise DependencyError(DELETE_BLOCKED_MESSAGES[kind]) from e

    logger.info("Deleted %s %s", kind.value, pk)
