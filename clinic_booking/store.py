"""
Entity store used by the appointment services.

The services only talk to the small capability surface of ``EntityStore``
so the validation rules can be exercised against an in-memory fake.
``DjangoEntityStore`` is the ORM backed implementation used in production.
"""

import enum

from django.db import transaction

from .models import Appointment, Category, Clinic, Doctor, Patient, Speciality


class EntityKind(enum.Enum):
    CLINIC = "clinic"
    SPECIALITY = "speciality"
    CATEGORY = "category"
    DOCTOR = "doctor"
    PATIENT = "patient"
    APPOINTMENT = "appointment"

    @property
    def label(self):
        return self.value.capitalize()


MODEL_FOR_KIND = {
    EntityKind.CLINIC: Clinic,
    EntityKind.SPECIALITY: Speciality,
    EntityKind.CATEGORY: Category,
    EntityKind.DOCTOR: Doctor,
    EntityKind.PATIENT: Patient,
    EntityKind.APPOINTMENT: Appointment,
}

# Reverse relations that block a delete, per kind
DEPENDENTS_FOR_KIND = {
    EntityKind.CLINIC: ("doctors", "appointments"),
    EntityKind.SPECIALITY: ("doctors",),
    EntityKind.CATEGORY: ("appointments",),
    EntityKind.DOCTOR: ("appointments",),
    EntityKind.PATIENT: ("appointments",),
    EntityKind.APPOINTMENT: (),
}


class EntityStore:
    """Capabilities the booking services need from persistence."""

    def atomic(self):
        raise NotImplementedError

    def lock_patients(self, patient_ids):
        raise NotImplementedError

    def exists(self, kind, pk):
        raise NotImplementedError

    def find_doctor(self, pk):
        raise NotImplementedError

    def find_appointment(self, pk):
        raise NotImplementedError

    def find_appointments_for(self, patient_id, clinic_id):
        raise NotImplementedError

    def insert_appointment(self, appointment):
        raise NotImplementedError

    def update_appointment(self, appointment):
        raise NotImplementedError

    def delete_appointment(self, appointment):
        raise NotImplementedError


class DjangoEntityStore(EntityStore):
    def atomic(self):
        return transaction.atomic()

    def lock_patients(self, patient_ids):
        """
        Take row locks on the given patients for the rest of the transaction.

        Locks are taken in id order so two requests touching the same pair of
        patients cannot deadlock. Missing ids are ignored; the referential
        check reports them.
        """
        ids = sorted({pk for pk in patient_ids if pk is not None})
        # Force evaluation so the SELECT ... FOR UPDATE actually runs
        return list(
            Patient.objects.select_for_update()
            .filter(pk__in=ids)
            .order_by("pk")
            .values_list("pk", flat=True)
        )

    def exists(self, kind, pk):
        return MODEL_FOR_KIND[kind].objects.filter(pk=pk).exists()

    def find_doctor(self, pk):
        return Doctor.objects.filter(pk=pk).first()

    def find_appointment(self, pk):
        return Appointment.objects.filter(pk=pk).first()

    def find_appointments_for(self, patient_id, clinic_id):
        return Appointment.objects.filter(patient_id=patient_id, clinic_id=clinic_id)

    def insert_appointment(self, appointment):
        appointment.save(force_insert=True)
        return appointment

    def update_appointment(self, appointment):
        appointment.save(
            update_fields=[
                "patient",
                "doctor",
                "clinic",
                "category",
                "start_utc",
                "duration_minutes",
            ]
        )
        return appointment

    def delete_appointment(self, appointment):
        appointment.delete()

    # Reference data

    def find(self, kind, pk):
        return MODEL_FOR_KIND[kind].objects.filter(pk=pk).first()

    def dependents(self, kind, instance):
        """Names of the reverse relations that still hold rows for ``instance``."""
        return [
            relation
            for relation in DEPENDENTS_FOR_KIND[kind]
            if getattr(instance, relation).exists()
        ]
