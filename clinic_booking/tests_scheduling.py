"""
Test coverage for the booking rules: overlap detection, reference
validation and the create/update/delete services.
"""

import contextlib
from datetime import date, datetime

from django.db import IntegrityError, transaction
from django.test import SimpleTestCase, TestCase
from django.utils import timezone

from . import services
from .exceptions import (
    AppointmentConflictError,
    ConflictError,
    DependencyError,
    DoctorClinicMismatchError,
    DuplicateError,
    IdentityMismatchError,
    InvalidDurationError,
    InvalidReferenceError,
    NotFoundError,
    ValidationError,
)
from .models import Appointment, Category, Clinic, Doctor, Patient, Speciality
from .overlap import find_conflict, intervals_overlap
from .store import EntityKind, EntityStore
from .validators import AppointmentCandidate, validate_references


def at(hour, minute=0):
    return timezone.make_aware(datetime(2025, 9, 28, hour, minute))


class InMemoryStore(EntityStore):
    """Entity store over plain collections, records every lookup it answers."""

    def __init__(
        self, patients=(), doctors=(), clinics=(), categories=(), appointments=()
    ):
        self.ids = {
            EntityKind.PATIENT: set(patients),
            EntityKind.CLINIC: set(clinics),
            EntityKind.CATEGORY: set(categories),
        }
        self.doctors = {doctor.pk: doctor for doctor in doctors}
        self.appointments = list(appointments)
        self.lookups = []
        self.locked = []

    def atomic(self):
        return contextlib.nullcontext()

    def lock_patients(self, patient_ids):
        self.locked.extend(patient_ids)

    def exists(self, kind, pk):
        self.lookups.append(kind)
        if kind is EntityKind.DOCTOR:
            return pk in self.doctors
        return pk in self.ids[kind]

    def find_doctor(self, pk):
        self.lookups.append(EntityKind.DOCTOR)
        return self.doctors.get(pk)

    def find_appointment(self, pk):
        return next((a for a in self.appointments if a.pk == pk), None)

    def find_appointments_for(self, patient_id, clinic_id):
        return [
            a
            for a in self.appointments
            if a.patient_id == patient_id and a.clinic_id == clinic_id
        ]

    def insert_appointment(self, appointment):
        appointment.pk = max((a.pk for a in self.appointments), default=0) + 1
        self.appointments.append(appointment)
        return appointment

    def update_appointment(self, appointment):
        return appointment

    def delete_appointment(self, appointment):
        self.appointments.remove(appointment)


class FailingInsertStore(InMemoryStore):
    def insert_appointment(self, appointment):
        raise IntegrityError("CHECK constraint failed: appointment_duration_positive")


def booked(pk, patient_id, clinic_id, start, minutes, doctor_id=1):
    return Appointment(
        pk=pk,
        patient_id=patient_id,
        doctor_id=doctor_id,
        clinic_id=clinic_id,
        category_id=1,
        start_utc=start,
        duration_minutes=minutes,
    )


def candidate(**overrides):
    values = {
        "patient_id": 1,
        "doctor_id": 1,
        "clinic_id": 1,
        "category_id": 1,
        "start_utc": at(9, 0),
        "duration_minutes": 30,
    }
    values.update(overrides)
    return AppointmentCandidate(**values)


class IntervalOverlapTests(SimpleTestCase):
    def test_partial_overlap(self):
        self.assertTrue(intervals_overlap(at(9, 0), at(9, 30), at(9, 15), at(9, 45)))

    def test_containment(self):
        self.assertTrue(intervals_overlap(at(9, 0), at(10, 0), at(9, 15), at(9, 30)))
        self.assertTrue(intervals_overlap(at(9, 15), at(9, 30), at(9, 0), at(10, 0)))

    def test_identical_intervals(self):
        self.assertTrue(intervals_overlap(at(9, 0), at(9, 30), at(9, 0), at(9, 30)))

    def test_back_to_back_intervals_do_not_overlap(self):
        self.assertFalse(intervals_overlap(at(9, 0), at(9, 30), at(9, 30), at(10, 0)))
        self.assertFalse(intervals_overlap(at(9, 30), at(10, 0), at(9, 0), at(9, 30)))

    def test_overlap_is_symmetric(self):
        intervals = [
            (at(9, 0), at(9, 30)),
            (at(9, 15), at(9, 45)),
            (at(9, 30), at(10, 0)),
            (at(8, 0), at(11, 0)),
            (at(12, 0), at(12, 5)),
        ]
        for first in intervals:
            for second in intervals:
                self.assertEqual(
                    intervals_overlap(*first, *second),
                    intervals_overlap(*second, *first),
                )


class FindConflictTests(SimpleTestCase):
    def setUp(self):
        self.existing = booked(1, patient_id=1, clinic_id=1, start=at(9, 0), minutes=30)
        self.store = InMemoryStore(appointments=[self.existing])

    def test_overlap_for_same_patient_and_clinic_is_reported(self):
        conflict = find_conflict(self.store, 1, 1, at(9, 15), 30)
        self.assertEqual(conflict, self.existing)

    def test_back_to_back_is_not_a_conflict(self):
        self.assertIsNone(find_conflict(self.store, 1, 1, at(9, 30), 30))
        self.assertIsNone(find_conflict(self.store, 1, 1, at(8, 30), 30))

    def test_other_patient_or_clinic_is_not_a_conflict(self):
        self.assertIsNone(find_conflict(self.store, 2, 1, at(9, 0), 30))
        self.assertIsNone(find_conflict(self.store, 1, 2, at(9, 0), 30))

    def test_doctor_is_irrelevant(self):
        self.store.appointments.append(
            booked(2, patient_id=1, clinic_id=1, start=at(11, 0), minutes=30, doctor_id=7)
        )
        self.assertIsNotNone(find_conflict(self.store, 1, 1, at(11, 10), 10))

    def test_excluded_appointment_is_skipped(self):
        self.assertIsNone(find_conflict(self.store, 1, 1, at(9, 0), 30, exclude_id=1))

    def test_every_existing_appointment_is_checked(self):
        late = booked(2, patient_id=1, clinic_id=1, start=at(15, 0), minutes=60)
        self.store.appointments.append(late)
        self.assertEqual(find_conflict(self.store, 1, 1, at(15, 30), 15), late)


class ReferentialValidatorTests(SimpleTestCase):
    def setUp(self):
        self.doctor = Doctor(pk=1, first_name="Gregory", last_name="House", clinic_id=1)
        self.store = InMemoryStore(
            patients=[1], doctors=[self.doctor], clinics=[1, 2], categories=[1]
        )

    def test_valid_candidate_returns_doctor(self):
        self.assertEqual(validate_references(self.store, candidate()), self.doctor)

    def test_all_references_are_looked_up_before_reporting(self):
        with self.assertRaises(InvalidReferenceError) as ctx:
            validate_references(self.store, candidate(patient_id=99, category_id=99))

        self.assertEqual(
            ctx.exception.missing, (EntityKind.PATIENT, EntityKind.CATEGORY)
        )
        self.assertEqual(
            set(self.store.lookups),
            {
                EntityKind.PATIENT,
                EntityKind.DOCTOR,
                EntityKind.CLINIC,
                EntityKind.CATEGORY,
            },
        )

    def test_missing_doctor_is_an_invalid_reference(self):
        with self.assertRaises(InvalidReferenceError) as ctx:
            validate_references(self.store, candidate(doctor_id=42))
        self.assertEqual(ctx.exception.missing, (EntityKind.DOCTOR,))

    def test_doctor_from_another_clinic_is_a_mismatch(self):
        with self.assertRaises(DoctorClinicMismatchError):
            validate_references(self.store, candidate(clinic_id=2))

    def test_non_positive_duration_is_rejected(self):
        for minutes in (0, -15):
            with self.assertRaises(InvalidDurationError):
                validate_references(self.store, candidate(duration_minutes=minutes))

    def test_end_time_past_datetime_range_is_an_invalid_duration(self):
        late = timezone.make_aware(datetime(9999, 12, 31, 23, 50))
        for overrides in (
            {"start_utc": late},
            {"duration_minutes": 5_000_000_000},
        ):
            with self.assertRaises(InvalidDurationError):
                validate_references(self.store, candidate(**overrides))

    def test_references_are_checked_before_duration(self):
        with self.assertRaises(InvalidReferenceError):
            validate_references(self.store, candidate(patient_id=99, duration_minutes=0))

    def test_affiliation_is_checked_before_duration(self):
        with self.assertRaises(DoctorClinicMismatchError):
            validate_references(self.store, candidate(clinic_id=2, duration_minutes=0))

    def test_validation_errors_share_one_family(self):
        for error in (
            InvalidReferenceError(),
            DoctorClinicMismatchError(),
            InvalidDurationError(),
        ):
            self.assertIsInstance(error, ValidationError)


class CoordinatorWithFakeStoreTests(SimpleTestCase):
    def setUp(self):
        self.doctor = Doctor(pk=1, first_name="Gregory", last_name="House", clinic_id=1)
        self.store = InMemoryStore(
            patients=[1, 2],
            doctors=[self.doctor],
            clinics=[1],
            categories=[1],
            appointments=[booked(1, patient_id=1, clinic_id=1, start=at(9), minutes=30)],
        )

    def test_identity_mismatch_touches_no_store(self):
        # Every EntityStore capability raises NotImplementedError
        with self.assertRaises(IdentityMismatchError) as ctx:
            services.update_appointment(5, 6, candidate(), store=EntityStore())
        self.assertEqual(ctx.exception.route_id, 5)
        self.assertEqual(ctx.exception.payload_id, 6)

    def test_create_locks_patient_before_checking(self):
        services.create_appointment(candidate(start_utc=at(10)), store=self.store)
        self.assertEqual(self.store.locked, [1])

    def test_update_locks_old_and_new_patient(self):
        services.update_appointment(1, 1, candidate(patient_id=2), store=self.store)
        self.assertEqual(sorted(self.store.locked), [1, 2])

    def test_conflict_leaves_store_untouched(self):
        with self.assertRaises(AppointmentConflictError) as ctx:
            services.create_appointment(candidate(start_utc=at(9, 15)), store=self.store)
        self.assertEqual(ctx.exception.existing.pk, 1)
        self.assertEqual(len(self.store.appointments), 1)

    def test_integrity_error_at_commit_is_a_conflict(self):
        store = FailingInsertStore(
            patients=[1], doctors=[self.doctor], clinics=[1], categories=[1]
        )
        with self.assertRaises(ConflictError):
            services.create_appointment(candidate(), store=store)


class AppointmentServiceTests(TestCase):
    """Create, update and delete against the database"""

    def setUp(self):
        self.clinic = Clinic.objects.create(name="Downtown Clinic", address="1 Main St")
        self.other_clinic = Clinic.objects.create(name="Uptown Clinic")
        self.speciality = Speciality.objects.create(name="Cardiology")
        self.category = Category.objects.create(name="Consultation")

        self.doctor = Doctor.objects.create(
            first_name="John",
            last_name="Smith",
            clinic=self.clinic,
            speciality=self.speciality,
        )
        self.second_doctor = Doctor.objects.create(
            first_name="Ada",
            last_name="Jones",
            clinic=self.clinic,
            speciality=self.speciality,
        )
        self.other_clinic_doctor = Doctor.objects.create(
            first_name="Bob",
            last_name="Brown",
            clinic=self.other_clinic,
            speciality=self.speciality,
        )

        self.patient = Patient.objects.create(
            first_name="Jane",
            last_name="Doe",
            email="jane@example.com",
            birth_date=date(1990, 1, 1),
        )
        self.other_patient = Patient.objects.create(
            first_name="Sam",
            last_name="Lee",
            email="sam@example.com",
            birth_date=date(1985, 5, 5),
        )

    def candidate(self, **overrides):
        values = {
            "patient_id": self.patient.id,
            "doctor_id": self.doctor.id,
            "clinic_id": self.clinic.id,
            "category_id": self.category.id,
            "start_utc": at(9, 0),
            "duration_minutes": 30,
        }
        values.update(overrides)
        return AppointmentCandidate(**values)

    def test_create_appointment(self):
        appointment = services.create_appointment(self.candidate())

        self.assertIsNotNone(appointment.pk)
        self.assertEqual(appointment.end_utc, at(9, 30))
        self.assertTrue(Appointment.objects.filter(pk=appointment.pk).exists())

    def test_booking_scenario(self):
        """09:00-09:30 booked; check the neighbouring requests"""
        services.create_appointment(self.candidate())

        # Overlaps the second half of the booking
        with self.assertRaises(AppointmentConflictError):
            services.create_appointment(self.candidate(start_utc=at(9, 15)))

        # Starts exactly when the booking ends
        services.create_appointment(self.candidate(start_utc=at(9, 30)))

        # Another patient at the same clinic and time
        services.create_appointment(self.candidate(patient_id=self.other_patient.id))

        # Same patient at another clinic
        services.create_appointment(
            self.candidate(
                clinic_id=self.other_clinic.id,
                doctor_id=self.other_clinic_doctor.id,
            )
        )

        self.assertEqual(Appointment.objects.count(), 4)

    def test_same_patient_cannot_be_double_booked_with_another_doctor(self):
        services.create_appointment(self.candidate())

        with self.assertRaises(AppointmentConflictError):
            services.create_appointment(
                self.candidate(doctor_id=self.second_doctor.id, start_utc=at(9, 10))
            )

    def test_enclosing_interval_conflicts(self):
        services.create_appointment(self.candidate(start_utc=at(9, 10), duration_minutes=5))

        with self.assertRaises(AppointmentConflictError):
            services.create_appointment(
                self.candidate(start_utc=at(8, 0), duration_minutes=120)
            )

    def test_missing_patient_is_invalid_reference_not_not_found(self):
        with self.assertRaises(InvalidReferenceError) as ctx:
            services.create_appointment(self.candidate(patient_id=9999))

        self.assertNotIsInstance(ctx.exception, NotFoundError)
        self.assertEqual(ctx.exception.code, "invalid_reference")
        self.assertEqual(Appointment.objects.count(), 0)

    def test_doctor_at_another_clinic_is_rejected(self):
        with self.assertRaises(DoctorClinicMismatchError):
            services.create_appointment(
                self.candidate(doctor_id=self.other_clinic_doctor.id)
            )

    def test_non_positive_duration_is_rejected(self):
        for minutes in (0, -30):
            with self.assertRaises(InvalidDurationError):
                services.create_appointment(self.candidate(duration_minutes=minutes))
        self.assertEqual(Appointment.objects.count(), 0)

    def test_validation_runs_before_overlap(self):
        services.create_appointment(self.candidate())

        with self.assertRaises(DoctorClinicMismatchError):
            services.create_appointment(
                self.candidate(doctor_id=self.other_clinic_doctor.id)
            )

    def test_update_with_unchanged_values_does_not_conflict_with_itself(self):
        appointment = services.create_appointment(self.candidate())

        updated = services.update_appointment(
            appointment.pk, appointment.pk, self.candidate()
        )
        self.assertEqual(updated.start_utc, at(9, 0))

    def test_update_overwrites_fields(self):
        appointment = services.create_appointment(self.candidate())
        new_category = Category.objects.create(name="Follow-up")

        services.update_appointment(
            appointment.pk,
            appointment.pk,
            self.candidate(
                doctor_id=self.second_doctor.id,
                category_id=new_category.id,
                start_utc=at(14, 0),
                duration_minutes=45,
            ),
        )

        appointment.refresh_from_db()
        self.assertEqual(appointment.doctor_id, self.second_doctor.id)
        self.assertEqual(appointment.category_id, new_category.id)
        self.assertEqual(appointment.start_utc, at(14, 0))
        self.assertEqual(appointment.duration_minutes, 45)

    def test_update_into_another_booking_conflicts(self):
        services.create_appointment(self.candidate())
        second = services.create_appointment(self.candidate(start_utc=at(11, 0)))

        with self.assertRaises(AppointmentConflictError):
            services.update_appointment(
                second.pk, second.pk, self.candidate(start_utc=at(9, 20))
            )

        second.refresh_from_db()
        self.assertEqual(second.start_utc, at(11, 0))

    def test_update_shifting_within_own_slot_is_allowed(self):
        appointment = services.create_appointment(self.candidate())

        services.update_appointment(
            appointment.pk, appointment.pk, self.candidate(start_utc=at(9, 15))
        )
        appointment.refresh_from_db()
        self.assertEqual(appointment.start_utc, at(9, 15))

    def test_update_missing_appointment_is_not_found(self):
        with self.assertRaises(NotFoundError):
            services.update_appointment(404, 404, self.candidate())

    def test_not_found_takes_precedence_over_validation(self):
        with self.assertRaises(NotFoundError):
            services.update_appointment(404, 404, self.candidate(patient_id=9999))

    def test_identity_mismatch_takes_precedence_over_not_found(self):
        with self.assertRaises(IdentityMismatchError):
            services.update_appointment(5, 6, self.candidate())

    def test_update_with_invalid_duration_keeps_original(self):
        appointment = services.create_appointment(self.candidate())

        with self.assertRaises(InvalidDurationError):
            services.update_appointment(
                appointment.pk, appointment.pk, self.candidate(duration_minutes=0)
            )

        appointment.refresh_from_db()
        self.assertEqual(appointment.duration_minutes, 30)

    def test_delete_appointment(self):
        appointment = services.create_appointment(self.candidate())

        services.delete_appointment(appointment.pk)
        self.assertFalse(Appointment.objects.exists())

        with self.assertRaises(NotFoundError):
            services.delete_appointment(appointment.pk)

    def test_duration_check_constraint_backs_the_validator(self):
        with self.assertRaises(IntegrityError), transaction.atomic():
            Appointment.objects.create(
                patient=self.patient,
                doctor=self.doctor,
                clinic=self.clinic,
                category=self.category,
                start_utc=at(9, 0),
                duration_minutes=0,
            )


class ReferenceDataServiceTests(TestCase):
    def setUp(self):
        self.clinic = Clinic.objects.create(name="Downtown Clinic")
        self.speciality = Speciality.objects.create(name="Cardiology")
        self.category = Category.objects.create(name="Consultation")
        self.doctor = Doctor.objects.create(
            first_name="John",
            last_name="Smith",
            clinic=self.clinic,
            speciality=self.speciality,
        )
        self.patient = Patient.objects.create(
            first_name="Jane",
            last_name="Doe",
            email="jane@example.com",
            birth_date=date(1990, 1, 1),
        )

    def book(self):
        return Appointment.objects.create(
            patient=self.patient,
            doctor=self.doctor,
            clinic=self.clinic,
            category=self.category,
            start_utc=at(9, 0),
            duration_minutes=30,
        )

    def test_delete_with_dependents_is_rejected(self):
        self.book()

        for kind, pk in [
            (EntityKind.CLINIC, self.clinic.pk),
            (EntityKind.SPECIALITY, self.speciality.pk),
            (EntityKind.CATEGORY, self.category.pk),
            (EntityKind.DOCTOR, self.doctor.pk),
            (EntityKind.PATIENT, self.patient.pk),
        ]:
            with self.assertRaises(DependencyError):
                services.delete_entity(kind, pk)

        self.assertTrue(Clinic.objects.filter(pk=self.clinic.pk).exists())
        self.assertTrue(Patient.objects.filter(pk=self.patient.pk).exists())

    def test_clinic_with_doctors_only_is_protected(self):
        with self.assertRaises(DependencyError) as ctx:
            services.delete_entity(EntityKind.CLINIC, self.clinic.pk)
        self.assertEqual(
            ctx.exception.message,
            "Cannot delete clinic with existing doctors or appointments.",
        )

    def test_delete_without_dependents_succeeds(self):
        appointment = self.book()
        services.delete_entity(EntityKind.APPOINTMENT, appointment.pk)

        # Delete in dependency order, each one free once the previous is gone
        services.delete_entity(EntityKind.PATIENT, self.patient.pk)
        services.delete_entity(EntityKind.CATEGORY, self.category.pk)
        services.delete_entity(EntityKind.DOCTOR, self.doctor.pk)
        services.delete_entity(EntityKind.SPECIALITY, self.speciality.pk)
        services.delete_entity(EntityKind.CLINIC, self.clinic.pk)

        self.assertFalse(Clinic.objects.exists())
        self.assertFalse(Doctor.objects.exists())

    def test_delete_missing_row_is_not_found(self):
        with self.assertRaises(NotFoundError):
            services.delete_entity(EntityKind.CATEGORY, 9999)

    def test_named_entities_are_unique(self):
        with self.assertRaises(DuplicateError):
            services.create_named(EntityKind.CLINIC, "Downtown Clinic")

        uptown = services.create_named(EntityKind.CLINIC, "Uptown Clinic", address="9 Hill Rd")
        with self.assertRaises(DuplicateError):
            services.update_named(
                EntityKind.CLINIC, uptown.pk, uptown.pk, "Downtown Clinic"
            )

        renamed = services.update_named(
            EntityKind.CLINIC, uptown.pk, uptown.pk, "Uptown Clinic", address="10 Hill Rd"
        )
        self.assertEqual(renamed.address, "10 Hill Rd")

    def test_patient_email_is_normalised(self):
        patient = services.create_patient(
            first_name="Sam",
            last_name="Lee",
            email="  Sam.Lee@Example.COM ",
            birth_date=date(1985, 5, 5),
        )
        self.assertEqual(patient.email, "sam.lee@example.com")
        self.assertEqual(services.find_patient_by_email("SAM.LEE@example.com"), patient)

    def test_patient_email_is_unique_ignoring_case(self):
        with self.assertRaises(DuplicateError):
            services.create_patient(
                first_name="Janet",
                last_name="Doe",
                email="JANE@example.com",
                birth_date=date(1991, 1, 1),
            )

    def test_patient_email_is_required(self):
        with self.assertRaises(ValidationError):
            services.create_patient(
                first_name="No", last_name="Email", email="   ", birth_date=date(2000, 1, 1)
            )

    def test_find_patient_by_blank_or_unknown_email(self):
        for email in ("", "nobody@example.com"):
            with self.assertRaises(NotFoundError):
                services.find_patient_by_email(email)

    def test_doctor_references_and_uniqueness(self):
        with self.assertRaises(InvalidReferenceError):
            services.create_doctor(
                first_name="Ada",
                last_name="Jones",
                clinic_id=9999,
                speciality_id=self.speciality.pk,
            )

        with self.assertRaises(DuplicateError):
            services.create_doctor(
                first_name="John",
                last_name="Smith",
                clinic_id=self.clinic.pk,
                speciality_id=self.speciality.pk,
            )

    def test_doctor_with_appointments_cannot_change_clinic(self):
        self.book()
        other_clinic = Clinic.objects.create(name="Uptown Clinic")

        with self.assertRaises(DependencyError):
            services.update_doctor(
                self.doctor.pk,
                self.doctor.pk,
                first_name="John",
                last_name="Smith",
                clinic_id=other_clinic.pk,
                speciality_id=self.speciality.pk,
            )

        self.doctor.refresh_from_db()
        self.assertEqual(self.doctor.clinic_id, self.clinic.pk)
