from datetime import date

from django.contrib.auth import get_user_model
from django.test import TestCase

from .models import Appointment, Category, Clinic, Doctor, Patient, Speciality

ADD_URL = "/admin/clinic_booking/appointment/add/"


class AppointmentAdminTests(TestCase):
    def setUp(self):
        admin_user = get_user_model().objects.create_superuser(
            username="admin", email="admin@example.com", password="secret"
        )
        self.client.force_login(admin_user)

        self.clinic = Clinic.objects.create(name="Test Clinic")
        self.other_clinic = Clinic.objects.create(name="Other Clinic")
        speciality = Speciality.objects.create(name="Cardiology")
        self.category = Category.objects.create(name="Consultation")
        self.doctor = Doctor.objects.create(
            first_name="John", last_name="Doe", clinic=self.clinic, speciality=speciality
        )
        self.other_clinic_doctor = Doctor.objects.create(
            first_name="Bob",
            last_name="Jones",
            clinic=self.other_clinic,
            speciality=speciality,
        )
        self.patient = Patient.objects.create(
            first_name="Jane",
            last_name="Smith",
            email="jane@example.com",
            birth_date=date(1990, 1, 1),
        )

    def form_data(self, **overrides):
        data = {
            "patient": self.patient.pk,
            "doctor": self.doctor.pk,
            "clinic": self.clinic.pk,
            "category": self.category.pk,
            "start_utc_0": "2025-09-28",
            "start_utc_1": "09:00:00",
            "duration_minutes": 30,
            "_save": "Save",
        }
        data.update(overrides)
        return data

    def test_admin_refuses_overlapping_booking(self):
        response = self.client.post(ADD_URL, self.form_data())
        self.assertEqual(response.status_code, 302)

        response = self.client.post(ADD_URL, self.form_data(start_utc_1="09:15:00"))
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "already has an appointment at this clinic")

        self.assertEqual(Appointment.objects.count(), 1)

    def test_admin_refuses_doctor_from_another_clinic(self):
        response = self.client.post(
            ADD_URL, self.form_data(doctor=self.other_clinic_doctor.pk)
        )

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "Doctor is not assigned to the selected clinic.")
        self.assertFalse(Appointment.objects.exists())

    def test_admin_edit_does_not_conflict_with_itself(self):
        self.client.post(ADD_URL, self.form_data())
        appointment = Appointment.objects.get()

        response = self.client.post(
            f"/admin/clinic_booking/appointment/{appointment.pk}/change/",
            self.form_data(duration_minutes=45),
        )

        self.assertEqual(response.status_code, 302)
        appointment.refresh_from_db()
        self.assertEqual(appointment.duration_minutes, 45)
