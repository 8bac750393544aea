from datetime import date

from rest_framework import status
from rest_framework.test import APITestCase

from .models import Appointment, Category, Clinic, Doctor, Patient, Speciality


class AppointmentAPITests(APITestCase):
    def setUp(self):
        self.clinic = Clinic.objects.create(name="Test Clinic", address="123 Test St")
        self.other_clinic = Clinic.objects.create(name="Other Clinic")
        self.speciality = Speciality.objects.create(name="Cardiology")
        self.category = Category.objects.create(name="Consultation")

        self.doctor = Doctor.objects.create(
            first_name="John",
            last_name="Doe",
            clinic=self.clinic,
            speciality=self.speciality,
        )
        self.other_clinic_doctor = Doctor.objects.create(
            first_name="Bob",
            last_name="Jones",
            clinic=self.other_clinic,
            speciality=self.speciality,
        )
        self.patient = Patient.objects.create(
            first_name="Jane",
            last_name="Smith",
            email="jane@example.com",
            birth_date=date(1990, 1, 1),
        )

    def payload(self, **overrides):
        data = {
            "patient_id": self.patient.id,
            "doctor_id": self.doctor.id,
            "clinic_id": self.clinic.id,
            "category_id": self.category.id,
            "start_utc": "2025-09-28T09:00:00Z",
            "duration_minutes": 30,
        }
        data.update(overrides)
        return data

    def test_create_appointment_returns_names(self):
        """Created appointment carries the names of everything it references"""
        response = self.client.post("/api/appointments/", self.payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["patient_first_name"], "Jane")
        self.assertEqual(response.data["patient_last_name"], "Smith")
        self.assertEqual(response.data["doctor_first_name"], "John")
        self.assertEqual(response.data["doctor_last_name"], "Doe")
        self.assertEqual(response.data["speciality_id"], self.speciality.id)
        self.assertEqual(response.data["speciality_name"], "Cardiology")
        self.assertEqual(response.data["clinic_name"], "Test Clinic")
        self.assertEqual(response.data["category_name"], "Consultation")
        self.assertEqual(response.data["start_utc"], "2025-09-28T09:00:00Z")
        self.assertEqual(response.data["duration_minutes"], 30)

        appointment = Appointment.objects.get(id=response.data["id"])
        self.assertEqual(appointment.patient_id, self.patient.id)

    def test_no_double_booking(self):
        """Overlap is a 409, back-to-back is fine"""
        response1 = self.client.post("/api/appointments/", self.payload(), format="json")
        self.assertEqual(response1.status_code, status.HTTP_201_CREATED)

        response2 = self.client.post(
            "/api/appointments/",
            self.payload(start_utc="2025-09-28T09:15:00Z"),
            format="json",
        )
        self.assertEqual(response2.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response2.data["code"], "appointment_conflict")
        self.assertEqual(Appointment.objects.count(), 1)

        response3 = self.client.post(
            "/api/appointments/",
            self.payload(start_utc="2025-09-28T09:30:00Z"),
            format="json",
        )
        self.assertEqual(response3.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Appointment.objects.count(), 2)

    def test_invalid_reference_is_bad_request(self):
        response = self.client.post(
            "/api/appointments/", self.payload(patient_id=9999), format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_reference")
        self.assertEqual(
            response.data["detail"],
            "Invalid PatientId, DoctorId, ClinicId, or CategoryId.",
        )

    def test_doctor_clinic_mismatch_is_bad_request(self):
        response = self.client.post(
            "/api/appointments/",
            self.payload(doctor_id=self.other_clinic_doctor.id),
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "doctor_clinic_mismatch")

    def test_non_positive_duration_is_bad_request(self):
        response = self.client.post(
            "/api/appointments/", self.payload(duration_minutes=0), format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_duration")

    def test_duration_too_large_for_column_is_bad_request(self):
        response = self.client.post(
            "/api/appointments/",
            self.payload(duration_minutes=5_000_000_000),
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("duration_minutes", response.data)
        self.assertFalse(Appointment.objects.exists())

    def test_appointment_ending_after_year_9999_is_bad_request(self):
        response = self.client.post(
            "/api/appointments/",
            self.payload(start_utc="9999-12-31T23:50:00Z", duration_minutes=30),
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_duration")
        self.assertFalse(Appointment.objects.exists())

    def test_malformed_payload_is_bad_request(self):
        response = self.client.post(
            "/api/appointments/", self.payload(start_utc="tomorrow"), format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("start_utc", response.data)

    def test_list_and_retrieve(self):
        created = self.client.post("/api/appointments/", self.payload(), format="json")

        listing = self.client.get("/api/appointments/")
        self.assertEqual(listing.status_code, status.HTTP_200_OK)
        self.assertEqual(len(listing.data), 1)

        detail = self.client.get(f"/api/appointments/{created.data['id']}/")
        self.assertEqual(detail.status_code, status.HTTP_200_OK)
        self.assertEqual(detail.data["clinic_name"], "Test Clinic")

        missing = self.client.get("/api/appointments/9999/")
        self.assertEqual(missing.status_code, status.HTTP_404_NOT_FOUND)

    def test_update_appointment(self):
        created = self.client.post("/api/appointments/", self.payload(), format="json")
        pk = created.data["id"]

        response = self.client.put(
            f"/api/appointments/{pk}/",
            self.payload(id=pk, start_utc="2025-09-28T10:00:00Z", duration_minutes=45),
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        appointment = Appointment.objects.get(pk=pk)
        self.assertEqual(appointment.duration_minutes, 45)

    def test_update_with_unchanged_values(self):
        created = self.client.post("/api/appointments/", self.payload(), format="json")
        pk = created.data["id"]

        response = self.client.put(
            f"/api/appointments/{pk}/", self.payload(id=pk), format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_update_route_and_payload_id_must_match(self):
        created = self.client.post("/api/appointments/", self.payload(), format="json")
        pk = created.data["id"]

        response = self.client.put(
            f"/api/appointments/{pk}/", self.payload(id=pk + 1), format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "id_mismatch")

    def test_update_missing_appointment(self):
        response = self.client.put(
            "/api/appointments/9999/", self.payload(id=9999), format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_update_into_conflict(self):
        self.client.post("/api/appointments/", self.payload(), format="json")
        second = self.client.post(
            "/api/appointments/",
            self.payload(start_utc="2025-09-28T11:00:00Z"),
            format="json",
        )
        pk = second.data["id"]

        response = self.client.put(
            f"/api/appointments/{pk}/",
            self.payload(id=pk, start_utc="2025-09-28T09:10:00Z"),
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_delete_appointment(self):
        created = self.client.post("/api/appointments/", self.payload(), format="json")
        url = f"/api/appointments/{created.data['id']}/"

        self.assertEqual(self.client.delete(url).status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_404_NOT_FOUND)


class ReferenceDataAPITests(APITestCase):
    def setUp(self):
        self.clinic = Clinic.objects.create(name="Test Clinic")
        self.speciality = Speciality.objects.create(name="Cardiology")
        self.category = Category.objects.create(name="Consultation")

    def test_duplicate_names_conflict(self):
        for url, name in [
            ("/api/clinics/", "Test Clinic"),
            ("/api/specialities/", "Cardiology"),
            ("/api/categories/", "Consultation"),
        ]:
            response = self.client.post(url, {"name": name}, format="json")
            self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
            self.assertEqual(response.data["code"], "duplicate")

    def test_create_and_rename_clinic(self):
        response = self.client.post(
            "/api/clinics/", {"name": "North Clinic", "address": "5 Elm St"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        pk = response.data["id"]

        response = self.client.put(
            f"/api/clinics/{pk}/", {"id": pk, "name": "North Side Clinic"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(Clinic.objects.get(pk=pk).name, "North Side Clinic")

    def test_update_with_mismatched_id(self):
        response = self.client.put(
            f"/api/categories/{self.category.pk}/",
            {"id": self.category.pk + 1, "name": "Check-up"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "id_mismatch")

    def test_update_with_non_integer_id_is_rejected_by_serializer(self):
        for url in [
            f"/api/categories/{self.category.pk}/",
            f"/api/clinics/{self.clinic.pk}/",
        ]:
            response = self.client.put(
                url, {"id": "abc", "name": "Check-up"}, format="json"
            )
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
            self.assertIn("id", response.data)
            self.assertNotIn("code", response.data)

        self.assertEqual(Category.objects.get(pk=self.category.pk).name, "Consultation")

    def test_clinic_with_doctors_cannot_be_deleted(self):
        Doctor.objects.create(
            first_name="John",
            last_name="Doe",
            clinic=self.clinic,
            speciality=self.speciality,
        )

        response = self.client.delete(f"/api/clinics/{self.clinic.pk}/")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "has_dependents")

        response = self.client.delete(f"/api/specialities/{self.speciality.pk}/")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_unused_category_can_be_deleted(self):
        response = self.client.delete(f"/api/categories/{self.category.pk}/")
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

        response = self.client.delete(f"/api/categories/{self.category.pk}/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_create_doctor(self):
        data = {
            "first_name": "Ada",
            "last_name": "Lovelace",
            "clinic_id": self.clinic.pk,
            "speciality_id": self.speciality.pk,
        }
        response = self.client.post("/api/doctors/", data, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["clinic_name"], "Test Clinic")
        self.assertEqual(response.data["speciality_name"], "Cardiology")

        duplicate = self.client.post("/api/doctors/", data, format="json")
        self.assertEqual(duplicate.status_code, status.HTTP_409_CONFLICT)

        invalid = self.client.post(
            "/api/doctors/", dict(data, clinic_id=9999), format="json"
        )
        self.assertEqual(invalid.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_doctor_and_patient(self):
        doctor = Doctor.objects.create(
            first_name="Ada",
            last_name="Lovelace",
            clinic=self.clinic,
            speciality=self.speciality,
        )
        response = self.client.put(
            f"/api/doctors/{doctor.pk}/",
            {
                "id": doctor.pk,
                "first_name": "Ada",
                "last_name": "King",
                "clinic_id": self.clinic.pk,
                "speciality_id": self.speciality.pk,
            },
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(Doctor.objects.get(pk=doctor.pk).last_name, "King")

        patient = Patient.objects.create(
            first_name="Jane",
            last_name="Smith",
            email="jane@example.com",
            birth_date=date(1990, 1, 1),
        )
        response = self.client.put(
            f"/api/patients/{patient.pk}/",
            {
                "id": patient.pk,
                "first_name": "Jane",
                "last_name": "Smith",
                "email": "Jane.Doe@Example.com",
                "birth_date": "1990-01-01",
            },
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(Patient.objects.get(pk=patient.pk).email, "jane.doe@example.com")

    def test_patient_email_lookup(self):
        data = {
            "first_name": "Jane",
            "last_name": "Smith",
            "email": "Jane.Smith@Example.com",
            "birth_date": "1990-01-01",
        }
        response = self.client.post("/api/patients/", data, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["email"], "jane.smith@example.com")

        duplicate = self.client.post(
            "/api/patients/", dict(data, email="JANE.SMITH@example.com"), format="json"
        )
        self.assertEqual(duplicate.status_code, status.HTTP_409_CONFLICT)

        found = self.client.get("/api/patients/by-email/", {"email": " JANE.smith@example.com "})
        self.assertEqual(found.status_code, status.HTTP_200_OK)
        self.assertEqual(found.data["id"], response.data["id"])

        missing = self.client.get("/api/patients/by-email/", {"email": ""})
        self.assertEqual(missing.status_code, status.HTTP_404_NOT_FOUND)

    def test_patient_with_appointments_cannot_be_deleted(self):
        patient = Patient.objects.create(
            first_name="Jane",
            last_name="Smith",
            email="jane@example.com",
            birth_date=date(1990, 1, 1),
        )
        doctor = Doctor.objects.create(
            first_name="John",
            last_name="Doe",
            clinic=self.clinic,
            speciality=self.speciality,
        )
        self.client.post(
            "/api/appointments/",
            {
                "patient_id": patient.pk,
                "doctor_id": doctor.pk,
                "clinic_id": self.clinic.pk,
                "category_id": self.category.pk,
                "start_utc": "2025-09-28T09:00:00Z",
                "duration_minutes": 30,
            },
            format="json",
        )

        response = self.client.delete(f"/api/patients/{patient.pk}/")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertTrue(Patient.objects.filter(pk=patient.pk).exists())
