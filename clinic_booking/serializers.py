from rest_framework import serializers

from .models import Appointment, Category, Clinic, Doctor, Patient, Speciality
from .validators import AppointmentCandidate

# Largest value the duration_minutes column holds on every supported backend
MAX_DURATION_MINUTES = 2_147_483_647


# Write serializers declare ``name``/``email`` explicitly so DRF does not add
# its own unique validators; duplicates are reported by the services as 409.


class ClinicSerializer(serializers.ModelSerializer):
    name = serializers.CharField(max_length=120)

    class Meta:
        model = Clinic
        fields = ["id", "name", "address"]


class SpecialitySerializer(serializers.ModelSerializer):
    name = serializers.CharField(max_length=120)

    class Meta:
        model = Speciality
        fields = ["id", "name"]


class CategorySerializer(serializers.ModelSerializer):
    name = serializers.CharField(max_length=120)

    class Meta:
        model = Category
        fields = ["id", "name"]


class DoctorSerializer(serializers.ModelSerializer):
    clinic_id = serializers.IntegerField()
    clinic_name = serializers.CharField(source="clinic.name", read_only=True)
    speciality_id = serializers.IntegerField()
    speciality_name = serializers.CharField(source="speciality.name", read_only=True)

    class Meta:
        model = Doctor
        fields = [
            "id",
            "first_name",
            "last_name",
            "clinic_id",
            "clinic_name",
            "speciality_id",
            "speciality_name",
        ]
        validators = []


class PatientSerializer(serializers.ModelSerializer):
    email = serializers.CharField(max_length=200, allow_blank=True)

    class Meta:
        model = Patient
        fields = ["id", "first_name", "last_name", "email", "birth_date"]


class AppointmentReadSerializer(serializers.ModelSerializer):
    """Appointment with the names of every row it references."""

    patient_id = serializers.IntegerField(read_only=True)
    patient_first_name = serializers.CharField(
        source="patient.first_name", read_only=True
    )
    patient_last_name = serializers.CharField(
        source="patient.last_name", read_only=True
    )
    doctor_id = serializers.IntegerField(read_only=True)
    doctor_first_name = serializers.CharField(
        source="doctor.first_name", read_only=True
    )
    doctor_last_name = serializers.CharField(source="doctor.last_name", read_only=True)
    speciality_id = serializers.IntegerField(
        source="doctor.speciality_id", read_only=True
    )
    speciality_name = serializers.CharField(
        source="doctor.speciality.name", read_only=True
    )
    clinic_id = serializers.IntegerField(read_only=True)
    clinic_name = serializers.CharField(source="clinic.name", read_only=True)
    category_id = serializers.IntegerField(read_only=True)
    category_name = serializers.CharField(source="category.name", read_only=True)

    class Meta:
        model = Appointment
        fields = [
            "id",
            "patient_id",
            "patient_first_name",
            "patient_last_name",
            "doctor_id",
            "doctor_first_name",
            "doctor_last_name",
            "speciality_id",
            "speciality_name",
            "clinic_id",
            "clinic_name",
            "category_id",
            "category_name",
            "start_utc",
            "duration_minutes",
        ]
        read_only_fields = fields


class AppointmentWriteSerializer(serializers.Serializer):
    """
    Shape check of an appointment payload.

    Only types are checked here. Existence, doctor/clinic affiliation, the
    duration rule and overlaps are business rules enforced by the services.
    """

    patient_id = serializers.IntegerField()
    doctor_id = serializers.IntegerField()
    clinic_id = serializers.IntegerField()
    category_id = serializers.IntegerField()
    start_utc = serializers.DateTimeField()
    duration_minutes = serializers.IntegerField(max_value=MAX_DURATION_MINUTES)

    def to_candidate(self):
        data = self.validated_data
        return AppointmentCandidate(
            patient_id=data["patient_id"],
            doctor_id=data["doctor_id"],
            clinic_id=data["clinic_id"],
            category_id=data["category_id"],
            start_utc=data["start_utc"],
            duration_minutes=data["duration_minutes"],
        )


class AppointmentUpdateSerializer(AppointmentWriteSerializer):
    id = serializers.IntegerField()


# Update payloads repeat the route id in the body.


class ClinicUpdateSerializer(ClinicSerializer):
    id = serializers.IntegerField()


class SpecialityUpdateSerializer(SpecialitySerializer):
    id = serializers.IntegerField()


class CategoryUpdateSerializer(CategorySerializer):
    id = serializers.IntegerField()


class DoctorUpdateSerializer(DoctorSerializer):
    id = serializers.IntegerField()


class PatientUpdateSerializer(PatientSerializer):
    id = serializers.IntegerField()
