from django import forms
from django.contrib import admin

from . import services
from .exceptions import BookingError
from .models import (
    Appointment,
    Category,
    Clinic,
    Doctor,
    Patient,
    Speciality,
)
from .validators import AppointmentCandidate


class DoctorInline(admin.TabularInline):
    model = Doctor
    extra = 0
    fields = ["first_name", "last_name", "speciality"]


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ["name", "address"]
    search_fields = ["name"]
    inlines = [DoctorInline]


@admin.register(Speciality)
class SpecialityAdmin(admin.ModelAdmin):
    list_display = ["name"]
    search_fields = ["name"]


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ["name"]
    search_fields = ["name"]


@admin.register(Doctor)
class DoctorAdmin(admin.ModelAdmin):
    list_display = ["first_name", "last_name", "clinic", "speciality"]
    list_filter = ["clinic", "speciality"]
    search_fields = ["first_name", "last_name"]


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ["first_name", "last_name", "email", "birth_date"]
    search_fields = ["first_name", "last_name", "email"]


class AppointmentAdminForm(forms.ModelForm):
    """Applies the same booking rules as the API before the admin saves."""

    class Meta:
        model = Appointment
        fields = "__all__"

    def clean(self):
        cleaned_data = super().clean()
        required = [
            "patient",
            "doctor",
            "clinic",
            "category",
            "start_utc",
            "duration_minutes",
        ]
        # Field errors are already reported
        if any(cleaned_data.get(name) is None for name in required):
            return cleaned_data

        candidate = AppointmentCandidate(
            patient_id=cleaned_data["patient"].pk,
            doctor_id=cleaned_data["doctor"].pk,
            clinic_id=cleaned_data["clinic"].pk,
            category_id=cleaned_data["category"].pk,
            start_utc=cleaned_data["start_utc"],
            duration_minutes=cleaned_data["duration_minutes"],
        )
        try:
            services.check_appointment(candidate, exclude_id=self.instance.pk)
        except BookingError as e:
            raise forms.ValidationError(e.message, code=e.code)
        return cleaned_data


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    form = AppointmentAdminForm
    list_display = [
        "patient",
        "doctor",
        "clinic",
        "category",
        "start_utc",
        "duration_minutes",
    ]
    list_filter = ["clinic", "category", "start_utc", "doctor"]
    search_fields = [
        "patient__first_name",
        "patient__last_name",
        "doctor__first_name",
        "doctor__last_name",
    ]
    date_hierarchy = "start_utc"
