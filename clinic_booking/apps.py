from django.apps import AppConfig


class ClinicBookingConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "clinic_booking"
    verbose_name = "Clinic booking"
