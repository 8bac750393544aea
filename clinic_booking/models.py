from datetime import timedelta

from django.db import models


class Clinic(models.Model):
    name = models.CharField(max_length=120, unique=True)
    address = models.TextField(blank=True, null=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Speciality(models.Model):
    name = models.CharField(max_length=120, unique=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "Specialities"

    def __str__(self):
        return self.name


class Category(models.Model):
    name = models.CharField(max_length=120, unique=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "Categories"

    def __str__(self):
        return self.name


class Doctor(models.Model):
    first_name = models.CharField(max_length=80)
    last_name = models.CharField(max_length=80)
    clinic = models.ForeignKey(
        Clinic, on_delete=models.PROTECT, related_name="doctors"
    )
    speciality = models.ForeignKey(
        Speciality, on_delete=models.PROTECT, related_name="doctors"
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["first_name", "last_name", "clinic", "speciality"],
                name="unique_doctor_per_clinic_speciality",
            )
        ]

    def __str__(self):
        return f"Dr. {self.full_name}"

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class Patient(models.Model):
    first_name = models.CharField(max_length=80)
    last_name = models.CharField(max_length=80)
    email = models.EmailField(max_length=200, unique=True)
    birth_date = models.DateField()

    def __str__(self):
        return f"{self.first_name} {self.last_name}"

    @staticmethod
    def normalize_email(email):
        return (email or "").strip().lower()

    def save(self, *args, **kwargs):
        # Emails are unique case-insensitively, so only lowercase is stored
        self.email = self.normalize_email(self.email)
        super().save(*args, **kwargs)


class Appointment(models.Model):
    patient = models.ForeignKey(
        Patient, on_delete=models.PROTECT, related_name="appointments"
    )
    doctor = models.ForeignKey(
        Doctor, on_delete=models.PROTECT, related_name="appointments"
    )
    clinic = models.ForeignKey(
        Clinic, on_delete=models.PROTECT, related_name="appointments"
    )
    category = models.ForeignKey(
        Category, on_delete=models.PROTECT, related_name="appointments"
    )
    start_utc = models.DateTimeField()
    duration_minutes = models.IntegerField()

    class Meta:
        ordering = ["start_utc"]
        indexes = [
            models.Index(
                fields=["patient", "clinic", "start_utc"],
                name="appointment_patient_clinic",
            )
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(duration_minutes__gt=0),
                name="appointment_duration_positive",
            )
        ]

    def __str__(self):
        return f"{self.patient} at {self.clinic} on {self.start_utc}"

    @property
    def end_utc(self):
        """End of the half-open booking interval."""
        return self.start_utc + timedelta(minutes=self.duration_minutes)
