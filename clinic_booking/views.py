from rest_framework import generics, status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from . import services
from .exceptions import (
    BookingError,
    ConflictError,
    IdentityMismatchError,
    NotFoundError,
    ValidationError,
)
from .models import Appointment, Category, Clinic, Doctor, Patient, Speciality
from .serializers import (
    AppointmentReadSerializer,
    AppointmentUpdateSerializer,
    AppointmentWriteSerializer,
    CategorySerializer,
    CategoryUpdateSerializer,
    ClinicSerializer,
    ClinicUpdateSerializer,
    DoctorSerializer,
    DoctorUpdateSerializer,
    PatientSerializer,
    PatientUpdateSerializer,
    SpecialitySerializer,
    SpecialityUpdateSerializer,
)
from .store import EntityKind

ERROR_STATUSES = [
    (ConflictError, status.HTTP_409_CONFLICT),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (IdentityMismatchError, status.HTTP_400_BAD_REQUEST),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
]


def error_response(error):
    """Translate a service error into a JSON response."""
    http_status = status.HTTP_400_BAD_REQUEST
    for error_class, mapped_status in ERROR_STATUSES:
        if isinstance(error, error_class):
            http_status = mapped_status
            break
    return Response({"detail": error.message, "code": error.code}, status=http_status)


def _update_fields(serializer):
    """Split validated update data into the payload id and the new fields."""
    fields = dict(serializer.validated_data)
    return fields.pop("id"), fields


# Appointment Views
class AppointmentListCreateView(generics.ListCreateAPIView):
    queryset = Appointment.objects.select_related(
        "patient", "doctor__speciality", "clinic", "category"
    )

    def get_serializer_class(self):
        if self.request.method == "POST":
            return AppointmentWriteSerializer
        return AppointmentReadSerializer

    def create(self, request, *args, **kwargs):
        serializer = AppointmentWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            appointment = services.create_appointment(serializer.to_candidate())
        except BookingError as e:
            return error_response(e)

        appointment = self.get_queryset().get(pk=appointment.pk)
        return Response(
            AppointmentReadSerializer(appointment).data, status=status.HTTP_201_CREATED
        )


class AppointmentDetailView(generics.RetrieveAPIView):
    queryset = AppointmentListCreateView.queryset
    serializer_class = AppointmentReadSerializer

    def put(self, request, pk):
        serializer = AppointmentUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            services.update_appointment(
                pk, serializer.validated_data["id"], serializer.to_candidate()
            )
        except BookingError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)

    def delete(self, request, pk):
        try:
            services.delete_appointment(pk)
        except BookingError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


# Clinic, Speciality and Category Views
class NamedEntityListCreateView(generics.ListCreateAPIView):
    kind = None

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            instance = services.create_named(self.kind, **serializer.validated_data)
        except BookingError as e:
            return error_response(e)
        return Response(
            self.get_serializer(instance).data, status=status.HTTP_201_CREATED
        )


class NamedEntityDetailView(generics.RetrieveAPIView):
    kind = None
    update_serializer_class = None

    def put(self, request, pk):
        serializer = self.update_serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload_id, fields = _update_fields(serializer)

        try:
            services.update_named(self.kind, pk, payload_id, **fields)
        except BookingError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)

    def delete(self, request, pk):
        try:
            services.delete_entity(self.kind, pk)
        except BookingError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ClinicListCreateView(NamedEntityListCreateView):
    kind = EntityKind.CLINIC
    queryset = Clinic.objects.all()
    serializer_class = ClinicSerializer


class ClinicDetailView(NamedEntityDetailView):
    kind = EntityKind.CLINIC
    queryset = Clinic.objects.all()
    serializer_class = ClinicSerializer
    update_serializer_class = ClinicUpdateSerializer


class SpecialityListCreateView(NamedEntityListCreateView):
    kind = EntityKind.SPECIALITY
    queryset = Speciality.objects.all()
    serializer_class = SpecialitySerializer


class SpecialityDetailView(NamedEntityDetailView):
    kind = EntityKind.SPECIALITY
    queryset = Speciality.objects.all()
    serializer_class = SpecialitySerializer
    update_serializer_class = SpecialityUpdateSerializer


class CategoryListCreateView(NamedEntityListCreateView):
    kind = EntityKind.CATEGORY
    queryset = Category.objects.all()
    serializer_class = CategorySerializer


class CategoryDetailView(NamedEntityDetailView):
    kind = EntityKind.CATEGORY
    queryset = Category.objects.all()
    serializer_class = CategorySerializer
    update_serializer_class = CategoryUpdateSerializer


# Doctor Views
class DoctorListCreateView(generics.ListCreateAPIView):
    queryset = Doctor.objects.select_related("clinic", "speciality")
    serializer_class = DoctorSerializer

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            doctor = services.create_doctor(**serializer.validated_data)
        except BookingError as e:
            return error_response(e)

        doctor = self.get_queryset().get(pk=doctor.pk)
        return Response(
            self.get_serializer(doctor).data, status=status.HTTP_201_CREATED
        )


class DoctorDetailView(generics.RetrieveAPIView):
    queryset = DoctorListCreateView.queryset
    serializer_class = DoctorSerializer

    def put(self, request, pk):
        serializer = DoctorUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload_id, fields = _update_fields(serializer)

        try:
            services.update_doctor(pk, payload_id, **fields)
        except BookingError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)

    def delete(self, request, pk):
        try:
            services.delete_entity(EntityKind.DOCTOR, pk)
        except BookingError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


# Patient Views
class PatientListCreateView(generics.ListCreateAPIView):
    queryset = Patient.objects.all()
    serializer_class = PatientSerializer

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            patient = services.create_patient(**serializer.validated_data)
        except BookingError as e:
            return error_response(e)
        return Response(
            self.get_serializer(patient).data, status=status.HTTP_201_CREATED
        )


class PatientDetailView(generics.RetrieveAPIView):
    queryset = Patient.objects.all()
    serializer_class = PatientSerializer

    def put(self, request, pk):
        serializer = PatientUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload_id, fields = _update_fields(serializer)

        try:
            services.update_patient(pk, payload_id, **fields)
        except BookingError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)

    def delete(self, request, pk):
        try:
            services.delete_entity(EntityKind.PATIENT, pk)
        except BookingError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(["GET"])
def patient_by_email(request):
    """Look a patient up by email, ignoring case and surrounding spaces."""
    try:
        patient = services.find_patient_by_email(request.query_params.get("email", ""))
    except BookingError as e:
        return error_response(e)
    return Response(PatientSerializer(patient).data)
