from django.urls import path
from . import views

urlpatterns = [
    # Appointments
    path('appointments/', views.AppointmentListCreateView.as_view(), name='appointment-list'),
    path('appointments/<int:pk>/', views.AppointmentDetailView.as_view(), name='appointment-detail'),

    # Reference data
    path('clinics/', views.ClinicListCreateView.as_view(), name='clinic-list'),
    path('clinics/<int:pk>/', views.ClinicDetailView.as_view(), name='clinic-detail'),
    path('specialities/', views.SpecialityListCreateView.as_view(), name='speciality-list'),
    path('specialities/<int:pk>/', views.SpecialityDetailView.as_view(), name='speciality-detail'),
    path('categories/', views.CategoryListCreateView.as_view(), name='category-list'),
    path('categories/<int:pk>/', views.CategoryDetailView.as_view(), name='category-detail'),
    path('doctors/', views.DoctorListCreateView.as_view(), name='doctor-list'),
    path('doctors/<int:pk>/', views.DoctorDetailView.as_view(), name='doctor-detail'),
    path('patients/', views.PatientListCreateView.as_view(), name='patient-list'),
    path('patients/by-email/', views.patient_by_email, name='patient-by-email'),
    path('patients/<int:pk>/', views.PatientDetailView.as_view(), name='patient-detail'),
]
