"""
URL configuration for the clinic booking project.

The booking API lives under ``/api/``; see ``clinic_booking.urls``.
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("clinic_booking.urls")),
]
