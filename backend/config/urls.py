"""
URL configuration for the Completion Drive backend.

The tracker API lives under /api/; the admin is kept for inspecting tasks and logs.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include('tracker.urls')),
]
