from django.urls import path

from .views import HealthCheck, ScheduleTasks

urlpatterns = [
    path("healthz", HealthCheck.as_view(), name="healthz"),
    path("api/v1/projects/<str:project_id>/schedule", ScheduleTasks.as_view(), name="schedule"),
]
