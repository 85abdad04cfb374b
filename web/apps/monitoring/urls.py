from django.urls import path
from .api import health_view

urlpatterns = [
    path("healthz", health_view, name="health"),
]
