from django.urls import include, path

urlpatterns = [
    path("", include("apps.orders.urls")),
    path("", include("apps.monitoring.urls")),
]
