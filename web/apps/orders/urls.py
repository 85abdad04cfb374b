from django.urls import path
from .views import AdminOrdersView, CheckoutSessionView, FinalizeOrderView

app_name = "orders"

urlpatterns = [
    path("create-checkout-session", CheckoutSessionView.as_view(), name="create-checkout-session"),
    path("finalize-order", FinalizeOrderView.as_view(), name="finalize-order"),
    path("admin/orders", AdminOrdersView.as_view(), name="admin-orders"),
]
