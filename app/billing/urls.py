"""
URL configuration for the billing app.

Routes:
    /ledgers/{service_id}/ - Ledger read interface (GET)
"""

from django.urls import path

from billing.views import HouseServiceLedgerView

app_name = "billing"

urlpatterns = [
    path("ledgers/<int:service_id>/", HouseServiceLedgerView.as_view(), name="ledger-detail"),
]
