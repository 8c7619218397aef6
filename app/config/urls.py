"""
URL configuration for the billing ledger service.

URL Structure:
    /                                  - ReDoc API documentation
    /admin/                            - Django admin interface
    /health/                           - Health check endpoint (for load balancers, Docker)
    /schema/                           - OpenAPI schema (YAML)
    /api/v1/auth/                      - JWT endpoints
        token/                         - Obtain access/refresh pair
        token/refresh/                 - Refresh access token
    /api/v1/houses/                    - House endpoints
        {house_id}/hsi/                - House Status Index (GET)
    /api/v1/billing/                   - Billing endpoints
        ledgers/{service_id}/          - Ledger funding position (GET)
    /api/v1/payments/                  - Payment endpoints
        webhooks/stripe/               - Stripe webhook endpoint (POST)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    # Authentication (simplejwt)
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    # Houses
    path("houses/", include("houses.urls")),
    # Billing
    path("billing/", include("billing.urls")),
    # Payments
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Billing Ledger Admin"
admin.site.site_title = "Billing Ledger"
admin.site.index_title = "Ledgers, charges and payments"
