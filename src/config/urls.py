"""Root URL map.

- ``/health``: liveness probe, unauthenticated.
- ``/api/v1/orders/``: the order token API.
- ``/api/v1/auth/token/...``: SimpleJWT for local and test clients.
- ``/api/schema/``, ``/api/docs/``, ``/api/redoc/``: OpenAPI.
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import (
    SpectacularAPIView,
    SpectacularRedocView,
    SpectacularSwaggerView,
)
from rest_framework_simplejwt.views import (
    TokenObtainPairView,
    TokenRefreshView,
    TokenVerifyView,
)

from modules.core.views import health_check

auth_patterns = [
    path("", TokenObtainPairView.as_view(), name="token_obtain"),
    path("refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("verify/", TokenVerifyView.as_view(), name="token_verify"),
]

docs_patterns = [
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("docs/", SpectacularSwaggerView.as_view(url_name="schema"), name="swagger-ui"),
    path("redoc/", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
]

urlpatterns = [
    path("health", health_check, name="health_check"),
    path("admin/", admin.site.urls),
    path("api/v1/", include("modules.orders.urls")),
    path("api/v1/auth/token/", include(auth_patterns)),
    path("api/", include(docs_patterns)),
]
