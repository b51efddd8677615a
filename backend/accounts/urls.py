"""
Accounts app URL configuration.

All routes are namespaced under ``accounts`` and designed to be included
in the project-level ``urls.py`` as::

    path('api/accounts/', include('accounts.urls')),

Endpoint Map
------------
Authentication
    POST   /auth/token/                 → TokenObtainPairView (SimpleJWT)
    POST   /auth/token/refresh/         → TokenRefreshView (SimpleJWT)

Current User Profile ("Me")
    GET    /me/                         → MeView

Officer Directory
    GET    /officers/?role=             → OfficerViewSet.list
    POST   /officers/                   → OfficerViewSet.create
    PATCH  /officers/{id}/              → OfficerViewSet.partial_update
    PATCH  /officers/{id}/activate/     → OfficerViewSet.activate
    PATCH  /officers/{id}/deactivate/   → OfficerViewSet.deactivate
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .views import MeView, OfficerViewSet

app_name = "accounts"

router = DefaultRouter()
router.register(r"officers", OfficerViewSet, basename="officer")

urlpatterns = [
    # ── Authentication ───────────────────────────────────────────────
    path("auth/token/", TokenObtainPairView.as_view(), name="token-obtain"),
    path(
        "auth/token/refresh/",
        TokenRefreshView.as_view(),
        name="token-refresh",
    ),

    # ── Current User (Me) ───────────────────────────────────────────
    path("me/", MeView.as_view(), name="me"),

    # ── Router-registered viewsets (officers/) ───────────────────────
    path("", include(router.urls)),
]
