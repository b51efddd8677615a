"""
Core app URL configuration.

Provides the report drill-down, system-wide constants/enums and the
notification inbox.

URL prefix (registered in ``backend/urls.py``)::

    path('api/core/', include('core.urls'))

Endpoint summary
----------------
GET  /api/core/reports/positions/                                          — Totals per position type.
GET  /api/core/reports/positions/{position_type}/stages/                   — Per-stage counts.
GET  /api/core/reports/positions/{position_type}/stages/{stage}/applications/ — Applications at a stage.
GET  /api/core/constants/                  — System choice enumerations for frontend dropdowns.
GET  /api/core/notifications/              — List notifications for the authenticated user.
POST /api/core/notifications/{id}/read/    — Mark a single notification as read.
POST /api/core/notifications/read-all/     — Mark all notifications as read.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from . import views

app_name = "core"

# ── Router for ViewSet-based endpoints ───────────────────────────────
router = DefaultRouter()
router.register(
    prefix=r"notifications",
    viewset=views.NotificationViewSet,
    basename="notification",
)

urlpatterns = [
    # ── Reports ──────────────────────────────────────────────────────
    path(
        "reports/positions/",
        views.ReportPositionsView.as_view(),
        name="report-positions",
    ),
    path(
        "reports/positions/<str:position_type>/stages/",
        views.ReportStagesView.as_view(),
        name="report-stages",
    ),
    path(
        "reports/positions/<str:position_type>/stages/<str:stage>/applications/",
        views.ReportApplicationsView.as_view(),
        name="report-applications",
    ),

    # ── System Constants / Enums ─────────────────────────────────────
    path(
        "constants/",
        views.SystemConstantsView.as_view(),
        name="system-constants",
    ),

    # ── Notifications (router-generated URLs) ────────────────────────
    path("", include(router.urls)),
]
