"""
Applications app URL configuration.

All routes are registered under the ``/api/`` prefix.

Route Hierarchy
---------------
  /api/applications/                        → list / create
  /api/applications/{id}/                   → retrieve

  ── Workflow @actions ───────────────────────────────────────────
  POST /api/applications/{id}/submit/
  POST /api/applications/{id}/resubmit/
  POST /api/applications/{id}/transition/
  GET  /api/applications/{id}/workflow-status/
  GET  /api/applications/{id}/outcomes/

  ── Documents ───────────────────────────────────────────────────
  GET  /api/applications/{id}/documents/
  POST /api/applications/{id}/documents/
  POST /api/applications/{id}/documents/{document_pk}/verify/
"""

from rest_framework.routers import DefaultRouter

from .views import PositionApplicationViewSet

router = DefaultRouter()
router.register(
    prefix=r"applications",
    viewset=PositionApplicationViewSet,
    basename="application",
)

urlpatterns = router.urls
