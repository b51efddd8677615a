"""
Assignments app URL configuration.

Route Hierarchy
---------------
  POST /api/assignments/assign/
  POST /api/assignments/claim/
  GET  /api/assignments/history/?application=<id>
  GET  /api/assignments/unassigned/
  GET  /api/assignments/overdue/?hours=<n>
  GET  /api/assignments/escalations/
  GET  /api/assignments/workload/?role=<code>

  /api/assignments/rules/                 → list / create
  /api/assignments/rules/{id}/            → retrieve / partial_update / destroy
"""

from rest_framework.routers import DefaultRouter

from .views import AssignmentViewSet, AutoAssignmentRuleViewSet

router = DefaultRouter()
router.register(
    prefix=r"assignments/rules",
    viewset=AutoAssignmentRuleViewSet,
    basename="assignment-rule",
)
router.register(
    prefix=r"assignments",
    viewset=AssignmentViewSet,
    basename="assignment",
)

urlpatterns = router.urls
