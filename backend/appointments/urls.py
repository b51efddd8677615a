"""
Appointments app URL configuration.

Appointments are nested under their application with
``drf-nested-routers`` (``rest_framework_nested``).

Route Hierarchy
---------------
  /api/applications/{application_pk}/appointments/        → list / schedule
  /api/applications/{application_pk}/appointments/{id}/   → retrieve
  POST .../appointments/{id}/confirm/
  POST .../appointments/{id}/complete/
  POST .../appointments/{id}/cancel/
  POST .../appointments/{id}/reschedule/
  POST .../appointments/{id}/reminder-sent/

  GET  /api/appointments/due-reminders/?hours=<n>
"""

from rest_framework.routers import DefaultRouter
from rest_framework_nested import routers as nested_routers

from applications.urls import router as applications_router

from .views import AppointmentReminderViewSet, ApplicationAppointmentViewSet

# ── Nested router: appointments ──────────────────────────────────────
# Parent lookup kwarg → application_pk
appointments_router = nested_routers.NestedDefaultRouter(
    parent_router=applications_router,
    parent_prefix=r"applications",
    lookup="application",
)
appointments_router.register(
    prefix=r"appointments",
    viewset=ApplicationAppointmentViewSet,
    basename="application-appointment",
)

# ── Reminder queue ───────────────────────────────────────────────────
router = DefaultRouter()
router.register(
    prefix=r"appointments",
    viewset=AppointmentReminderViewSet,
    basename="appointment-reminder",
)

urlpatterns = [
    *appointments_router.urls,
    *router.urls,
]
