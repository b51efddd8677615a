"""
Formconfigs app URL configuration.

Route Hierarchy
---------------
  /api/forms/                 → list / create
  /api/forms/{id}/            → retrieve / partial_update / destroy
  PUT /api/forms/{id}/fees/   → fee schedule
"""

from rest_framework.routers import DefaultRouter

from .views import FormConfigurationViewSet

router = DefaultRouter()
router.register(prefix=r"forms", viewset=FormConfigurationViewSet, basename="form")

urlpatterns = router.urls
