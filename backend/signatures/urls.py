"""
Signatures app URL configuration.

Route Hierarchy
---------------
  GET  /api/signatures/?application=<id>   → audit trail
  POST /api/signatures/generate-otp/
  POST /api/signatures/apply/
"""

from rest_framework.routers import DefaultRouter

from .views import DigitalSignatureViewSet

router = DefaultRouter()
router.register(
    prefix=r"signatures",
    viewset=DigitalSignatureViewSet,
    basename="signature",
)

urlpatterns = router.urls
