"""
URL configuration for HOS Compliance API endpoints.

Provides URL routing for driver availability, dispatch checks,
violations, daily summaries and driver HOS profiles.
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import DriverHOSViewSet, ViolationViewSet

# Create router and register viewsets
router = DefaultRouter()
router.register(r'violations', ViolationViewSet, basename='hos-violations')

urlpatterns = [
    # Router URLs
    path('', include(router.urls)),

    # Fleet-wide dispatch check
    path('drivers/available/',
         DriverHOSViewSet.as_view({'get': 'available'}),
         name='hos-available-drivers'),

    # Per-driver endpoints
    path('drivers/<uuid:driver_id>/availability/',
         DriverHOSViewSet.as_view({'get': 'availability'}),
         name='hos-availability'),
    path('drivers/<uuid:driver_id>/can-drive/',
         DriverHOSViewSet.as_view({'get': 'can_drive'}),
         name='hos-can-drive'),
    path('drivers/<uuid:driver_id>/daily-summary/',
         DriverHOSViewSet.as_view({'get': 'daily_summary'}),
         name='hos-daily-summary'),
    path('drivers/<uuid:driver_id>/violations/',
         DriverHOSViewSet.as_view({'get': 'violations'}),
         name='hos-driver-violations'),
    path('drivers/<uuid:driver_id>/profile/',
         DriverHOSViewSet.as_view({'get': 'profile', 'patch': 'profile'}),
         name='hos-profile'),
]

# API Documentation - Available Endpoints:
"""
GET Endpoints:
- /api/hos/drivers/<uuid>/availability/?as_of=<datetime> - Remaining minutes per clock
- /api/hos/drivers/<uuid>/can-drive/?required_mins=<int> - Dispatch check for one driver
- /api/hos/drivers/<uuid>/daily-summary/?date=<YYYY-MM-DD> - Totals for one home-terminal day
- /api/hos/drivers/<uuid>/violations/ - Unacknowledged violations
- /api/hos/drivers/<uuid>/profile/ - Cycle rule, home terminal and cached availability
- /api/hos/drivers/available/?required_mins=<int> - Drivers available for a job
- /api/hos/violations/?driver_id=<uuid>&acknowledged=false - List violations
- /api/hos/violations/<uuid:id>/ - Retrieve one violation

POST Endpoints:
- /api/hos/violations/<uuid:id>/acknowledge/ - Acknowledge a violation

PATCH Endpoints:
- /api/hos/drivers/<uuid>/profile/ - Change cycle rule or home terminal timezone
"""
