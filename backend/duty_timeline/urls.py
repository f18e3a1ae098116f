"""
URL configuration for Duty Timeline API endpoints.

Provides URL routing for status-change ingestion, timeline
reconstruction and amendments.
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import DriverTimelineViewSet, DutyIntervalViewSet

# Create router and register viewsets
router = DefaultRouter()
router.register(r"intervals", DutyIntervalViewSet, basename="duty-intervals")

urlpatterns = [
    # Router URLs
    path("", include(router.urls)),
    # Per-driver timeline endpoints
    path(
        "drivers/<uuid:driver_id>/status-changes/",
        DriverTimelineViewSet.as_view({"post": "report_status_change"}),
        name="timeline-status-changes",
    ),
    path(
        "drivers/<uuid:driver_id>/intervals/",
        DriverTimelineViewSet.as_view({"get": "intervals"}),
        name="timeline-intervals",
    ),
    path(
        "drivers/<uuid:driver_id>/amendments/",
        DriverTimelineViewSet.as_view({"post": "amend_batch"}),
        name="timeline-amendments",
    ),
    path(
        "drivers/<uuid:driver_id>/consistency/",
        DriverTimelineViewSet.as_view({"get": "consistency"}),
        name="timeline-consistency",
    ),
]

# API Documentation - Available Endpoints:
"""
GET Endpoints:
- /api/timeline/intervals/?driver_id=<uuid>&active=true - List recorded intervals
- /api/timeline/intervals/<uuid:id>/ - Retrieve one interval
- /api/timeline/intervals/<uuid:id>/history/ - Amendment chain of an interval
- /api/timeline/drivers/<uuid>/intervals/?as_of=<datetime> - Reconstruct a timeline
- /api/timeline/drivers/<uuid>/consistency/ - Gaps, overlaps and open intervals

POST Endpoints:
- /api/timeline/drivers/<uuid>/status-changes/ - Report a duty status change
- /api/timeline/drivers/<uuid>/amendments/ - Amend several intervals as one change
- /api/timeline/intervals/<uuid:id>/amend/ - Amend one interval
"""
