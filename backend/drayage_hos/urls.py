"""
URL configuration for drayage_hos project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.1/topics/http/urls/
"""

from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse

def api_root(request):
    """API root endpoint with available endpoints."""
    return JsonResponse({
        'message': 'Drayage HOS Engine API',
        'version': '1.0',
        'endpoints': {
            'timeline': '/api/timeline/',
            'hos_compliance': '/api/hos/',
            'admin': '/admin/',
        },
        'documentation': {
            'timeline': {
                'description': 'Duty status timeline ingestion, reconstruction and amendments',
                'endpoints': {
                    'status_changes': 'POST /api/timeline/drivers/<uuid>/status-changes/ - Report a status change',
                    'intervals': 'GET /api/timeline/drivers/<uuid>/intervals/?as_of=<datetime> - Reconstruct timeline',
                    'amend': 'POST /api/timeline/intervals/<uuid>/amend/ - Amend one interval',
                    'amendments': 'POST /api/timeline/drivers/<uuid>/amendments/ - Amend several intervals',
                    'history': 'GET /api/timeline/intervals/<uuid>/history/ - Amendment chain',
                }
            },
            'hos_compliance': {
                'description': 'Hours of Service availability and violation tracking',
                'endpoints': {
                    'availability': 'GET /api/hos/drivers/<uuid>/availability/ - Remaining minutes',
                    'can_drive': 'GET /api/hos/drivers/<uuid>/can-drive/?required_mins=<int> - Dispatch check',
                    'daily_summary': 'GET /api/hos/drivers/<uuid>/daily-summary/?date=<YYYY-MM-DD> - Daily totals',
                    'violations': 'GET /api/hos/drivers/<uuid>/violations/ - Unacknowledged violations',
                    'available': 'GET /api/hos/drivers/available/?required_mins=<int> - Available drivers',
                    'acknowledge': 'POST /api/hos/violations/<uuid>/acknowledge/ - Acknowledge violation',
                }
            }
        }
    })

urlpatterns = [
    # Admin interface
    path("admin/", admin.site.urls),

    # API root
    path("api/", api_root, name='api-root'),

    # Duty Timeline API
    path("api/timeline/", include("duty_timeline.urls")),

    # HOS Compliance API
    path("api/hos/", include("hos_compliance.urls")),
]
