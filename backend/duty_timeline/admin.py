"""
Admin configuration for the duty timeline app.

Intervals are append-only, so the admin is read-only; corrections go
through the amendment endpoints where an edit reason is recorded.
"""
from django.contrib import admin
from .models import DutyInterval


@admin.register(DutyInterval)
class DutyIntervalAdmin(admin.ModelAdmin):
    list_display = [
        'id', 'driver_id', 'status', 'start_time', 'end_time',
        'source', 'superseded_at', 'created_at'
    ]
    list_filter = ['status', 'source', 'start_time']
    search_fields = ['driver_id', 'location', 'notes']
    ordering = ['driver_id', 'start_time']

    fieldsets = (
        ('Duty Status', {
            'fields': (
                'driver_id', 'status', 'start_time', 'end_time', 'source'
            )
        }),
        ('Location', {
            'fields': (
                'location', 'latitude', 'longitude', 'odometer', 'notes'
            )
        }),
        ('Amendment Chain', {
            'fields': (
                'edit_reason', 'supersedes', 'superseded_at', 'created_at'
            )
        }),
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
