"""
Admin configuration for the HOS compliance app.
"""
from django.contrib import admin
from .models import DriverHOSProfile, Violation, ViolationAnnotation


class ViolationAnnotationInline(admin.TabularInline):
    model = ViolationAnnotation
    extra = 0
    readonly_fields = ['kind', 'note', 'source_interval_id', 'created_at']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(DriverHOSProfile)
class DriverHOSProfileAdmin(admin.ModelAdmin):
    list_display = [
        'driver_id', 'cycle_rule', 'home_terminal_timezone', 'available_drive_mins',
        'available_duty_mins', 'available_cycle_mins', 'needs_break', 'last_hos_update'
    ]
    list_filter = ['cycle_rule', 'needs_break']
    search_fields = ['driver_id']
    readonly_fields = [
        'available_drive_mins', 'available_duty_mins', 'available_cycle_mins',
        'needs_break', 'mins_until_break', 'last_hos_update',
        'pending_recompute_since', 'pending_source_interval_id',
        'recompute_generation', 'created_at'
    ]


@admin.register(Violation)
class ViolationAdmin(admin.ModelAdmin):
    list_display = [
        'id', 'driver_id', 'rule_code', 'severity', 'window_start',
        'duration_mins', 'acknowledged', 'detected_at'
    ]
    list_filter = ['rule_code', 'severity', 'acknowledged']
    search_fields = ['driver_id', 'description']
    inlines = [ViolationAnnotationInline]
    actions = ['acknowledge_selected']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description='Acknowledge selected violations')
    def acknowledge_selected(self, request, queryset):
        for violation in queryset:
            violation.acknowledge()
