from __future__ import annotations

from django.contrib import admin

from .models import DualAssignment, PolicyRequest, SurveyAssignment, SurveyorProfile, TimelineEvent


@admin.register(PolicyRequest)
class PolicyRequestAdmin(admin.ModelAdmin):
    list_display = ('reference', 'owner', 'status', 'created_at')
    list_filter = ('status',)
    search_fields = ('reference', 'owner__username', 'property_address')
    ordering = ('-created_at',)


@admin.register(SurveyorProfile)
class SurveyorProfileAdmin(admin.ModelAdmin):
    list_display = ('user', 'organization', 'status', 'availability', 'rating')
    list_filter = ('organization', 'status', 'availability')
    search_fields = ('user__username', 'user__email', 'license_number')


@admin.register(SurveyAssignment)
class SurveyAssignmentAdmin(admin.ModelAdmin):
    list_display = ('policy', 'surveyor', 'organization', 'status', 'priority', 'deadline')
    list_filter = ('organization', 'status', 'priority')
    search_fields = ('policy__reference', 'surveyor__username')
    readonly_fields = ('dual_assignment', 'partner_contact', 'assigned_at', 'started_at', 'completed_at')


class TimelineEventInline(admin.TabularInline):
    model = TimelineEvent
    extra = 0
    can_delete = False
    fields = ('timestamp', 'event', 'organization', 'performed_by', 'details')
    readonly_fields = fields
    ordering = ('id',)

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(DualAssignment)
class DualAssignmentAdmin(admin.ModelAdmin):
    list_display = (
        'policy',
        'assignment_status',
        'completion_status',
        'priority',
        'overall_deadline',
        'processing_status',
    )
    list_filter = ('priority', 'processing_status')
    search_fields = ('policy__reference',)
    readonly_fields = (
        'ammc_assignment',
        'nia_assignment',
        'ammc_contact',
        'nia_contact',
        'processing_started_at',
        'processing_failed_at',
        'merged_report_id',
        'last_notification_sent',
        'completed_at',
        'created_at',
        'updated_at',
    )
    inlines = (TimelineEventInline,)

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('policy').prefetch_related('timeline')
