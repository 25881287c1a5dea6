from __future__ import annotations

from datetime import datetime
from typing import Any

from django.contrib.auth import get_user_model
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from rest_framework import serializers

from .constants import ORGANIZATION_CHOICES, PRIORITY_CHOICES, PRIORITY_MEDIUM
from .models import DualAssignment, PolicyRequest, SurveyAssignment, TimelineEvent

User = get_user_model()


def _ensure_future(value: datetime | None) -> datetime | None:
    if value is not None and value <= timezone.now():
        raise serializers.ValidationError(_('Deadline must be in the future.'))
    return value


class TimelineEventSerializer(serializers.ModelSerializer):
    performed_by_username = serializers.CharField(source='performed_by.username', read_only=True, default=None)

    class Meta:
        model = TimelineEvent
        fields = (
            'id',
            'event',
            'timestamp',
            'performed_by',
            'performed_by_username',
            'organization',
            'details',
            'metadata',
        )
        read_only_fields = fields


class SurveyAssignmentSerializer(serializers.ModelSerializer):
    surveyor_username = serializers.CharField(source='surveyor.username', read_only=True)
    policy_reference = serializers.CharField(source='policy.reference', read_only=True)

    class Meta:
        model = SurveyAssignment
        fields = (
            'id',
            'policy',
            'policy_reference',
            'surveyor',
            'surveyor_username',
            'assigned_by',
            'organization',
            'status',
            'priority',
            'deadline',
            'instructions',
            'dual_assignment',
            'partner_contact',
            'report_id',
            'assigned_at',
            'started_at',
            'completed_at',
        )
        read_only_fields = fields


class DualAssignmentSerializer(serializers.ModelSerializer):
    policy_reference = serializers.CharField(source='policy.reference', read_only=True)
    assignment_status = serializers.CharField(read_only=True)
    completion_status = serializers.IntegerField(read_only=True)
    progress_display = serializers.CharField(read_only=True)
    is_overdue = serializers.SerializerMethodField()
    both_assigned = serializers.SerializerMethodField()
    both_reports_submitted = serializers.SerializerMethodField()
    has_open_conflict = serializers.BooleanField(read_only=True)
    surveyor_contacts = serializers.SerializerMethodField()

    class Meta:
        model = DualAssignment
        fields = (
            'id',
            'policy',
            'policy_reference',
            'ammc_assignment',
            'nia_assignment',
            'assignment_status',
            'completion_status',
            'progress_display',
            'priority',
            'ammc_deadline',
            'nia_deadline',
            'overall_deadline',
            'is_overdue',
            'both_assigned',
            'both_reports_submitted',
            'has_open_conflict',
            'surveyor_contacts',
            'processing_status',
            'processing_started_at',
            'processing_failed_at',
            'processing_error',
            'merged_report_id',
            'ammc_notified',
            'nia_notified',
            'user_notified',
            'last_notification_sent',
            'completed_at',
            'created_at',
            'updated_at',
        )
        read_only_fields = fields

    def get_is_overdue(self, obj: DualAssignment) -> bool:
        return obj.is_overdue()

    def get_both_assigned(self, obj: DualAssignment) -> bool:
        return obj.is_both_assigned()

    def get_both_reports_submitted(self, obj: DualAssignment) -> bool:
        return obj.is_both_reports_submitted()

    def get_surveyor_contacts(self, obj: DualAssignment) -> dict[str, Any]:
        return obj.get_surveyor_contacts()


class DualAssignmentCreateSerializer(serializers.Serializer):
    policy = serializers.PrimaryKeyRelatedField(queryset=PolicyRequest.objects.all())
    priority = serializers.ChoiceField(choices=PRIORITY_CHOICES, default=PRIORITY_MEDIUM)
    ammc_deadline = serializers.DateTimeField(required=False, allow_null=True)
    nia_deadline = serializers.DateTimeField(required=False, allow_null=True)
    overall_deadline = serializers.DateTimeField(required=False, allow_null=True)

    def validate_policy(self, policy: PolicyRequest) -> PolicyRequest:
        if policy.status in (PolicyRequest.STATUS_DRAFT, PolicyRequest.STATUS_REJECTED):
            raise serializers.ValidationError(_('Policy is not ready for surveyor assignment.'))
        return policy

    def validate_ammc_deadline(self, value: datetime | None) -> datetime | None:
        return _ensure_future(value)

    def validate_nia_deadline(self, value: datetime | None) -> datetime | None:
        return _ensure_future(value)

    def validate_overall_deadline(self, value: datetime | None) -> datetime | None:
        return _ensure_future(value)


class DualAssignmentScheduleSerializer(serializers.Serializer):
    priority = serializers.ChoiceField(choices=PRIORITY_CHOICES, required=False)
    ammc_deadline = serializers.DateTimeField(required=False)
    nia_deadline = serializers.DateTimeField(required=False)
    overall_deadline = serializers.DateTimeField(required=False)

    def validate_ammc_deadline(self, value: datetime) -> datetime:
        return _ensure_future(value)

    def validate_nia_deadline(self, value: datetime) -> datetime:
        return _ensure_future(value)

    def validate_overall_deadline(self, value: datetime) -> datetime:
        return _ensure_future(value)

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        unknown = set(self.initial_data) - set(self.fields)
        if unknown:
            raise serializers.ValidationError(
                {field: _('This field cannot be changed.') for field in sorted(unknown)}
            )
        return attrs


class SlotAssignSerializer(serializers.Serializer):
    organization = serializers.ChoiceField(choices=ORGANIZATION_CHOICES)
    surveyor = serializers.PrimaryKeyRelatedField(queryset=User.objects.all())
    deadline = serializers.DateTimeField(required=False, allow_null=True)
    instructions = serializers.CharField(required=False, allow_blank=True, default='')
    priority = serializers.ChoiceField(choices=PRIORITY_CHOICES, required=False, allow_null=True)

    def validate_deadline(self, value: datetime | None) -> datetime | None:
        return _ensure_future(value)


class ReportSubmittedSerializer(serializers.Serializer):
    organization = serializers.ChoiceField(choices=ORGANIZATION_CHOICES)
    report_id = serializers.CharField(max_length=64)


class SurveyReportSerializer(serializers.Serializer):
    report_id = serializers.CharField(max_length=64)


class ConflictActionSerializer(serializers.Serializer):
    ACTION_FLAG = 'flag'
    ACTION_RESOLVE = 'resolve'

    action = serializers.ChoiceField(choices=((ACTION_FLAG, 'Flag'), (ACTION_RESOLVE, 'Resolve')))
    details = serializers.CharField(allow_blank=False, max_length=2000)
