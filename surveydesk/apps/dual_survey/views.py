from __future__ import annotations

import csv
import io
from collections.abc import Iterable
from typing import Any, Iterator

from django.contrib.auth import get_user_model
from django.db.models import Q
from django.http import Http404, HttpResponse, StreamingHttpResponse
from django.shortcuts import get_object_or_404
from django.utils.encoding import smart_str
from django.utils.translation import gettext_lazy as _
from openpyxl import Workbook
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .constants import COMPLETION_CHOICES, SURVEY_ORGANIZATIONS
from .exceptions import CoordinatorNotFound
from .models import DualAssignment, PolicyRequest, SurveyAssignment
from .pagination import DualSurveyPagination
from .serializers import (
    ConflictActionSerializer,
    DualAssignmentCreateSerializer,
    DualAssignmentScheduleSerializer,
    DualAssignmentSerializer,
    ReportSubmittedSerializer,
    SlotAssignSerializer,
    SurveyAssignmentSerializer,
    SurveyReportSerializer,
    TimelineEventSerializer,
)
from .services import assign_surveyor, assign_surveyor_to_policy, record_report, submit_survey_report

User = get_user_model()

EXPORT_COLUMNS = [
    'id',
    'policy_reference',
    'assignment_status',
    'completion_status',
    'priority',
    'overall_deadline',
    'is_overdue',
    'processing_status',
    'merged_report_id',
    'created_at',
]


class Echo:
    def write(self, value: str) -> str:  # pragma: no cover - simple passthrough for csv.writer
        return value


def _format_export_value(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, (list, tuple)):
        return ', '.join(smart_str(item) for item in value)
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return smart_str(value)


def _serialize_queryset(queryset: Iterable[DualAssignment], context: dict[str, Any]) -> Iterator[dict[str, Any]]:
    for instance in queryset:
        yield DualAssignmentSerializer(instance, context=context).data


def stream_csv_response(filename: str, columns: list[str], rows: Iterator[dict[str, Any]]) -> StreamingHttpResponse:
    pseudo_buffer = Echo()
    writer = csv.writer(pseudo_buffer)

    def row_generator() -> Iterator[str]:
        yield writer.writerow(columns)
        for row in rows:
            yield writer.writerow([_format_export_value(row.get(column, '')) for column in columns])

    response = StreamingHttpResponse(row_generator(), content_type='text/csv')
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


def build_xlsx_response(
    filename: str,
    sheet_name: str,
    columns: list[str],
    rows: Iterator[dict[str, Any]],
) -> HttpResponse:
    workbook = Workbook(write_only=True)
    sheet = workbook.create_sheet(title=sheet_name)
    sheet.append(columns)
    for row in rows:
        sheet.append([_format_export_value(row.get(column, '')) for column in columns])
    stream = io.BytesIO()
    workbook.save(stream)
    stream.seek(0)
    response = HttpResponse(
        stream.read(),
        content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    )
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


def _is_admin(user: User) -> bool:
    return bool(user.is_staff or user.is_superuser)


def _ensure_admin(user: User) -> None:
    if not _is_admin(user):
        raise PermissionDenied(_('Only administrators can manage dual assignments.'))


class DualAssignmentViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = DualAssignmentSerializer
    permission_classes = (IsAuthenticated,)
    pagination_class = DualSurveyPagination

    def get_queryset(self):
        queryset = DualAssignment.objects.select_related(
            'policy', 'ammc_assignment', 'nia_assignment'
        ).prefetch_related('timeline')
        user = self.request.user
        if not _is_admin(user):
            queryset = queryset.filter(
                Q(ammc_assignment__surveyor=user) | Q(nia_assignment__surveyor=user)
            )
        return self._apply_filters(queryset).order_by('-created_at')

    def _apply_filters(self, queryset):
        params = self.request.query_params
        assignment_status = params.get('assignment_status')
        if assignment_status:
            queryset = queryset.with_assignment_status(assignment_status)
        completion_status = params.get('completion_status')
        if completion_status:
            try:
                completion_value = int(completion_status)
            except ValueError as exc:
                raise ValidationError({'completion_status': _('Completion status must be 0, 50 or 100.')}) from exc
            if completion_value not in COMPLETION_CHOICES:
                raise ValidationError({'completion_status': _('Completion status must be 0, 50 or 100.')})
            queryset = queryset.with_completion_status(completion_value)
        priority = params.get('priority')
        if priority:
            queryset = queryset.filter(priority=priority)
        processing_status = params.get('processing_status')
        if processing_status:
            queryset = queryset.filter(processing_status=processing_status)
        if params.get('overdue') in {'1', 'true', 'yes'}:
            queryset = queryset.overdue()
        search = params.get('q')
        if search:
            queryset = queryset.filter(policy__reference__icontains=search)
        return queryset

    def get_object(self):
        try:
            return super().get_object()
        except Http404 as exc:
            raise CoordinatorNotFound() from exc

    def create(self, request, *args, **kwargs):
        _ensure_admin(request.user)
        serializer = DualAssignmentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        coordinator = DualAssignment.objects.create_for_policy(
            data['policy'],
            performed_by=request.user,
            priority=data['priority'],
            ammc_deadline=data.get('ammc_deadline'),
            nia_deadline=data.get('nia_deadline'),
            overall_deadline=data.get('overall_deadline'),
        )
        return Response(self.get_serializer(coordinator).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        _ensure_admin(request.user)
        coordinator = self.get_object()
        serializer = DualAssignmentScheduleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        coordinator.update_schedule(serializer.validated_data)
        coordinator.refresh_from_db()
        return Response(self.get_serializer(coordinator).data)

    @action(detail=False, methods=['get'], url_path=r'by-policy/(?P<policy_id>\d+)')
    def by_policy(self, request, policy_id=None):
        coordinator = self.get_queryset().filter(policy_id=policy_id).first()
        if coordinator is None:
            raise CoordinatorNotFound(_('Dual assignment not found for this policy.'))
        return Response(self.get_serializer(coordinator).data)

    def _assignment_response(self, coordinator: DualAssignment, assignment: SurveyAssignment) -> Response:
        coordinator.refresh_from_db()
        return Response(
            {
                'dual_assignment': self.get_serializer(coordinator).data,
                'assignment': SurveyAssignmentSerializer(assignment).data,
                'both_assigned': coordinator.is_both_assigned(),
            }
        )

    @action(detail=True, methods=['post'], url_path='assign')
    def assign(self, request, pk=None):
        _ensure_admin(request.user)
        coordinator = self.get_object()
        serializer = SlotAssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        coordinator, assignment = assign_surveyor(
            coordinator,
            data['organization'],
            data['surveyor'],
            performed_by=request.user,
            deadline=data.get('deadline'),
            instructions=data.get('instructions', ''),
            priority=data.get('priority'),
        )
        return self._assignment_response(coordinator, assignment)

    @action(detail=False, methods=['post'], url_path=r'by-policy/(?P<policy_id>\d+)/assign')
    def assign_for_policy(self, request, policy_id=None):
        _ensure_admin(request.user)
        policy = get_object_or_404(PolicyRequest, pk=policy_id)
        serializer = SlotAssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        coordinator, assignment = assign_surveyor_to_policy(
            policy,
            data['organization'],
            data['surveyor'],
            performed_by=request.user,
            deadline=data.get('deadline'),
            instructions=data.get('instructions', ''),
            priority=data.get('priority'),
        )
        return self._assignment_response(coordinator, assignment)

    @action(detail=True, methods=['post'], url_path='report-submitted')
    def report_submitted(self, request, pk=None):
        coordinator = self.get_object()
        serializer = ReportSubmittedSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        organization = serializer.validated_data['organization']
        if not _is_admin(request.user):
            occupant = coordinator.slot_assignment(organization)
            if occupant is None or occupant.surveyor_id != request.user.pk:
                raise PermissionDenied(_('Only the assigned surveyor can submit this report.'))
        completion = record_report(
            coordinator,
            organization,
            serializer.validated_data['report_id'],
            submitted_by=request.user,
        )
        return Response(
            {
                'completion_status': completion,
                'assignment_status': coordinator.assignment_status,
                'both_reports_submitted': coordinator.is_both_reports_submitted(),
            }
        )

    @action(detail=True, methods=['get'], url_path='contacts')
    def contacts(self, request, pk=None):
        coordinator = self.get_object()
        return Response(coordinator.get_surveyor_contacts())

    @action(detail=True, methods=['get'], url_path='timeline')
    def timeline(self, request, pk=None):
        coordinator = self.get_object()
        serializer = TimelineEventSerializer(coordinator.timeline.all(), many=True)
        return Response(serializer.data)

    @action(detail=True, methods=['post'], url_path='conflicts')
    def conflicts(self, request, pk=None):
        _ensure_admin(request.user)
        coordinator = self.get_object()
        serializer = ConflictActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        details = serializer.validated_data['details']
        if serializer.validated_data['action'] == ConflictActionSerializer.ACTION_FLAG:
            coordinator.flag_conflict(details, performed_by=request.user)
        else:
            coordinator.resolve_conflict(details, performed_by=request.user)
        coordinator.refresh_from_db()
        return Response(self.get_serializer(coordinator).data)

    @action(detail=False, methods=['get'], url_path='export')
    def export(self, request):
        _ensure_admin(request.user)
        file_type = (request.query_params.get('file_type') or 'csv').lower()
        if file_type not in {'csv', 'xlsx'}:
            raise ValidationError({'file_type': _('Unsupported export type.')})
        queryset = self.get_queryset()
        rows = _serialize_queryset(queryset.iterator(chunk_size=200), {'request': request})
        if file_type == 'xlsx':
            return build_xlsx_response('dual-assignments.xlsx', 'Dual assignments', EXPORT_COLUMNS, rows)
        return stream_csv_response('dual-assignments.csv', EXPORT_COLUMNS, rows)


class SurveyAssignmentViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = SurveyAssignmentSerializer
    permission_classes = (IsAuthenticated,)
    pagination_class = DualSurveyPagination

    def get_queryset(self):
        queryset = SurveyAssignment.objects.select_related('policy', 'surveyor')
        user = self.request.user
        if not _is_admin(user):
            queryset = queryset.filter(surveyor=user)
        params = self.request.query_params
        status_param = params.get('status')
        if status_param:
            queryset = queryset.filter(status=status_param)
        organization = params.get('organization')
        if organization in SURVEY_ORGANIZATIONS:
            queryset = queryset.filter(organization=organization)
        return queryset.order_by('-assigned_at')

    def _ensure_actor(self, request, assignment: SurveyAssignment) -> None:
        if _is_admin(request.user):
            return
        if assignment.surveyor_id != request.user.pk:
            raise PermissionDenied(_('You cannot update this assignment.'))

    @action(detail=True, methods=['post'], url_path='accept')
    def accept(self, request, pk=None):
        assignment = self.get_object()
        self._ensure_actor(request, assignment)
        assignment.mark_accepted()
        return Response(self.get_serializer(assignment).data)

    @action(detail=True, methods=['post'], url_path='start')
    def start(self, request, pk=None):
        assignment = self.get_object()
        self._ensure_actor(request, assignment)
        assignment.mark_in_progress()
        return Response(self.get_serializer(assignment).data)

    @action(detail=True, methods=['post'], url_path='reject')
    def reject(self, request, pk=None):
        assignment = self.get_object()
        self._ensure_actor(request, assignment)
        assignment.mark_rejected()
        return Response(self.get_serializer(assignment).data)

    @action(detail=True, methods=['post'], url_path='submit-report')
    def submit_report(self, request, pk=None):
        assignment = self.get_object()
        self._ensure_actor(request, assignment)
        serializer = SurveyReportSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        coordinator = submit_survey_report(
            assignment,
            serializer.validated_data['report_id'],
            submitted_by=request.user,
        )
        assignment.refresh_from_db()
        payload = {'assignment': self.get_serializer(assignment).data}
        if coordinator is not None:
            payload['completion_status'] = coordinator.completion_status
            payload['both_reports_submitted'] = coordinator.is_both_reports_submitted()
        return Response(payload)
