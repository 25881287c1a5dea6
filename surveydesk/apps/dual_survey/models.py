from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, models, transaction
from django.db.models import Case, Exists, IntegerField, OuterRef, Q, Value, When
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .conf import get_setting
from .constants import (
    ASSIGNED_EVENTS,
    ASSIGNMENT_FULL,
    ASSIGNMENT_PARTIAL,
    ASSIGNMENT_UNASSIGNED,
    COMPLETION_FULL,
    COMPLETION_HALF,
    COMPLETION_NONE,
    EVENT_AMMC_REPORT,
    EVENT_CHOICES,
    EVENT_COMPLETED,
    EVENT_CONFLICT_DETECTED,
    EVENT_CONFLICT_RESOLVED,
    EVENT_CREATED,
    EVENT_NIA_REPORT,
    EVENT_REPORTS_MERGED,
    ORG_AMMC,
    ORG_NIA,
    ORG_SYSTEM,
    ORGANIZATION_CHOICES,
    PRIORITY_CHOICES,
    PRIORITY_MEDIUM,
    PROCESSING_CHOICES,
    PROCESSING_COMPLETED,
    PROCESSING_FAILED,
    PROCESSING_PENDING,
    PROCESSING_PROCESSING,
    PROGRESS_LABELS,
    REPORT_EVENTS,
    SURVEY_ORGANIZATIONS,
    TIMELINE_ORGANIZATION_CHOICES,
)
from .exceptions import (
    CoordinatorExists,
    CoordinatorNotFound,
    InvalidRequest,
    SlotConflict,
    SurveyorUnavailable,
)

logger = logging.getLogger(__name__)

User = get_user_model()


def validate_organization(organization: str) -> str:
    if organization not in SURVEY_ORGANIZATIONS:
        raise InvalidRequest({'organization': _('Organization must be AMMC or NIA.')})
    return organization


class PolicyRequest(models.Model):
    STATUS_DRAFT = 'draft'
    STATUS_SUBMITTED = 'submitted'
    STATUS_ASSIGNED = 'assigned'
    STATUS_SURVEYED = 'surveyed'
    STATUS_COMPLETED = 'completed'
    STATUS_REJECTED = 'rejected'

    STATUS_CHOICES = (
        (STATUS_DRAFT, 'Draft'),
        (STATUS_SUBMITTED, 'Submitted'),
        (STATUS_ASSIGNED, 'Assigned'),
        (STATUS_SURVEYED, 'Surveyed'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_REJECTED, 'Rejected'),
    )

    reference = models.CharField(max_length=32, unique=True)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='policy_requests',
    )
    property_address = models.TextField(blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_DRAFT)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ('-created_at',)
        indexes = [models.Index(fields=('status',), name='dual_survey_policy_status_idx')]

    def __str__(self) -> str:
        return f"{self.reference} ({self.status})"

    def advance_status(self, from_status: str, to_status: str) -> bool:
        updated = PolicyRequest.objects.filter(pk=self.pk, status=from_status).update(
            status=to_status,
            updated_at=timezone.now(),
        )
        if updated:
            self.status = to_status
        return bool(updated)


class SurveyorProfileQuerySet(models.QuerySet):
    def for_organization(self, organization: str) -> 'SurveyorProfileQuerySet':
        return self.filter(organization=organization)

    def eligible(self, organization: str) -> 'SurveyorProfileQuerySet':
        return self.for_organization(organization).filter(
            status=SurveyorProfile.STATUS_ACTIVE,
            availability=SurveyorProfile.AVAILABILITY_AVAILABLE,
        )


class SurveyorProfile(models.Model):
    STATUS_ACTIVE = 'active'
    STATUS_INACTIVE = 'inactive'
    STATUS_SUSPENDED = 'suspended'

    STATUS_CHOICES = (
        (STATUS_ACTIVE, 'Active'),
        (STATUS_INACTIVE, 'Inactive'),
        (STATUS_SUSPENDED, 'Suspended'),
    )

    AVAILABILITY_AVAILABLE = 'available'
    AVAILABILITY_BUSY = 'busy'
    AVAILABILITY_ON_LEAVE = 'on-leave'

    AVAILABILITY_CHOICES = (
        (AVAILABILITY_AVAILABLE, 'Available'),
        (AVAILABILITY_BUSY, 'Busy'),
        (AVAILABILITY_ON_LEAVE, 'On leave'),
    )

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='surveyor_profile',
    )
    organization = models.CharField(max_length=8, choices=ORGANIZATION_CHOICES)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    availability = models.CharField(
        max_length=16,
        choices=AVAILABILITY_CHOICES,
        default=AVAILABILITY_AVAILABLE,
    )
    phone = models.CharField(max_length=32, blank=True)
    license_number = models.CharField(max_length=64, blank=True)
    address = models.TextField(blank=True)
    emergency_contact = models.CharField(max_length=128, blank=True)
    specialization = models.JSONField(default=list, blank=True)
    experience = models.PositiveIntegerField(default=0)
    rating = models.FloatField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = SurveyorProfileQuerySet.as_manager()

    class Meta:
        indexes = [
            models.Index(fields=('organization', 'status', 'availability'), name='dual_survey_surveyor_pool_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.display_name} ({self.organization})"

    @property
    def display_name(self) -> str:
        first = (self.user.first_name or '').strip()
        last = (self.user.last_name or '').strip()
        if first or last:
            return f"{first} {last}".strip()
        return self.user.username

    def active_assignment_count(self) -> int:
        return SurveyAssignment.objects.filter(
            surveyor_id=self.user_id,
            status__in=SurveyAssignment.ACTIVE_STATUSES,
        ).count()

    def ensure_can_take(self, organization: str) -> None:
        if self.organization != organization:
            raise SurveyorUnavailable(
                _('Surveyor belongs to %(actual)s, not %(expected)s.')
                % {'actual': self.organization, 'expected': organization}
            )
        if self.status != self.STATUS_ACTIVE:
            raise SurveyorUnavailable(_('Surveyor account is not active.'))
        if self.availability != self.AVAILABILITY_AVAILABLE:
            raise SurveyorUnavailable(_('Surveyor is not available for new assignments.'))
        capacity = get_setting('MAX_ACTIVE_ASSIGNMENTS')
        if capacity and self.active_assignment_count() >= capacity:
            raise SurveyorUnavailable(
                _('Surveyor already has %(count)s active assignments.') % {'count': capacity}
            )


class SurveyAssignment(models.Model):
    STATUS_ASSIGNED = 'assigned'
    STATUS_ACCEPTED = 'accepted'
    STATUS_IN_PROGRESS = 'in-progress'
    STATUS_COMPLETED = 'completed'
    STATUS_REJECTED = 'rejected'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = (
        (STATUS_ASSIGNED, 'Assigned'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_CANCELLED, 'Cancelled'),
    )

    ACTIVE_STATUSES = (STATUS_ASSIGNED, STATUS_ACCEPTED, STATUS_IN_PROGRESS)

    TRANSITIONS = {
        STATUS_ACCEPTED: (STATUS_ASSIGNED,),
        STATUS_IN_PROGRESS: (STATUS_ASSIGNED, STATUS_ACCEPTED),
        STATUS_COMPLETED: (STATUS_ASSIGNED, STATUS_ACCEPTED, STATUS_IN_PROGRESS),
        STATUS_REJECTED: (STATUS_ASSIGNED, STATUS_ACCEPTED),
        STATUS_CANCELLED: (STATUS_ASSIGNED, STATUS_ACCEPTED, STATUS_IN_PROGRESS),
    }

    policy = models.ForeignKey(
        PolicyRequest,
        on_delete=models.PROTECT,
        related_name='survey_assignments',
    )
    surveyor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='survey_assignments',
    )
    assigned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name='+',
        null=True,
        blank=True,
    )
    organization = models.CharField(max_length=8, choices=ORGANIZATION_CHOICES)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ASSIGNED)
    priority = models.CharField(max_length=8, choices=PRIORITY_CHOICES, default=PRIORITY_MEDIUM)
    deadline = models.DateTimeField()
    instructions = models.TextField(blank=True)
    dual_assignment = models.ForeignKey(
        'DualAssignment',
        on_delete=models.SET_NULL,
        related_name='survey_assignments',
        null=True,
        blank=True,
    )
    partner_contact = models.JSONField(null=True, blank=True)
    report_id = models.CharField(max_length=64, blank=True)
    assigned_at = models.DateTimeField(auto_now_add=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ('-assigned_at',)
        constraints = [
            models.UniqueConstraint(
                fields=('dual_assignment', 'organization', 'surveyor'),
                condition=Q(dual_assignment__isnull=False),
                name='dual_survey_unique_slot_candidate',
            ),
        ]
        indexes = [
            models.Index(fields=('surveyor', 'status'), name='dual_survey_sa_surveyor_idx'),
            models.Index(fields=('policy', 'organization'), name='dual_survey_sa_policy_org_idx'),
        ]

    def __str__(self) -> str:
        return f"Survey assignment #{self.pk} - {self.organization} ({self.status})"

    @property
    def is_active(self) -> bool:
        return self.status in self.ACTIVE_STATUSES

    def _transition(self, target: str, **extra: Any) -> None:
        allowed = self.TRANSITIONS[target]
        updated = SurveyAssignment.objects.filter(pk=self.pk, status__in=allowed).update(
            status=target,
            updated_at=timezone.now(),
            **extra,
        )
        if not updated:
            self.refresh_from_db(fields=['status'])
            raise InvalidRequest(
                {'status': _('Cannot move assignment from %(current)s to %(target)s.')
                 % {'current': self.status, 'target': target}}
            )
        self.refresh_from_db()

    def mark_accepted(self) -> None:
        self._transition(self.STATUS_ACCEPTED)

    def mark_in_progress(self) -> None:
        self._transition(self.STATUS_IN_PROGRESS, started_at=timezone.now())

    def mark_rejected(self) -> None:
        self._transition(self.STATUS_REJECTED)

    def mark_cancelled(self) -> None:
        self._transition(self.STATUS_CANCELLED)

    def reopen(self) -> None:
        if self.status == self.STATUS_CANCELLED:
            SurveyAssignment.objects.filter(pk=self.pk, status=self.STATUS_CANCELLED).update(
                status=self.STATUS_ASSIGNED,
                updated_at=timezone.now(),
            )
            self.refresh_from_db()

    def submit_report(self, report_id: str, submitted_by: User | None) -> 'DualAssignment | None':
        if not report_id:
            raise InvalidRequest({'report_id': _('Report identifier is required.')})
        with transaction.atomic():
            coordinator = None
            if self.dual_assignment_id is not None:
                # Coordinator row first, then the assignment row.
                coordinator = DualAssignment.objects.select_for_update().filter(pk=self.dual_assignment_id).first()
            self._transition(
                self.STATUS_COMPLETED,
                report_id=str(report_id),
                completed_at=timezone.now(),
            )
            if coordinator is None:
                return None
            assignment_field = coordinator.SLOT_FIELDS[self.organization][0]
            if getattr(coordinator, f'{assignment_field}_id') != self.pk:
                raise InvalidRequest(
                    {'report_id': _('This assignment does not hold the %(organization)s slot.')
                     % {'organization': self.organization}}
                )
            coordinator.report_submitted(self.organization, str(report_id), submitted_by)
        return coordinator


class DualAssignmentQuerySet(models.QuerySet):
    def with_progress(self) -> 'DualAssignmentQuerySet':
        ammc_report = TimelineEvent.objects.filter(coordinator=OuterRef('pk'), event=EVENT_AMMC_REPORT)
        nia_report = TimelineEvent.objects.filter(coordinator=OuterRef('pk'), event=EVENT_NIA_REPORT)
        queryset = self.annotate(
            has_ammc_report=Exists(ammc_report),
            has_nia_report=Exists(nia_report),
        )
        return queryset.annotate(
            assignment_state=Case(
                When(
                    ammc_assignment__isnull=False,
                    nia_assignment__isnull=False,
                    then=Value(ASSIGNMENT_FULL),
                ),
                When(
                    Q(ammc_assignment__isnull=False) | Q(nia_assignment__isnull=False),
                    then=Value(ASSIGNMENT_PARTIAL),
                ),
                default=Value(ASSIGNMENT_UNASSIGNED),
                output_field=models.CharField(),
            ),
            completion_percent=Case(
                When(has_ammc_report=True, has_nia_report=True, then=Value(COMPLETION_FULL)),
                When(Q(has_ammc_report=True) | Q(has_nia_report=True), then=Value(COMPLETION_HALF)),
                default=Value(COMPLETION_NONE),
                output_field=IntegerField(),
            ),
        )

    def with_assignment_status(self, value: str) -> 'DualAssignmentQuerySet':
        return self.with_progress().filter(assignment_state=value)

    def with_completion_status(self, value: int) -> 'DualAssignmentQuerySet':
        return self.with_progress().filter(completion_percent=value)

    def overdue(self, now: datetime | None = None) -> 'DualAssignmentQuerySet':
        now = now or timezone.now()
        return (
            self.with_progress()
            .filter(overall_deadline__isnull=False, overall_deadline__lt=now)
            .exclude(completion_percent=COMPLETION_FULL)
        )

    def ready_for_merge(self) -> 'DualAssignmentQuerySet':
        return self.with_progress().filter(
            completion_percent=COMPLETION_FULL,
            processing_status=PROCESSING_PENDING,
            merged_report_id__isnull=True,
        )

    def create_for_policy(
        self,
        policy: PolicyRequest,
        *,
        performed_by: User | None = None,
        priority: str = PRIORITY_MEDIUM,
        ammc_deadline: datetime | None = None,
        nia_deadline: datetime | None = None,
        overall_deadline: datetime | None = None,
    ) -> 'DualAssignment':
        existing_id = self.filter(policy=policy).values_list('pk', flat=True).first()
        if existing_id is not None:
            raise CoordinatorExists(existing_id)

        if overall_deadline is None:
            days = get_setting('DEFAULT_OVERALL_DEADLINE_DAYS')
            overall_deadline = timezone.now() + timedelta(days=days)

        try:
            with transaction.atomic():
                coordinator = self.create(
                    policy=policy,
                    priority=priority,
                    ammc_deadline=ammc_deadline,
                    nia_deadline=nia_deadline,
                    overall_deadline=overall_deadline,
                )
                coordinator.append_event(
                    EVENT_CREATED,
                    performed_by=performed_by,
                    organization=ORG_SYSTEM,
                    details='Dual assignment created for policy',
                )
        except IntegrityError as exc:
            existing_id = self.filter(policy=policy).values_list('pk', flat=True).first()
            if existing_id is None:
                raise
            raise CoordinatorExists(existing_id) from exc

        logger.info('Created dual assignment %s for policy %s', coordinator.pk, policy.reference)
        return coordinator

    def ensure_for_policy(self, policy: PolicyRequest, *, performed_by: User | None = None) -> 'DualAssignment':
        try:
            return self.create_for_policy(policy, performed_by=performed_by)
        except CoordinatorExists as exc:
            return self.get(pk=exc.existing_coordinator_id)


class DualAssignment(models.Model):
    SLOT_FIELDS = {
        ORG_AMMC: ('ammc_assignment', 'ammc_contact', 'ammc_notified'),
        ORG_NIA: ('nia_assignment', 'nia_contact', 'nia_notified'),
    }
    SCHEDULE_FIELDS = ('priority', 'ammc_deadline', 'nia_deadline', 'overall_deadline')

    policy = models.OneToOneField(
        PolicyRequest,
        on_delete=models.CASCADE,
        related_name='dual_assignment',
    )
    ammc_assignment = models.ForeignKey(
        SurveyAssignment,
        on_delete=models.PROTECT,
        related_name='+',
        null=True,
        blank=True,
    )
    nia_assignment = models.ForeignKey(
        SurveyAssignment,
        on_delete=models.PROTECT,
        related_name='+',
        null=True,
        blank=True,
    )
    ammc_contact = models.JSONField(null=True, blank=True)
    nia_contact = models.JSONField(null=True, blank=True)
    priority = models.CharField(max_length=8, choices=PRIORITY_CHOICES, default=PRIORITY_MEDIUM)
    ammc_deadline = models.DateTimeField(null=True, blank=True)
    nia_deadline = models.DateTimeField(null=True, blank=True)
    overall_deadline = models.DateTimeField(null=True, blank=True)
    processing_status = models.CharField(
        max_length=16,
        choices=PROCESSING_CHOICES,
        default=PROCESSING_PENDING,
    )
    processing_started_at = models.DateTimeField(null=True, blank=True)
    processing_failed_at = models.DateTimeField(null=True, blank=True)
    processing_error = models.TextField(blank=True)
    merged_report_id = models.CharField(max_length=64, null=True, blank=True)
    ammc_notified = models.BooleanField(default=False)
    nia_notified = models.BooleanField(default=False)
    user_notified = models.BooleanField(default=False)
    last_notification_sent = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = DualAssignmentQuerySet.as_manager()

    class Meta:
        ordering = ('-created_at',)
        indexes = [
            models.Index(fields=('processing_status',), name='dual_survey_da_processing_idx'),
            models.Index(fields=('priority', 'overall_deadline'), name='dual_survey_da_deadline_idx'),
        ]

    def __str__(self) -> str:
        return f"Dual assignment #{self.pk} - {self.policy.reference}"

    # Derived state

    @property
    def assignment_status(self) -> str:
        filled = (self.ammc_assignment_id is not None, self.nia_assignment_id is not None)
        if all(filled):
            return ASSIGNMENT_FULL
        if any(filled):
            return ASSIGNMENT_PARTIAL
        return ASSIGNMENT_UNASSIGNED

    @property
    def reported_organizations(self) -> set[str]:
        events = {entry.event for entry in self.timeline.all()}
        return {org for org, event in REPORT_EVENTS.items() if event in events}

    @property
    def completion_status(self) -> int:
        reported = len(self.reported_organizations)
        if reported >= 2:
            return COMPLETION_FULL
        if reported == 1:
            return COMPLETION_HALF
        return COMPLETION_NONE

    @property
    def progress_display(self) -> str:
        return PROGRESS_LABELS.get(self.completion_status, 'Unknown Status')

    @property
    def has_open_conflict(self) -> bool:
        for entry in reversed(list(self.timeline.all())):
            if entry.event == EVENT_CONFLICT_DETECTED:
                return True
            if entry.event == EVENT_CONFLICT_RESOLVED:
                return False
        return False

    def is_slot_filled(self, organization: str) -> bool:
        assignment_field = self.SLOT_FIELDS[validate_organization(organization)][0]
        return getattr(self, f'{assignment_field}_id') is not None

    def is_both_assigned(self) -> bool:
        return self.ammc_assignment_id is not None and self.nia_assignment_id is not None

    def is_both_reports_submitted(self) -> bool:
        return self.completion_status == COMPLETION_FULL

    def is_overdue(self, now: datetime | None = None) -> bool:
        if self.overall_deadline is None:
            return False
        now = now or timezone.now()
        return self.overall_deadline < now and self.completion_status < COMPLETION_FULL

    def get_surveyor_contacts(self) -> dict[str, dict[str, Any] | None]:
        return {'ammc': self.ammc_contact, 'nia': self.nia_contact}

    def slot_assignment(self, organization: str) -> SurveyAssignment | None:
        assignment_field = self.SLOT_FIELDS[validate_organization(organization)][0]
        return getattr(self, assignment_field)

    # Timeline

    def append_event(
        self,
        event: str,
        *,
        performed_by: User | None = None,
        organization: str = ORG_SYSTEM,
        details: str = '',
        metadata: dict[str, Any] | None = None,
    ) -> 'TimelineEvent':
        entry = TimelineEvent.objects.create(
            coordinator=self,
            event=event,
            performed_by=performed_by,
            organization=organization,
            details=details,
            metadata=metadata or {},
        )
        if hasattr(self, '_prefetched_objects_cache'):
            self._prefetched_objects_cache.pop('timeline', None)
        return entry

    # Slot assignment

    def fill_slot(
        self,
        organization: str,
        *,
        assignment: SurveyAssignment,
        contact_snapshot: dict[str, Any],
        performed_by: User | None = None,
    ) -> bool:
        """
        Fill the organization's slot if and only if it is still empty.

        The emptiness check and the write are a single conditional UPDATE, so
        concurrent requests for the same slot cannot both succeed. Returns
        True when this call filled the slot and False when the slot already
        held the same surveyor. Raises `SlotConflict` when a different
        surveyor holds the slot.
        """
        validate_organization(organization)
        assignment_field, contact_field, notified_field = self.SLOT_FIELDS[organization]
        now = timezone.now()
        snapshot = {**contact_snapshot, 'assigned_at': now.isoformat()}

        with transaction.atomic():
            updated = DualAssignment.objects.filter(
                pk=self.pk,
                **{f'{assignment_field}__isnull': True},
            ).update(
                **{
                    assignment_field: assignment,
                    contact_field: snapshot,
                    notified_field: False,
                    'updated_at': now,
                }
            )
            if not updated:
                current = (
                    DualAssignment.objects.select_related(assignment_field)
                    .filter(pk=self.pk)
                    .first()
                )
                if current is None:
                    raise CoordinatorNotFound()
                occupant: SurveyAssignment = getattr(current, assignment_field)
                if occupant.surveyor_id == assignment.surveyor_id:
                    self.refresh_from_db()
                    return False
                occupant_contact = getattr(current, contact_field) or {}
                logger.warning(
                    'Rejected %s slot fill on dual assignment %s: held by assignment %s',
                    organization,
                    self.pk,
                    occupant.pk,
                )
                raise SlotConflict(
                    organization,
                    existing_assignment_id=occupant.pk,
                    existing_surveyor_id=occupant.surveyor_id,
                    existing_surveyor_name=occupant_contact.get('name'),
                )

            self.append_event(
                ASSIGNED_EVENTS[organization],
                performed_by=performed_by,
                organization=organization,
                details=f"{organization} surveyor {snapshot.get('name') or assignment.surveyor_id} assigned",
                metadata={'surveyor_id': assignment.surveyor_id, 'assignment_id': assignment.pk},
            )

        self.refresh_from_db()
        logger.info(
            'Filled %s slot on dual assignment %s with assignment %s (%s)',
            organization,
            self.pk,
            assignment.pk,
            self.assignment_status,
        )
        return True

    def exchange_partner_contacts(self) -> None:
        if not self.is_both_assigned():
            return
        SurveyAssignment.objects.filter(pk=self.ammc_assignment_id).update(partner_contact=self.nia_contact)
        SurveyAssignment.objects.filter(pk=self.nia_assignment_id).update(partner_contact=self.ammc_contact)

    # Reports

    def report_submitted(self, organization: str, report_id: str, submitted_by: User | None = None) -> int:
        validate_organization(organization)
        assignment_field = self.SLOT_FIELDS[organization][0]
        now = timezone.now()
        with transaction.atomic():
            # Row lock: concurrent reports on one coordinator run one after the other.
            current = DualAssignment.objects.select_for_update().filter(pk=self.pk).first()
            if current is None:
                raise CoordinatorNotFound()
            if not current.is_slot_filled(organization):
                raise InvalidRequest(
                    {'organization': _('No %(organization)s surveyor is assigned to this policy.')
                     % {'organization': organization}}
                )
            self.append_event(
                REPORT_EVENTS[organization],
                performed_by=submitted_by,
                organization=organization,
                details=f'{organization} survey report submitted',
                metadata={'report_id': str(report_id)},
            )
            SurveyAssignment.objects.filter(
                pk=getattr(current, f'{assignment_field}_id'),
                status__in=SurveyAssignment.ACTIVE_STATUSES,
            ).update(
                status=SurveyAssignment.STATUS_COMPLETED,
                report_id=str(report_id),
                completed_at=now,
                updated_at=now,
            )
            DualAssignment.objects.filter(pk=self.pk).update(user_notified=False, updated_at=now)

            self.refresh_from_db()
            completion = self.completion_status
            if completion == COMPLETION_FULL:
                self.policy.advance_status(PolicyRequest.STATUS_ASSIGNED, PolicyRequest.STATUS_SURVEYED)

        logger.info(
            'Recorded %s report %s on dual assignment %s (completion %s%%)',
            organization,
            report_id,
            self.pk,
            completion,
        )
        return completion

    # Admin edits

    def update_schedule(self, changes: dict[str, Any]) -> None:
        unknown = set(changes) - set(self.SCHEDULE_FIELDS)
        if unknown:
            raise InvalidRequest(
                {field: _('This field cannot be changed.') for field in sorted(unknown)}
            )
        now = timezone.now()
        for field in ('ammc_deadline', 'nia_deadline', 'overall_deadline'):
            value = changes.get(field)
            if value is not None and value <= now:
                raise InvalidRequest({field: _('Deadline must be in the future.')})
        if not changes:
            return
        for field, value in changes.items():
            setattr(self, field, value)
        self.save(update_fields=[*changes.keys(), 'updated_at'])

    # Conflicts

    def flag_conflict(self, details: str, performed_by: User | None = None) -> 'TimelineEvent':
        entry = self.append_event(
            EVENT_CONFLICT_DETECTED,
            performed_by=performed_by,
            details=details,
        )
        logger.warning('Conflict flagged on dual assignment %s: %s', self.pk, details)
        return entry

    def resolve_conflict(self, details: str, performed_by: User | None = None) -> 'TimelineEvent':
        if not self.has_open_conflict:
            raise InvalidRequest({'action': _('There is no open conflict to resolve.')})
        return self.append_event(
            EVENT_CONFLICT_RESOLVED,
            performed_by=performed_by,
            details=details,
        )

    # Merge hand-off

    def claim_for_merge(self) -> bool:
        if not self.is_both_reports_submitted():
            return False
        now = timezone.now()
        claimed = DualAssignment.objects.filter(
            pk=self.pk,
            processing_status=PROCESSING_PENDING,
            merged_report_id__isnull=True,
        ).update(
            processing_status=PROCESSING_PROCESSING,
            processing_started_at=now,
            processing_error='',
            updated_at=now,
        )
        self.refresh_from_db()
        if claimed:
            logger.info('Dual assignment %s claimed for report merge', self.pk)
        return bool(claimed)

    def mark_merged(self, merged_report_id: str, performed_by: User | None = None) -> None:
        now = timezone.now()
        with transaction.atomic():
            updated = DualAssignment.objects.filter(
                pk=self.pk,
                processing_status=PROCESSING_PROCESSING,
            ).update(
                processing_status=PROCESSING_COMPLETED,
                merged_report_id=str(merged_report_id),
                completed_at=now,
                updated_at=now,
            )
            if not updated:
                raise InvalidRequest(
                    {'processing_status': _('Only a claimed dual assignment can be marked as merged.')}
                )
            self.append_event(
                EVENT_REPORTS_MERGED,
                performed_by=performed_by,
                details='Survey reports merged',
                metadata={'merged_report_id': str(merged_report_id)},
            )
            self.append_event(EVENT_COMPLETED, performed_by=performed_by, details='Dual survey completed')
        self.refresh_from_db()
        self.policy.advance_status(PolicyRequest.STATUS_SURVEYED, PolicyRequest.STATUS_COMPLETED)

    def mark_merge_failed(self, error: str) -> None:
        now = timezone.now()
        updated = DualAssignment.objects.filter(
            pk=self.pk,
            processing_status=PROCESSING_PROCESSING,
        ).update(
            processing_status=PROCESSING_FAILED,
            processing_failed_at=now,
            processing_error=error,
            updated_at=now,
        )
        if not updated:
            raise InvalidRequest(
                {'processing_status': _('Only a claimed dual assignment can be marked as failed.')}
            )
        logger.error('Report merge failed for dual assignment %s: %s', self.pk, error)
        self.refresh_from_db()

    def reset_merge(self) -> None:
        DualAssignment.objects.filter(pk=self.pk, processing_status=PROCESSING_FAILED).update(
            processing_status=PROCESSING_PENDING,
            updated_at=timezone.now(),
        )
        self.refresh_from_db()


class TimelineEvent(models.Model):
    coordinator = models.ForeignKey(
        DualAssignment,
        on_delete=models.CASCADE,
        related_name='timeline',
    )
    event = models.CharField(max_length=32, choices=EVENT_CHOICES)
    timestamp = models.DateTimeField(default=timezone.now)
    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name='+',
        null=True,
        blank=True,
    )
    organization = models.CharField(max_length=8, choices=TIMELINE_ORGANIZATION_CHOICES, default=ORG_SYSTEM)
    details = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ('id',)
        indexes = [models.Index(fields=('coordinator', 'event'), name='dual_survey_timeline_event_idx')]

    def __str__(self) -> str:
        return f"{self.event} @ {self.timestamp:%Y-%m-%d %H:%M}"

    def save(self, *args, **kwargs) -> None:
        if self.pk is not None:
            raise InvalidRequest(_('Timeline entries are append-only.'))
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise InvalidRequest(_('Timeline entries are append-only.'))
