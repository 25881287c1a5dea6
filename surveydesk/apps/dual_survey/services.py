from __future__ import annotations

import logging
from datetime import datetime, timedelta

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from . import notifications
from .conf import get_setting
from .contacts import build_contact_snapshot
from .exceptions import InvalidRequest, SlotConflict, SurveyorNotFound
from .models import (
    DualAssignment,
    PolicyRequest,
    SurveyAssignment,
    SurveyorProfile,
    validate_organization,
)

logger = logging.getLogger(__name__)

User = get_user_model()

ASSIGNABLE_POLICY_STATUSES = {
    PolicyRequest.STATUS_SUBMITTED,
    PolicyRequest.STATUS_ASSIGNED,
}


def _resolve_deadline(coordinator: DualAssignment, organization: str, deadline: datetime | None) -> datetime:
    now = timezone.now()
    if deadline is not None:
        if deadline <= now:
            raise InvalidRequest({'deadline': _('Deadline must be in the future.')})
        return deadline
    org_deadline = getattr(coordinator, f'{organization.lower()}_deadline')
    if org_deadline and org_deadline > now:
        return org_deadline
    return now + timedelta(days=get_setting('DEFAULT_ASSIGNMENT_DEADLINE_DAYS'))


def _get_profile(surveyor: User, organization: str) -> SurveyorProfile:
    try:
        profile = SurveyorProfile.objects.select_related('user').get(user=surveyor)
    except SurveyorProfile.DoesNotExist as exc:
        raise SurveyorNotFound(
            _('%(organization)s surveyor not found.') % {'organization': organization}
        ) from exc
    profile.ensure_can_take(organization)
    return profile


def assign_surveyor(
    coordinator: DualAssignment,
    organization: str,
    surveyor: User,
    *,
    performed_by: User | None,
    deadline: datetime | None = None,
    instructions: str = '',
    priority: str | None = None,
) -> tuple[DualAssignment, SurveyAssignment]:
    """
    Assign `surveyor` to the organization's slot on `coordinator`.

    Repeating the call with the surveyor already in the slot returns the
    existing assignment without writing anything, so retried requests are
    safe. The assignment record and the slot fill commit together: losing a
    race for the slot rolls back the record and raises `SlotConflict`.
    """
    validate_organization(organization)
    coordinator.refresh_from_db()

    occupant = coordinator.slot_assignment(organization)
    if occupant is not None:
        if occupant.surveyor_id == surveyor.pk:
            if occupant.status == SurveyAssignment.STATUS_REJECTED:
                raise InvalidRequest(
                    {'surveyor': _('This surveyor rejected the %(organization)s assignment.')
                     % {'organization': organization}}
                )
            occupant.reopen()
            return coordinator, occupant
        contact = coordinator.get_surveyor_contacts()[organization.lower()] or {}
        raise SlotConflict(
            organization,
            existing_assignment_id=occupant.pk,
            existing_surveyor_id=occupant.surveyor_id,
            existing_surveyor_name=contact.get('name'),
        )

    profile = _get_profile(surveyor, organization)
    resolved_deadline = _resolve_deadline(coordinator, organization, deadline)
    snapshot = build_contact_snapshot(profile)

    with transaction.atomic():
        assignment, _created = SurveyAssignment.objects.get_or_create(
            dual_assignment=coordinator,
            organization=organization,
            surveyor=surveyor,
            defaults={
                'policy': coordinator.policy,
                'assigned_by': performed_by,
                'deadline': resolved_deadline,
                'priority': priority or coordinator.priority,
                'instructions': instructions or '',
            },
        )
        filled = coordinator.fill_slot(
            organization,
            assignment=assignment,
            contact_snapshot=snapshot,
            performed_by=performed_by,
        )
        both_assigned = coordinator.is_both_assigned()
        if filled:
            if both_assigned:
                coordinator.exchange_partner_contacts()
                coordinator.policy.advance_status(
                    PolicyRequest.STATUS_SUBMITTED,
                    PolicyRequest.STATUS_ASSIGNED,
                )
            notifications.schedule(
                notifications.EVENT_SURVEYOR_ASSIGNED,
                coordinator.pk,
                organization=organization,
            )
            if both_assigned:
                notifications.schedule(notifications.EVENT_BOTH_ASSIGNED, coordinator.pk)

    return coordinator, coordinator.slot_assignment(organization)


def assign_surveyor_to_policy(
    policy: PolicyRequest,
    organization: str,
    surveyor: User,
    *,
    performed_by: User | None,
    **options,
) -> tuple[DualAssignment, SurveyAssignment]:
    if policy.status not in ASSIGNABLE_POLICY_STATUSES:
        raise InvalidRequest({'policy': _('Policy is not ready for surveyor assignment.')})
    coordinator = DualAssignment.objects.ensure_for_policy(policy, performed_by=performed_by)
    return assign_surveyor(coordinator, organization, surveyor, performed_by=performed_by, **options)


def record_report(
    coordinator: DualAssignment,
    organization: str,
    report_id: str,
    *,
    submitted_by: User | None,
) -> int:
    if not report_id:
        raise InvalidRequest({'report_id': _('Report identifier is required.')})
    completion = coordinator.report_submitted(organization, str(report_id), submitted_by)
    notifications.schedule(
        notifications.EVENT_REPORT_SUBMITTED,
        coordinator.pk,
        organization=organization,
        report_id=str(report_id),
    )
    return completion


def submit_survey_report(
    assignment: SurveyAssignment,
    report_id: str,
    *,
    submitted_by: User | None,
) -> DualAssignment | None:
    coordinator = assignment.submit_report(report_id, submitted_by)
    if coordinator is not None:
        notifications.schedule(
            notifications.EVENT_REPORT_SUBMITTED,
            coordinator.pk,
            organization=assignment.organization,
            report_id=str(report_id),
        )
    return coordinator
