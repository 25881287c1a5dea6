from __future__ import annotations

import logging
from typing import Any

from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction
from django.utils import timezone
from django.utils.module_loading import import_string

from .conf import get_setting
from .constants import NOT_PROVIDED, ORG_AMMC, ORG_NIA, partner_of
from .models import DualAssignment

logger = logging.getLogger(__name__)

EVENT_SURVEYOR_ASSIGNED = 'surveyor_assigned'
EVENT_BOTH_ASSIGNED = 'both_assigned'
EVENT_REPORT_SUBMITTED = 'report_submitted'


class NotificationGateway:
    """Delivery hooks invoked after coordinator changes have committed."""

    def surveyor_assigned(self, coordinator: DualAssignment, *, organization: str) -> None:
        raise NotImplementedError

    def both_assigned(self, coordinator: DualAssignment) -> None:
        raise NotImplementedError

    def report_submitted(self, coordinator: DualAssignment, *, organization: str, report_id: str) -> None:
        raise NotImplementedError


def _contact_email(contact: dict[str, Any] | None) -> str | None:
    if not contact:
        return None
    email = contact.get('email')
    if not email or email == NOT_PROVIDED:
        return None
    return email


def _describe_contact(contact: dict[str, Any]) -> str:
    lines = [
        f"Name: {contact.get('name', NOT_PROVIDED)}",
        f"Organization: {contact.get('organization', NOT_PROVIDED)}",
        f"Email: {contact.get('email', NOT_PROVIDED)}",
        f"Phone: {contact.get('phone', NOT_PROVIDED)}",
        f"License: {contact.get('license_number', NOT_PROVIDED)}",
    ]
    return '\n'.join(lines)


class EmailNotificationGateway(NotificationGateway):
    def _send(self, subject: str, body: str, recipients: list[str]) -> None:
        if not recipients:
            return
        from_email = get_setting('NOTIFICATION_FROM_EMAIL') or settings.DEFAULT_FROM_EMAIL
        send_mail(subject, body, from_email, recipients, fail_silently=False)

    def surveyor_assigned(self, coordinator: DualAssignment, *, organization: str) -> None:
        contact = coordinator.get_surveyor_contacts()[organization.lower()]
        email = _contact_email(contact)
        if email is None:
            return
        lines = [
            f"You have been assigned as the {organization} surveyor for policy "
            f"{coordinator.policy.reference}.",
            f"Priority: {coordinator.priority}",
        ]
        if coordinator.overall_deadline:
            lines.append(f"Deadline: {coordinator.overall_deadline:%Y-%m-%d}")
        body = '\n'.join(lines)
        self._send(f'New survey assignment: {coordinator.policy.reference}', body, [email])

    def both_assigned(self, coordinator: DualAssignment) -> None:
        contacts = coordinator.get_surveyor_contacts()
        for organization in (ORG_AMMC, ORG_NIA):
            own = contacts[organization.lower()]
            partner = contacts[partner_of(organization).lower()]
            email = _contact_email(own)
            if email is None or not partner:
                continue
            body = (
                f"Both surveyors are now assigned to policy {coordinator.policy.reference}.\n"
                f"Your partner surveyor:\n{_describe_contact(partner)}"
            )
            self._send(f'Partner surveyor assigned: {coordinator.policy.reference}', body, [email])

    def report_submitted(self, coordinator: DualAssignment, *, organization: str, report_id: str) -> None:
        partner = coordinator.get_surveyor_contacts()[partner_of(organization).lower()]
        partner_email = _contact_email(partner)
        if partner_email:
            body = (
                f"The {organization} surveyor submitted report {report_id} for policy "
                f"{coordinator.policy.reference}.\n{coordinator.progress_display}"
            )
            self._send(f'{organization} report submitted: {coordinator.policy.reference}', body, [partner_email])
        owner_email = coordinator.policy.owner.email
        if owner_email and coordinator.is_both_reports_submitted():
            body = (
                f"Both survey reports for policy {coordinator.policy.reference} have been submitted "
                f"and are queued for review."
            )
            self._send(f'Survey complete: {coordinator.policy.reference}', body, [owner_email])


def get_gateway() -> NotificationGateway:
    gateway_class = import_string(get_setting('NOTIFICATION_GATEWAY'))
    return gateway_class()


def _delivery_flags(event: str, payload: dict[str, Any]) -> dict[str, bool]:
    if event == EVENT_SURVEYOR_ASSIGNED:
        return {f"{payload['organization'].lower()}_notified": True}
    if event == EVENT_BOTH_ASSIGNED:
        return {'ammc_notified': True, 'nia_notified': True}
    return {'user_notified': True}


def dispatch(event: str, coordinator_id: int, **payload: Any) -> bool:
    coordinator = (
        DualAssignment.objects.select_related('policy', 'policy__owner')
        .filter(pk=coordinator_id)
        .first()
    )
    if coordinator is None:
        logger.warning('Skipping %s notification: dual assignment %s not found', event, coordinator_id)
        return False
    try:
        gateway = get_gateway()
        getattr(gateway, event)(coordinator, **payload)
    except Exception:  # noqa: BLE001
        logger.exception('Failed to deliver %s notification for dual assignment %s', event, coordinator_id)
        return False
    DualAssignment.objects.filter(pk=coordinator_id).update(
        last_notification_sent=timezone.now(),
        **_delivery_flags(event, payload),
    )
    return True


def schedule(event: str, coordinator_id: int, **payload: Any) -> None:
    transaction.on_commit(lambda: dispatch(event, coordinator_id, **payload))
