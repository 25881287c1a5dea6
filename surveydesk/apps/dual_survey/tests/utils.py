from __future__ import annotations

from typing import Any

from django.contrib.auth import get_user_model

from surveydesk.apps.dual_survey.models import DualAssignment, PolicyRequest, SurveyorProfile
from surveydesk.apps.dual_survey.notifications import NotificationGateway

User = get_user_model()

RECORDING_GATEWAY = 'surveydesk.apps.dual_survey.tests.utils.RecordingGateway'

TEST_DUAL_SURVEY = {
    'AUTO_CREATE_ON_SUBMIT': False,
    'NOTIFICATION_GATEWAY': RECORDING_GATEWAY,
}


class RecordingGateway(NotificationGateway):
    calls: list[tuple[str, int, dict[str, Any]]] = []
    fail = False

    @classmethod
    def reset(cls) -> None:
        cls.calls = []
        cls.fail = False

    def _record(self, event: str, coordinator: DualAssignment, **payload: Any) -> None:
        if RecordingGateway.fail:
            raise RuntimeError('gateway unavailable')
        RecordingGateway.calls.append((event, coordinator.pk, payload))

    def surveyor_assigned(self, coordinator, *, organization):
        self._record('surveyor_assigned', coordinator, organization=organization)

    def both_assigned(self, coordinator):
        self._record('both_assigned', coordinator)

    def report_submitted(self, coordinator, *, organization, report_id):
        self._record('report_submitted', coordinator, organization=organization, report_id=report_id)


def create_user(username: str, **extra: Any):
    return User.objects.create_user(username, f'{username}@example.com', 'pass1234', **extra)


def create_surveyor(username: str, organization: str, **profile_fields: Any):
    user = create_user(username, first_name=username.title(), last_name='Surveyor')
    profile_fields.setdefault('phone', '+2348000000000')
    profile_fields.setdefault('license_number', f'LIC-{username.upper()}')
    SurveyorProfile.objects.create(user=user, organization=organization, **profile_fields)
    return user


def create_policy(owner, reference: str = 'POL-001', status: str = PolicyRequest.STATUS_SUBMITTED) -> PolicyRequest:
    return PolicyRequest.objects.create(
        reference=reference,
        owner=owner,
        property_address='12 Marina Road, Lagos',
        status=status,
    )
