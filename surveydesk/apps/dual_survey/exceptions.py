from __future__ import annotations

from typing import Any

from django.utils.translation import gettext_lazy as _
from rest_framework import status
from rest_framework.exceptions import APIException, NotFound, ValidationError


class CoordinatorNotFound(NotFound):
    default_detail = _('Dual assignment not found.')
    default_code = 'coordinator_not_found'


class SurveyorNotFound(NotFound):
    default_detail = _('Surveyor not found.')
    default_code = 'surveyor_not_found'


class InvalidRequest(ValidationError):
    default_code = 'invalid_request'


class DualSurveyConflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = _('The request conflicts with the current assignment state.')
    default_code = 'conflict'

    def __init__(self, detail: Any = None, code: str | None = None, **context: Any):
        super().__init__(detail, code)
        self.context = context
        self.detail = {'detail': self.detail, **context}


class CoordinatorExists(DualSurveyConflict):
    default_detail = _('Dual assignment already exists for this policy.')
    default_code = 'coordinator_exists'

    def __init__(self, existing_coordinator_id: int):
        super().__init__(existing_coordinator_id=existing_coordinator_id)
        self.existing_coordinator_id = existing_coordinator_id


class SlotConflict(DualSurveyConflict):
    default_code = 'slot_conflict'

    def __init__(
        self,
        organization: str,
        *,
        existing_assignment_id: int | None,
        existing_surveyor_id: int | None,
        existing_surveyor_name: str | None,
    ):
        message = _('%(organization)s surveyor already assigned to %(name)s') % {
            'organization': organization,
            'name': existing_surveyor_name or _('another surveyor'),
        }
        super().__init__(
            message,
            organization=organization,
            existing_assignment_id=existing_assignment_id,
            existing_surveyor_id=existing_surveyor_id,
            existing_surveyor_name=existing_surveyor_name,
        )
        self.organization = organization
        self.existing_assignment_id = existing_assignment_id
        self.existing_surveyor_id = existing_surveyor_id


class SurveyorUnavailable(DualSurveyConflict):
    default_detail = _('Surveyor cannot take this assignment.')
    default_code = 'surveyor_unavailable'
