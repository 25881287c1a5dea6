from __future__ import annotations

from typing import Any

from django.conf import settings

DEFAULTS: dict[str, Any] = {
    'DEFAULT_OVERALL_DEADLINE_DAYS': 7,
    'DEFAULT_ASSIGNMENT_DEADLINE_DAYS': 5,
    'MAX_ACTIVE_ASSIGNMENTS': 10,
    'NOTIFICATION_GATEWAY': 'surveydesk.apps.dual_survey.notifications.EmailNotificationGateway',
    'NOTIFICATION_FROM_EMAIL': None,
    'AUTO_CREATE_ON_SUBMIT': True,
}


def get_setting(name: str) -> Any:
    if name not in DEFAULTS:
        raise KeyError(f'Unknown dual survey setting: {name}')
    overrides = getattr(settings, 'DUAL_SURVEY', None) or {}
    return overrides.get(name, DEFAULTS[name])
