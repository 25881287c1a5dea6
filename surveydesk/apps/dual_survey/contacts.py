from __future__ import annotations

from typing import Any

from .constants import NOT_PROVIDED
from .models import SurveyorProfile


def build_contact_snapshot(profile: SurveyorProfile) -> dict[str, Any]:
    """
    Point-in-time copy of a surveyor's contact details for a coordinator slot.

    The snapshot is embedded as-is and is not refreshed when the profile
    changes later.
    """
    user = profile.user
    return {
        'surveyor_id': user.pk,
        'name': profile.display_name,
        'email': user.email or NOT_PROVIDED,
        'phone': profile.phone or NOT_PROVIDED,
        'license_number': profile.license_number or NOT_PROVIDED,
        'address': profile.address or NOT_PROVIDED,
        'emergency_contact': profile.emergency_contact or NOT_PROVIDED,
        'specialization': list(profile.specialization or []),
        'experience': profile.experience or 0,
        'rating': profile.rating or 0,
        'organization': profile.organization,
    }
