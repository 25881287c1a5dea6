from __future__ import annotations

from django.db.models.signals import post_save
from django.dispatch import receiver

from .conf import get_setting
from .models import DualAssignment, PolicyRequest


@receiver(post_save, sender=PolicyRequest)
def ensure_policy_coordinator(sender, instance: PolicyRequest, created: bool, **kwargs):
    if instance.status != PolicyRequest.STATUS_SUBMITTED:
        return
    if not get_setting('AUTO_CREATE_ON_SUBMIT'):
        return
    if DualAssignment.objects.filter(policy=instance).exists():
        return
    DualAssignment.objects.ensure_for_policy(instance, performed_by=instance.owner)
