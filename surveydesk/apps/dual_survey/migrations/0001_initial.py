# Generated manually for the dual survey module
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone

ORGANIZATION_CHOICES = [('AMMC', 'AMMC'), ('NIA', 'NIA')]
PRIORITY_CHOICES = [('low', 'Low'), ('medium', 'Medium'), ('high', 'High'), ('urgent', 'Urgent')]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='PolicyRequest',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reference', models.CharField(max_length=32, unique=True)),
                ('property_address', models.TextField(blank=True)),
                (
                    'status',
                    models.CharField(
                        choices=[
                            ('draft', 'Draft'),
                            ('submitted', 'Submitted'),
                            ('assigned', 'Assigned'),
                            ('surveyed', 'Surveyed'),
                            ('completed', 'Completed'),
                            ('rejected', 'Rejected'),
                        ],
                        default='draft',
                        max_length=16,
                    ),
                ),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                (
                    'owner',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name='policy_requests',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                'ordering': ('-created_at',),
                'indexes': [models.Index(fields=['status'], name='dual_survey_policy_status_idx')],
            },
        ),
        migrations.CreateModel(
            name='SurveyorProfile',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('organization', models.CharField(choices=ORGANIZATION_CHOICES, max_length=8)),
                (
                    'status',
                    models.CharField(
                        choices=[('active', 'Active'), ('inactive', 'Inactive'), ('suspended', 'Suspended')],
                        default='active',
                        max_length=16,
                    ),
                ),
                (
                    'availability',
                    models.CharField(
                        choices=[('available', 'Available'), ('busy', 'Busy'), ('on-leave', 'On leave')],
                        default='available',
                        max_length=16,
                    ),
                ),
                ('phone', models.CharField(blank=True, max_length=32)),
                ('license_number', models.CharField(blank=True, max_length=64)),
                ('address', models.TextField(blank=True)),
                ('emergency_contact', models.CharField(blank=True, max_length=128)),
                ('specialization', models.JSONField(blank=True, default=list)),
                ('experience', models.PositiveIntegerField(default=0)),
                ('rating', models.FloatField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                (
                    'user',
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='surveyor_profile',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                'indexes': [
                    models.Index(
                        fields=['organization', 'status', 'availability'],
                        name='dual_survey_surveyor_pool_idx',
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name='SurveyAssignment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('organization', models.CharField(choices=ORGANIZATION_CHOICES, max_length=8)),
                (
                    'status',
                    models.CharField(
                        choices=[
                            ('assigned', 'Assigned'),
                            ('accepted', 'Accepted'),
                            ('in-progress', 'In progress'),
                            ('completed', 'Completed'),
                            ('rejected', 'Rejected'),
                            ('cancelled', 'Cancelled'),
                        ],
                        default='assigned',
                        max_length=16,
                    ),
                ),
                ('priority', models.CharField(choices=PRIORITY_CHOICES, default='medium', max_length=8)),
                ('deadline', models.DateTimeField()),
                ('instructions', models.TextField(blank=True)),
                ('partner_contact', models.JSONField(blank=True, null=True)),
                ('report_id', models.CharField(blank=True, max_length=64)),
                ('assigned_at', models.DateTimeField(auto_now_add=True)),
                ('started_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                (
                    'assigned_by',
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name='+',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    'policy',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name='survey_assignments',
                        to='dual_survey.policyrequest',
                    ),
                ),
                (
                    'surveyor',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name='survey_assignments',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                'ordering': ('-assigned_at',),
            },
        ),
        migrations.CreateModel(
            name='DualAssignment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('ammc_contact', models.JSONField(blank=True, null=True)),
                ('nia_contact', models.JSONField(blank=True, null=True)),
                ('priority', models.CharField(choices=PRIORITY_CHOICES, default='medium', max_length=8)),
                ('ammc_deadline', models.DateTimeField(blank=True, null=True)),
                ('nia_deadline', models.DateTimeField(blank=True, null=True)),
                ('overall_deadline', models.DateTimeField(blank=True, null=True)),
                (
                    'processing_status',
                    models.CharField(
                        choices=[
                            ('pending', 'Pending'),
                            ('processing', 'Processing'),
                            ('completed', 'Completed'),
                            ('failed', 'Failed'),
                        ],
                        default='pending',
                        max_length=16,
                    ),
                ),
                ('processing_started_at', models.DateTimeField(blank=True, null=True)),
                ('processing_failed_at', models.DateTimeField(blank=True, null=True)),
                ('processing_error', models.TextField(blank=True)),
                ('merged_report_id', models.CharField(blank=True, max_length=64, null=True)),
                ('ammc_notified', models.BooleanField(default=False)),
                ('nia_notified', models.BooleanField(default=False)),
                ('user_notified', models.BooleanField(default=False)),
                ('last_notification_sent', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                (
                    'ammc_assignment',
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name='+',
                        to='dual_survey.surveyassignment',
                    ),
                ),
                (
                    'nia_assignment',
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name='+',
                        to='dual_survey.surveyassignment',
                    ),
                ),
                (
                    'policy',
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='dual_assignment',
                        to='dual_survey.policyrequest',
                    ),
                ),
            ],
            options={
                'ordering': ('-created_at',),
                'indexes': [
                    models.Index(fields=['processing_status'], name='dual_survey_da_processing_idx'),
                    models.Index(fields=['priority', 'overall_deadline'], name='dual_survey_da_deadline_idx'),
                ],
            },
        ),
        migrations.AddField(
            model_name='surveyassignment',
            name='dual_assignment',
            field=models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name='survey_assignments',
                to='dual_survey.dualassignment',
            ),
        ),
        migrations.AddIndex(
            model_name='surveyassignment',
            index=models.Index(fields=['surveyor', 'status'], name='dual_survey_sa_surveyor_idx'),
        ),
        migrations.AddIndex(
            model_name='surveyassignment',
            index=models.Index(fields=['policy', 'organization'], name='dual_survey_sa_policy_org_idx'),
        ),
        migrations.AddConstraint(
            model_name='surveyassignment',
            constraint=models.UniqueConstraint(
                condition=models.Q(dual_assignment__isnull=False),
                fields=('dual_assignment', 'organization', 'surveyor'),
                name='dual_survey_unique_slot_candidate',
            ),
        ),
        migrations.CreateModel(
            name='TimelineEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                (
                    'event',
                    models.CharField(
                        choices=[
                            ('created', 'Created'),
                            ('ammc_assigned', 'AMMC surveyor assigned'),
                            ('nia_assigned', 'NIA surveyor assigned'),
                            ('ammc_report_submitted', 'AMMC report submitted'),
                            ('nia_report_submitted', 'NIA report submitted'),
                            ('reports_merged', 'Reports merged'),
                            ('conflict_detected', 'Conflict detected'),
                            ('conflict_resolved', 'Conflict resolved'),
                            ('completed', 'Completed'),
                        ],
                        max_length=32,
                    ),
                ),
                ('timestamp', models.DateTimeField(default=django.utils.timezone.now)),
                (
                    'organization',
                    models.CharField(
                        choices=[('AMMC', 'AMMC'), ('NIA', 'NIA'), ('SYSTEM', 'System')],
                        default='SYSTEM',
                        max_length=8,
                    ),
                ),
                ('details', models.TextField(blank=True)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                (
                    'coordinator',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='timeline',
                        to='dual_survey.dualassignment',
                    ),
                ),
                (
                    'performed_by',
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name='+',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                'ordering': ('id',),
                'indexes': [models.Index(fields=['coordinator', 'event'], name='dual_survey_timeline_event_idx')],
            },
        ),
    ]
