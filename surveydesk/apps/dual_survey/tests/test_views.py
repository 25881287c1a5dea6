import csv
import io
from datetime import timedelta

from django.test import override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from surveydesk.apps.dual_survey.constants import ORG_AMMC, ORG_NIA
from surveydesk.apps.dual_survey.models import DualAssignment, SurveyAssignment
from surveydesk.apps.dual_survey.services import assign_surveyor

from .utils import TEST_DUAL_SURVEY, RecordingGateway, create_policy, create_surveyor, create_user


@override_settings(DUAL_SURVEY=TEST_DUAL_SURVEY)
class DualAssignmentAPITests(APITestCase):
    def setUp(self):
        RecordingGateway.reset()
        self.admin = create_user('admin', is_staff=True)
        self.owner = create_user('owner')
        self.surveyor_a = create_surveyor('ada', ORG_AMMC)
        self.surveyor_b = create_surveyor('bola', ORG_NIA)
        self.surveyor_c = create_surveyor('chidi', ORG_NIA)
        self.policy = create_policy(self.owner)
        self.client.force_authenticate(self.admin)

    def _create(self, **payload):
        return self.client.post(
            reverse('dual-assignments-list'),
            {'policy': self.policy.pk, **payload},
            format='json',
        )

    def _assign(self, coordinator_id, organization, surveyor):
        return self.client.post(
            reverse('dual-assignments-assign', args=[coordinator_id]),
            {'organization': organization, 'surveyor': surveyor.pk},
            format='json',
        )

    def _report(self, coordinator_id, organization, report_id):
        return self.client.post(
            reverse('dual-assignments-report-submitted', args=[coordinator_id]),
            {'organization': organization, 'report_id': report_id},
            format='json',
        )

    def test_create_then_duplicate(self):
        response = self._create(priority='high')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data['assignment_status'], 'unassigned')
        self.assertEqual(response.data['completion_status'], 0)
        self.assertEqual(response.data['priority'], 'high')
        coordinator_id = response.data['id']

        duplicate = self._create()
        self.assertEqual(duplicate.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(duplicate.data['existing_coordinator_id'], coordinator_id)
        self.assertEqual(DualAssignment.objects.count(), 1)

    def test_create_rejects_past_deadline_and_draft_policy(self):
        past = (timezone.now() - timedelta(days=1)).isoformat()
        response = self._create(overall_deadline=past)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('overall_deadline', response.data)

        draft = create_policy(self.owner, reference='POL-DRAFT', status='draft')
        response = self.client.post(reverse('dual-assignments-list'), {'policy': draft.pk}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_admin_only_actions_require_staff(self):
        coordinator = DualAssignment.objects.create_for_policy(self.policy)
        self.client.force_authenticate(self.owner)

        self.assertEqual(self._create().status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.get(reverse('dual-assignments-export'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(None)
        response = self.client.get(reverse('dual-assignments-detail', args=[coordinator.pk]))
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_assign_flow_and_conflict(self):
        coordinator = DualAssignment.objects.create_for_policy(self.policy)

        response = self._assign(coordinator.pk, ORG_AMMC, self.surveyor_a)
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertFalse(response.data['both_assigned'])
        self.assertEqual(response.data['dual_assignment']['assignment_status'], 'partially_assigned')
        self.assertEqual(response.data['assignment']['organization'], ORG_AMMC)

        repeat = self._assign(coordinator.pk, ORG_AMMC, self.surveyor_a)
        self.assertEqual(repeat.status_code, status.HTTP_200_OK)
        self.assertEqual(repeat.data['assignment']['id'], response.data['assignment']['id'])

        response = self._assign(coordinator.pk, ORG_NIA, self.surveyor_b)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['both_assigned'])
        nia_assignment_id = response.data['assignment']['id']

        conflict = self._assign(coordinator.pk, ORG_NIA, self.surveyor_c)
        self.assertEqual(conflict.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(conflict.data['existing_assignment_id'], nia_assignment_id)
        self.assertEqual(conflict.data['existing_surveyor_id'], self.surveyor_b.pk)
        self.assertIn('NIA surveyor already assigned', str(conflict.data['detail']))

    def test_assign_validation(self):
        coordinator = DualAssignment.objects.create_for_policy(self.policy)
        response = self._assign(coordinator.pk, 'NAICOM', self.surveyor_a)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self._assign(coordinator.pk, ORG_AMMC, self.surveyor_b)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        response = self._assign(999999, ORG_AMMC, self.surveyor_a)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_assign_by_policy_creates_coordinator(self):
        url = reverse('dual-assignments-assign-for-policy', kwargs={'policy_id': self.policy.pk})
        response = self.client.post(url, {'organization': ORG_NIA, 'surveyor': self.surveyor_b.pk}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['dual_assignment']['policy'], self.policy.pk)

        lookup = self.client.get(reverse('dual-assignments-by-policy', kwargs={'policy_id': self.policy.pk}))
        self.assertEqual(lookup.status_code, status.HTTP_200_OK)
        self.assertEqual(lookup.data['id'], response.data['dual_assignment']['id'])

        missing = self.client.get(reverse('dual-assignments-by-policy', kwargs={'policy_id': 424242}))
        self.assertEqual(missing.status_code, status.HTTP_404_NOT_FOUND)

    def test_report_submission_by_assigned_surveyor(self):
        coordinator = DualAssignment.objects.create_for_policy(self.policy)
        assign_surveyor(coordinator, ORG_AMMC, self.surveyor_a, performed_by=self.admin)

        response = self._report(coordinator.pk, ORG_NIA, 'RPT-N1')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        assign_surveyor(coordinator, ORG_NIA, self.surveyor_b, performed_by=self.admin)

        self.client.force_authenticate(self.surveyor_b)
        response = self._report(coordinator.pk, ORG_AMMC, 'RPT-A1')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.surveyor_c)
        response = self._report(coordinator.pk, ORG_NIA, 'RPT-N1')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        self.client.force_authenticate(self.surveyor_a)
        response = self._report(coordinator.pk, ORG_AMMC, 'RPT-A1')
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['completion_status'], 50)
        self.assertEqual(response.data['assignment_status'], 'fully_assigned')
        self.assertFalse(response.data['both_reports_submitted'])

        self.client.force_authenticate(self.surveyor_b)
        response = self._report(coordinator.pk, ORG_NIA, 'RPT-N1')
        self.assertEqual(response.data['completion_status'], 100)
        self.assertTrue(response.data['both_reports_submitted'])

    def test_list_filters(self):
        partial = DualAssignment.objects.create_for_policy(self.policy)
        assign_surveyor(partial, ORG_AMMC, self.surveyor_a, performed_by=self.admin)
        other_policy = create_policy(self.owner, reference='POL-777')
        empty = DualAssignment.objects.create_for_policy(other_policy, priority='urgent')

        url = reverse('dual-assignments-list')
        response = self.client.get(url, {'assignment_status': 'partially_assigned'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data['results']], [partial.pk])

        response = self.client.get(url, {'priority': 'urgent'})
        self.assertEqual([row['id'] for row in response.data['results']], [empty.pk])

        response = self.client.get(url, {'q': '777'})
        self.assertEqual([row['id'] for row in response.data['results']], [empty.pk])

        response = self.client.get(url, {'completion_status': '0'})
        self.assertEqual(response.data['count'], 2)

        response = self.client.get(url, {'completion_status': '42'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        DualAssignment.objects.filter(pk=empty.pk).update(overall_deadline=timezone.now() - timedelta(days=1))
        response = self.client.get(url, {'overdue': 'true'})
        self.assertEqual([row['id'] for row in response.data['results']], [empty.pk])
        self.assertTrue(response.data['results'][0]['is_overdue'])

    def test_surveyor_only_sees_own_coordinators(self):
        mine = DualAssignment.objects.create_for_policy(self.policy)
        assign_surveyor(mine, ORG_AMMC, self.surveyor_a, performed_by=self.admin)
        DualAssignment.objects.create_for_policy(create_policy(self.owner, reference='POL-OTHER'))

        self.client.force_authenticate(self.surveyor_a)
        response = self.client.get(reverse('dual-assignments-list'))
        self.assertEqual([row['id'] for row in response.data['results']], [mine.pk])

    def test_patch_schedule_fields(self):
        coordinator = DualAssignment.objects.create_for_policy(self.policy)
        url = reverse('dual-assignments-detail', args=[coordinator.pk])

        response = self.client.patch(url, {'ammc_assignment': None}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('ammc_assignment', response.data)

        deadline = timezone.now() + timedelta(days=14)
        response = self.client.patch(
            url,
            {'priority': 'urgent', 'nia_deadline': deadline.isoformat()},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['priority'], 'urgent')
        coordinator.refresh_from_db()
        self.assertEqual(coordinator.nia_deadline, deadline)

        self.client.force_authenticate(self.owner)
        response = self.client.patch(url, {'priority': 'low'}, format='json')
        self.assertIn(response.status_code, (status.HTTP_403_FORBIDDEN, status.HTTP_404_NOT_FOUND))

    def test_contacts_and_timeline(self):
        coordinator = DualAssignment.objects.create_for_policy(self.policy, performed_by=self.admin)
        assign_surveyor(coordinator, ORG_AMMC, self.surveyor_a, performed_by=self.admin)

        response = self.client.get(reverse('dual-assignments-contacts', args=[coordinator.pk]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['ammc']['name'], 'Ada Surveyor')
        self.assertIsNone(response.data['nia'])

        response = self.client.get(reverse('dual-assignments-timeline', args=[coordinator.pk]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['event'] for row in response.data], ['created', 'ammc_assigned'])
        self.assertEqual(response.data[1]['organization'], ORG_AMMC)
        self.assertEqual(response.data[1]['performed_by_username'], 'admin')
        self.assertEqual(response.data[1]['metadata']['surveyor_id'], self.surveyor_a.pk)

    def test_conflict_flag_and_resolve(self):
        coordinator = DualAssignment.objects.create_for_policy(self.policy)
        url = reverse('dual-assignments-conflicts', args=[coordinator.pk])

        response = self.client.post(url, {'action': 'resolve', 'details': 'none open'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(url, {'action': 'flag', 'details': 'Valuations disagree'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['has_open_conflict'])

        response = self.client.post(url, {'action': 'resolve', 'details': 'Settled'}, format='json')
        self.assertFalse(response.data['has_open_conflict'])

    def test_export_csv(self):
        coordinator = DualAssignment.objects.create_for_policy(self.policy)
        assign_surveyor(coordinator, ORG_AMMC, self.surveyor_a, performed_by=self.admin)

        response = self.client.get(reverse('dual-assignments-export'), {'file_type': 'csv'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'text/csv')
        content = b''.join(response.streaming_content).decode('utf-8')
        rows = list(csv.reader(io.StringIO(content)))
        self.assertEqual(rows[0][:3], ['id', 'policy_reference', 'assignment_status'])
        self.assertEqual(rows[1][:3], [str(coordinator.pk), 'POL-001', 'partially_assigned'])

    def test_export_xlsx(self):
        DualAssignment.objects.create_for_policy(self.policy)
        response = self.client.get(reverse('dual-assignments-export'), {'file_type': 'xlsx'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            response['Content-Type'],
            'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        )
        self.assertTrue(response.content.startswith(b'PK'))

        response = self.client.get(reverse('dual-assignments-export'), {'file_type': 'pdf'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


@override_settings(DUAL_SURVEY=TEST_DUAL_SURVEY)
class SurveyAssignmentAPITests(APITestCase):
    def setUp(self):
        self.admin = create_user('admin', is_staff=True)
        self.owner = create_user('owner')
        self.surveyor_a = create_surveyor('ada', ORG_AMMC)
        self.surveyor_b = create_surveyor('bola', ORG_NIA)
        self.policy = create_policy(self.owner)
        self.coordinator = DualAssignment.objects.create_for_policy(self.policy)
        _, self.assignment_a = assign_surveyor(self.coordinator, ORG_AMMC, self.surveyor_a, performed_by=self.admin)
        _, self.assignment_b = assign_surveyor(self.coordinator, ORG_NIA, self.surveyor_b, performed_by=self.admin)

    def test_surveyor_lists_own_assignments(self):
        self.client.force_authenticate(self.surveyor_a)
        response = self.client.get(reverse('survey-assignments-list'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data['results']], [self.assignment_a.pk])
        self.assertEqual(
            response.data['results'][0]['partner_contact']['surveyor_id'],
            self.surveyor_b.pk,
        )

        self.client.force_authenticate(self.admin)
        response = self.client.get(reverse('survey-assignments-list'))
        self.assertEqual(response.data['count'], 2)

    def test_accept_start_and_submit(self):
        self.client.force_authenticate(self.surveyor_a)

        response = self.client.post(reverse('survey-assignments-accept', args=[self.assignment_a.pk]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], SurveyAssignment.STATUS_ACCEPTED)

        response = self.client.post(reverse('survey-assignments-start', args=[self.assignment_a.pk]))
        self.assertEqual(response.data['status'], SurveyAssignment.STATUS_IN_PROGRESS)

        response = self.client.post(reverse('survey-assignments-reject', args=[self.assignment_a.pk]))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(
            reverse('survey-assignments-submit-report', args=[self.assignment_a.pk]),
            {'report_id': 'RPT-A1'},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['assignment']['status'], SurveyAssignment.STATUS_COMPLETED)
        self.assertEqual(response.data['completion_status'], 50)
        self.assertFalse(response.data['both_reports_submitted'])

    def test_surveyor_cannot_touch_other_assignment(self):
        self.client.force_authenticate(self.surveyor_a)
        response = self.client.post(reverse('survey-assignments-accept', args=[self.assignment_b.pk]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
