"""
Tests for HOS Compliance API Views.
"""

import uuid
from datetime import timedelta

from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework import status

from hos_compliance.services import HOSEngineService


class TestApiRootEndpoint(TestCase):
    """Test API root endpoint."""

    def setUp(self):
        self.client = APIClient()

    def test_api_root_returns_endpoints(self):
        """Test that API root lists available endpoints."""
        response = self.client.get('/api/')

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert 'timeline' in body['endpoints']
        assert 'hos_compliance' in body['endpoints']


class TestAvailabilityEndpoints(TestCase):
    """Test availability and dispatch endpoints."""

    def setUp(self):
        self.client = APIClient()
        self.engine = HOSEngineService()
        self.driver_id = uuid.uuid4()
        self.engine.report_status_change(
            self.driver_id, 'DRIVING', timezone.now() - timedelta(hours=3)
        )

    def test_availability(self):
        response = self.client.get(f'/api/hos/drivers/{self.driver_id}/availability/')

        assert response.status_code == status.HTTP_200_OK
        assert 475 <= response.data['drive_mins'] <= 480
        assert response.data['cycle_rule'] == 'USA_70_8'
        assert set(response.data['display']) == {'drive', 'duty', 'cycle'}

    def test_availability_as_of(self):
        as_of = timezone.now() - timedelta(hours=2)
        response = self.client.get(
            f'/api/hos/drivers/{self.driver_id}/availability/', {'as_of': as_of.isoformat()}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['drive_used_mins'] in (59, 60)

    def test_can_drive(self):
        response = self.client.get(
            f'/api/hos/drivers/{self.driver_id}/can-drive/', {'required_mins': 120}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['can_drive'] is True
        assert response.data['required_mins'] == 120

    def test_can_drive_requires_minutes(self):
        """Test that a missing required_mins parameter returns 400."""
        response = self.client.get(f'/api/hos/drivers/{self.driver_id}/can-drive/')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'required_mins' in response.data['details']

    def test_available_drivers(self):
        rested = uuid.uuid4()
        self.engine.report_status_change(rested, 'OFF_DUTY', timezone.now() - timedelta(hours=1))

        response = self.client.get('/api/hos/drivers/available/', {'required_mins': 600})

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1
        assert response.data['drivers'][0]['driver_id'] == str(rested)

    def test_daily_summary_requires_date(self):
        response = self.client.get(f'/api/hos/drivers/{self.driver_id}/daily-summary/')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_daily_summary_for_today(self):
        today = timezone.now().astimezone(
            self.engine.compliance_store.get_profile(self.driver_id).home_tz
        ).date()
        response = self.client.get(
            f'/api/hos/drivers/{self.driver_id}/daily-summary/', {'date': today.isoformat()}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['date'] == today.isoformat()
        assert 'availability' in response.data

    def test_profile_update(self):
        url = f'/api/hos/drivers/{self.driver_id}/profile/'

        response = self.client.patch(url, {'cycle_rule': 'USA_60_7'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['cycle_rule'] == 'USA_60_7'
        assert self.client.get(url).data['cycle_rule'] == 'USA_60_7'

    def test_profile_update_requires_a_field(self):
        response = self.client.patch(
            f'/api/hos/drivers/{self.driver_id}/profile/', {}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_profile_update_rejects_unknown_timezone(self):
        response = self.client.patch(
            f'/api/hos/drivers/{self.driver_id}/profile/',
            {'home_terminal_timezone': 'Mars/Olympus'},
            format='json',
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestViolationEndpoints(TestCase):
    """Test violation listing and acknowledgement."""

    def setUp(self):
        self.client = APIClient()
        self.engine = HOSEngineService()
        self.driver_id = uuid.uuid4()
        start = timezone.now() - timedelta(hours=13)
        self.engine.report_status_change(self.driver_id, 'DRIVING', start)
        self.engine.report_status_change(self.driver_id, 'OFF_DUTY', start + timedelta(hours=12))

    def test_unacknowledged_violations(self):
        response = self.client.get(f'/api/hos/drivers/{self.driver_id}/violations/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 2
        codes = [v['rule_code'] for v in response.data['violations']]
        assert codes == ['BREAK_30MIN', 'DRIVE_11HR']
        assert response.data['violations'][1]['severity'] == 'CRITICAL'

    def test_acknowledge_violation(self):
        """Test that acknowledging removes the violation from the open list."""
        violation = self.engine.list_unacknowledged(self.driver_id)[0]

        response = self.client.post(f'/api/hos/violations/{violation.id}/acknowledge/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['acknowledged'] is True
        listing = self.client.get(f'/api/hos/drivers/{self.driver_id}/violations/')
        assert listing.data['count'] == 1

    def test_acknowledge_unknown_violation(self):
        response = self.client.post(f'/api/hos/violations/{uuid.uuid4()}/acknowledge/')

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert 'error' in response.data

    def test_filter_violations_by_rule(self):
        response = self.client.get(
            '/api/hos/violations/', {'driver_id': str(self.driver_id), 'rule_code': 'DRIVE_11HR'}
        )

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data) == 1
        assert response.data[0]['rule_code'] == 'DRIVE_11HR'
