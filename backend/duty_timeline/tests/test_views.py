"""
Tests for Duty Timeline API Views.
"""

import uuid
from datetime import timedelta

from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework import status

from duty_timeline.models import DutyInterval


class TestStatusChangeEndpoint(TestCase):
    """Test status-change ingestion endpoint."""

    def setUp(self):
        self.client = APIClient()
        self.driver_id = uuid.uuid4()
        self.url = f'/api/timeline/drivers/{self.driver_id}/status-changes/'
        self.start = timezone.now() - timedelta(hours=4)

    def test_report_status_change(self):
        """Test that a valid status change returns 201 with the interval."""
        response = self.client.post(self.url, {
            'status': 'DRIVING',
            'at_time': self.start.isoformat(),
            'location': 'Port of Oakland Berth 57',
        }, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['status'] == 'DRIVING'
        assert response.data['source'] == 'ELD'
        assert response.data['end_time'] is None
        assert response.data['location'] == 'Port of Oakland Berth 57'

    def test_invalid_status_rejected(self):
        response = self.client.post(self.url, {
            'status': 'YARD_MOVE',
            'at_time': self.start.isoformat(),
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'error' in response.data
        assert 'status' in response.data['details']

    def test_end_time_only_for_inferred_events(self):
        response = self.client.post(self.url, {
            'status': 'OFF_DUTY',
            'at_time': self.start.isoformat(),
            'end_time': (self.start + timedelta(hours=1)).isoformat(),
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_out_of_order_event_returns_conflict(self):
        """Test that a live event older than the current status returns 409."""
        self.client.post(self.url, {
            'status': 'DRIVING',
            'at_time': self.start.isoformat(),
        }, format='json')

        response = self.client.post(self.url, {
            'status': 'ON_DUTY_NOT_DRIVING',
            'at_time': (self.start - timedelta(hours=1)).isoformat(),
        }, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error'] == 'Status change is out of order'


class TestTimelineEndpoints(TestCase):
    """Test timeline reconstruction and amendment endpoints."""

    def setUp(self):
        self.client = APIClient()
        self.driver_id = uuid.uuid4()
        self.start = timezone.now() - timedelta(hours=6)
        status_url = f'/api/timeline/drivers/{self.driver_id}/status-changes/'

        self.client.post(status_url, {
            'status': 'OFF_DUTY', 'at_time': self.start.isoformat(),
        }, format='json')
        self.client.post(status_url, {
            'status': 'DRIVING', 'at_time': (self.start + timedelta(hours=1)).isoformat(),
        }, format='json')

        self.off_duty = DutyInterval.objects.get(driver_id=self.driver_id, status='OFF_DUTY')
        self.driving = DutyInterval.objects.get(driver_id=self.driver_id, status='DRIVING')

    def test_reconstruct_timeline(self):
        response = self.client.get(f'/api/timeline/drivers/{self.driver_id}/intervals/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 2
        assert [i['status'] for i in response.data['intervals']] == ['OFF_DUTY', 'DRIVING']

    def test_amend_interval(self):
        """Test that an amendment supersedes the interval and returns 201."""
        response = self.client.post(f'/api/timeline/intervals/{self.driving.id}/amend/', {
            'new_status': 'ON_DUTY_NOT_DRIVING',
            'new_start': self.driving.start_time.isoformat(),
            'new_end': None,
            'edit_reason': 'Driver was loading, not driving',
        }, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['status'] == 'ON_DUTY_NOT_DRIVING'
        assert response.data['supersedes_id'] == str(self.driving.id)
        self.driving.refresh_from_db()
        assert self.driving.is_active is False

    def test_amend_without_reason_rejected(self):
        response = self.client.post(f'/api/timeline/intervals/{self.driving.id}/amend/', {
            'new_status': 'ON_DUTY_NOT_DRIVING',
            'new_start': self.driving.start_time.isoformat(),
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error'] == 'An edit reason is required'

    def test_amend_unknown_interval(self):
        response = self.client.post(f'/api/timeline/intervals/{uuid.uuid4()}/amend/', {
            'new_status': 'OFF_DUTY',
            'new_start': self.start.isoformat(),
            'edit_reason': 'Correction',
        }, format='json')

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_conflicting_amendment_returns_conflict(self):
        response = self.client.post(f'/api/timeline/intervals/{self.off_duty.id}/amend/', {
            'new_status': 'OFF_DUTY',
            'new_start': self.off_duty.start_time.isoformat(),
            'new_end': (self.off_duty.start_time + timedelta(hours=2)).isoformat(),
            'edit_reason': 'Left later',
        }, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_batch_amendment(self):
        """Test that neighbouring intervals are amended together."""
        boundary = self.start + timedelta(minutes=75)
        response = self.client.post(f'/api/timeline/drivers/{self.driver_id}/amendments/', {
            'edit_reason': 'ELD clock drift',
            'amendments': [
                {
                    'original_id': str(self.off_duty.id),
                    'new_status': 'OFF_DUTY',
                    'new_start': self.off_duty.start_time.isoformat(),
                    'new_end': boundary.isoformat(),
                },
                {
                    'original_id': str(self.driving.id),
                    'new_status': 'DRIVING',
                    'new_start': boundary.isoformat(),
                },
            ],
        }, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert len(response.data) == 2
        assert DutyInterval.objects.filter(
            driver_id=self.driver_id, superseded_at__isnull=True
        ).count() == 2

    def test_interval_history(self):
        self.client.post(f'/api/timeline/intervals/{self.driving.id}/amend/', {
            'new_status': 'ON_DUTY_NOT_DRIVING',
            'new_start': self.driving.start_time.isoformat(),
            'edit_reason': 'Driver was loading, not driving',
        }, format='json')

        response = self.client.get(f'/api/timeline/intervals/{self.driving.id}/history/')

        assert response.status_code == status.HTTP_200_OK
        assert [i['status'] for i in response.data] == ['DRIVING', 'ON_DUTY_NOT_DRIVING']

    def test_consistency_report(self):
        response = self.client.get(f'/api/timeline/drivers/{self.driver_id}/consistency/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['gaps'] == []
        assert response.data['overlaps'] == []
        assert len(response.data['open_intervals']) == 1

    def test_list_active_intervals(self):
        response = self.client.get(
            '/api/timeline/intervals/', {'driver_id': str(self.driver_id), 'active': 'true'}
        )

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data) == 2
