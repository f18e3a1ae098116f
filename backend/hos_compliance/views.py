"""
HOS Compliance API Views.

Provides REST API endpoints for driver availability, dispatch checks,
violations and daily summaries. Integrates with the HOS engine service
for business logic processing.
"""

import logging

from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import AllowAny

from common.exceptions import HOSEngineError
from common.responses import engine_error_response, error_response
from .models import Violation
from .serializers import (
    AvailabilityQuerySerializer,
    AvailabilitySerializer,
    DailySummaryQuerySerializer,
    DailySummarySerializer,
    DriverHOSProfileSerializer,
    ProfileUpdateRequestSerializer,
    RequiredMinutesQuerySerializer,
    ViolationSerializer,
)
from .services.hos_engine import HOSEngineService
from .services.rolling_window_calculator import HOSCalculationError

logger = logging.getLogger(__name__)


class DriverHOSViewSet(viewsets.ViewSet):
    """
    ViewSet for one driver's Hours of Service state.

    Provides availability, can-drive checks, daily summaries, the
    unacknowledged violation list and profile settings.
    """

    permission_classes = [AllowAny]

    def get_engine(self):
        return HOSEngineService()

    @action(detail=False, methods=['get'])
    def availability(self, request, driver_id=None):
        """
        Remaining drive, duty and cycle minutes for a driver.

        Query Parameters:
            as_of (datetime): Evaluation instant (default: now)
        """
        query = AvailabilityQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return error_response('Invalid query parameters', query.errors)

        try:
            availability = self.get_engine().get_availability(
                driver_id, query.validated_data.get('as_of')
            )
            return Response(AvailabilitySerializer(availability).data)

        except HOSEngineError as e:
            return engine_error_response(e)
        except HOSCalculationError as e:
            logger.error(f"Error computing availability for driver {driver_id}: {str(e)}")
            return error_response(
                'Failed to compute availability', str(e),
                status.HTTP_500_INTERNAL_SERVER_ERROR
            )

    @action(detail=False, methods=['get'])
    def can_drive(self, request, driver_id=None):
        """
        Whether a driver can take a job needing required_mins of driving.

        Query Parameters:
            required_mins (int): Minutes of driving needed
            as_of (datetime): Evaluation instant (default: now)
        """
        query = RequiredMinutesQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return error_response('Invalid query parameters', query.errors)

        required_mins = query.validated_data['required_mins']
        try:
            availability = self.get_engine().get_availability(
                driver_id, query.validated_data.get('as_of')
            )
            return Response({
                'driver_id': str(driver_id),
                'required_mins': required_mins,
                'can_drive': availability.can_drive(required_mins),
                'availability': AvailabilitySerializer(availability).data,
            })

        except HOSEngineError as e:
            return engine_error_response(e)
        except HOSCalculationError as e:
            logger.error(f"Error checking availability for driver {driver_id}: {str(e)}")
            return error_response(
                'Failed to compute availability', str(e),
                status.HTTP_500_INTERNAL_SERVER_ERROR
            )

    @action(detail=False, methods=['get'])
    def daily_summary(self, request, driver_id=None):
        """
        Totals per duty status for one home-terminal day.

        Query Parameters:
            date (YYYY-MM-DD): Day to summarize
        """
        query = DailySummaryQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return error_response('Invalid query parameters', query.errors)

        try:
            summary = self.get_engine().get_daily_summary(driver_id, query.validated_data['date'])
            return Response(DailySummarySerializer(summary).data)

        except ValueError as e:
            return error_response('Invalid date', str(e))
        except HOSEngineError as e:
            return engine_error_response(e)
        except HOSCalculationError as e:
            logger.error(f"Error building daily summary for driver {driver_id}: {str(e)}")
            return error_response(
                'Failed to build daily summary', str(e),
                status.HTTP_500_INTERNAL_SERVER_ERROR
            )

    @action(detail=False, methods=['get'])
    def violations(self, request, driver_id=None):
        """Unacknowledged violations for a driver, oldest first."""
        try:
            violations = self.get_engine().list_unacknowledged(driver_id)
            return Response({
                'driver_id': str(driver_id),
                'count': len(violations),
                'violations': ViolationSerializer(violations, many=True).data,
            })

        except HOSEngineError as e:
            return engine_error_response(e)

    @action(detail=False, methods=['get', 'patch'])
    def profile(self, request, driver_id=None):
        """
        Read or change a driver's cycle rule and home terminal timezone.

        Changing either refreshes the driver's availability.
        """
        engine = self.get_engine()
        try:
            if request.method == 'GET':
                profile = engine.compliance_store.get_profile(driver_id)
                return Response(DriverHOSProfileSerializer(profile).data)

            serializer = ProfileUpdateRequestSerializer(data=request.data)
            if not serializer.is_valid():
                return error_response('Invalid profile update', serializer.errors)

            profile = engine.update_profile(driver_id, **serializer.validated_data)

            logger.info(f"Updated HOS profile for driver {driver_id}")
            return Response(DriverHOSProfileSerializer(profile).data)

        except HOSEngineError as e:
            return engine_error_response(e)

    @action(detail=False, methods=['get'])
    def available(self, request):
        """
        Drivers whose cached availability covers required_mins.

        Query Parameters:
            required_mins (int): Minutes of driving needed
        """
        query = RequiredMinutesQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return error_response('Invalid query parameters', query.errors)

        required_mins = query.validated_data['required_mins']
        try:
            profiles = self.get_engine().get_available_drivers(required_mins)
            return Response({
                'required_mins': required_mins,
                'count': len(profiles),
                'drivers': DriverHOSProfileSerializer(profiles, many=True).data,
            })

        except HOSEngineError as e:
            return engine_error_response(e)


class ViolationViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for recorded violations.

    Violations cannot be edited or deleted; acknowledgement is the only
    change allowed.
    """

    queryset = Violation.objects.prefetch_related('annotations').all()
    serializer_class = ViolationSerializer
    permission_classes = [AllowAny]

    def get_queryset(self):
        """Filter queryset based on query parameters."""
        queryset = super().get_queryset()

        driver_id = self.request.query_params.get('driver_id')
        if driver_id:
            queryset = queryset.filter(driver_id=driver_id)

        rule_code = self.request.query_params.get('rule_code')
        if rule_code:
            queryset = queryset.filter(rule_code=rule_code)

        acknowledged = self.request.query_params.get('acknowledged')
        if acknowledged is not None:
            queryset = queryset.filter(acknowledged=acknowledged.lower() == 'true')

        return queryset.order_by('-window_start')

    @action(detail=True, methods=['post'])
    def acknowledge(self, request, pk=None):
        """Mark a violation acknowledged. Repeating the call has no further effect."""
        try:
            violation = HOSEngineService().acknowledge(pk)
            return Response(ViolationSerializer(violation).data)

        except Violation.DoesNotExist:
            return error_response(
                'Violation not found', status_code=status.HTTP_404_NOT_FOUND
            )
        except HOSEngineError as e:
            return engine_error_response(e)
