"""
Duty Timeline API Views.

Provides REST API endpoints for status-change ingestion, timeline
reconstruction and audited amendments. Business logic lives in the
HOS engine service; these views only validate input and map errors.
"""

import logging

from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import AllowAny

from common.exceptions import HOSEngineError
from common.responses import engine_error_response, error_response
from hos_compliance.services.hos_engine import HOSEngineService
from .models import DutyInterval
from .serializers import (
    AmendmentItemSerializer,
    AmendmentRequestSerializer,
    BatchAmendmentRequestSerializer,
    DutyIntervalSerializer,
    StatusChangeRequestSerializer,
    TimelineQuerySerializer,
)
from .services.duty_status_timeline import DutyTimelineError

logger = logging.getLogger(__name__)


class DriverTimelineViewSet(viewsets.ViewSet):
    """
    ViewSet for one driver's duty timeline.

    Provides status-change ingestion, batch amendments, timeline
    reconstruction and a consistency check.
    """

    permission_classes = [AllowAny]

    def get_engine(self):
        return HOSEngineService()

    @action(detail=False, methods=['post'])
    def report_status_change(self, request, driver_id=None):
        """
        Record a duty status change for a driver.

        Body:
            status, at_time, source (ELD | MANUAL | INFERRED), optional
            end_time for inferred gap fills and optional location fields
        """
        serializer = StatusChangeRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response('Invalid status change', serializer.errors)

        data = serializer.validated_data
        try:
            interval = self.get_engine().report_status_change(
                driver_id,
                data['status'],
                data['at_time'],
                source=data['source'],
                metadata=serializer.get_metadata(),
                end_time=data.get('end_time'),
            )

            logger.info(
                f"Recorded {data['status']} at {data['at_time'].isoformat()} for driver {driver_id}"
            )
            return Response(DutyIntervalSerializer(interval).data, status=status.HTTP_201_CREATED)

        except HOSEngineError as e:
            return engine_error_response(e)
        except ValueError as e:
            return error_response('Invalid status change', str(e))
        except DutyTimelineError as e:
            logger.error(f"Error recording status change for driver {driver_id}: {str(e)}")
            return error_response(
                'Failed to record status change', str(e),
                status.HTTP_500_INTERNAL_SERVER_ERROR
            )

    @action(detail=False, methods=['get'])
    def intervals(self, request, driver_id=None):
        """
        Reconstruct the driver's timeline.

        Query Parameters:
            as_of (datetime): Return the timeline as it was recorded at
                this instant (default: now)
        """
        query = TimelineQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return error_response('Invalid query parameters', query.errors)

        try:
            timeline = self.get_engine().reconstruct_timeline(
                driver_id, query.validated_data.get('as_of')
            )
            intervals = list(timeline)
            return Response({
                'driver_id': str(driver_id),
                'as_of': timeline.as_of.isoformat(),
                'count': len(intervals),
                'intervals': DutyIntervalSerializer(
                    intervals, many=True, context={'as_of': timeline.as_of}
                ).data,
            })

        except HOSEngineError as e:
            return engine_error_response(e)

    @action(detail=False, methods=['post'])
    def amend_batch(self, request, driver_id=None):
        """Amend several neighbouring intervals as one change."""
        serializer = BatchAmendmentRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response('Invalid amendment', serializer.errors)

        try:
            replacements = self.get_engine().amend_status_changes(
                driver_id,
                serializer.get_amendments(),
                serializer.validated_data['edit_reason'],
            )
            return Response(
                DutyIntervalSerializer(replacements, many=True).data,
                status=status.HTTP_201_CREATED
            )

        except DutyInterval.DoesNotExist:
            return error_response(
                'Interval not found', status_code=status.HTTP_404_NOT_FOUND
            )
        except HOSEngineError as e:
            return engine_error_response(e)
        except ValueError as e:
            return error_response('Invalid amendment', str(e))
        except DutyTimelineError as e:
            logger.error(f"Error amending timeline for driver {driver_id}: {str(e)}")
            return error_response(
                'Failed to amend timeline', str(e),
                status.HTTP_500_INTERNAL_SERVER_ERROR
            )

    @action(detail=False, methods=['get'])
    def consistency(self, request, driver_id=None):
        """Report gaps, overlaps and open intervals in the active timeline."""
        try:
            report = self.get_engine().timeline.verify_timeline(driver_id)
            return Response({'driver_id': str(driver_id), **report})

        except HOSEngineError as e:
            return engine_error_response(e)


class DutyIntervalViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for individual duty intervals.

    Intervals are never edited in place; corrections go through the
    ``amend`` action, which supersedes the interval.
    """

    queryset = DutyInterval.objects.all()
    serializer_class = DutyIntervalSerializer
    permission_classes = [AllowAny]

    def get_queryset(self):
        """Filter queryset based on query parameters."""
        queryset = super().get_queryset()

        driver_id = self.request.query_params.get('driver_id')
        if driver_id:
            queryset = queryset.filter(driver_id=driver_id)

        active = self.request.query_params.get('active')
        if active is not None:
            queryset = queryset.filter(superseded_at__isnull=active.lower() == 'true')

        return queryset.order_by('driver_id', 'start_time', 'created_at')

    @action(detail=True, methods=['post'])
    def amend(self, request, pk=None):
        """
        Replace this interval with a corrected one.

        Body:
            new_status, new_start, new_end (null keeps it open),
            edit_reason, optional source and location fields
        """
        serializer = AmendmentRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response('Invalid amendment', serializer.errors)

        data = serializer.validated_data
        try:
            replacement = HOSEngineService().amend_status_change(
                pk,
                data['new_status'],
                data['new_start'],
                data.get('new_end'),
                data['edit_reason'],
                source=data['source'],
                metadata=AmendmentItemSerializer.metadata_from(data),
            )
            return Response(
                DutyIntervalSerializer(replacement).data, status=status.HTTP_201_CREATED
            )

        except DutyInterval.DoesNotExist:
            return error_response(
                'Interval not found', status_code=status.HTTP_404_NOT_FOUND
            )
        except HOSEngineError as e:
            return engine_error_response(e)
        except ValueError as e:
            return error_response('Invalid amendment', str(e))
        except DutyTimelineError as e:
            logger.error(f"Error amending interval {pk}: {str(e)}")
            return error_response(
                'Failed to amend interval', str(e),
                status.HTTP_500_INTERNAL_SERVER_ERROR
            )

    @action(detail=True, methods=['get'])
    def history(self, request, pk=None):
        """Every version of this interval, oldest first."""
        try:
            chain = HOSEngineService().amendments.get_amendment_history(pk)
            return Response(DutyIntervalSerializer(chain, many=True).data)

        except DutyInterval.DoesNotExist:
            return error_response(
                'Interval not found', status_code=status.HTTP_404_NOT_FOUND
            )
        except HOSEngineError as e:
            return engine_error_response(e)
