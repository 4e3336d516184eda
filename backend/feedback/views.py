"""
Views for the feedback module.
"""
import logging
import math
from dataclasses import asdict

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from feedback.dtos import TripCandidate
from feedback.exceptions import FeedbackDependencyError, FeedbackInputError
from feedback.feedback_service import build_engine
from feedback.models import UserCategoryWeight, UserFeedbackSignal
from feedback.serializers import (
    ComputeScoreRequestSerializer, FeedbackSubmissionSerializer, RankedTripSerializer,
    RankTripsRequestSerializer, UserCategoryWeightSerializer, UserFeedbackSignalSerializer,
    WeightAdjustmentSerializer,
)

logger = logging.getLogger(__name__)


def _dependency_error(exc):
    logger.error(f"Feedback store unavailable: {exc}")
    return Response(
        {'error': 'Feedback store unavailable, try again later'},
        status=status.HTTP_503_SERVICE_UNAVAILABLE
    )


class SubmitFeedbackView(APIView):
    """
    API endpoint for submitting a rating.

    POST /api/feedback/submit/
    Body:
    {
        "user_id": "u-1",
        "entity_id": "trip uuid",
        "rating": 5,
        "category": "culture",
        "categories": {"food": 4, "transport": 2}
    }
    """

    def post(self, request):
        serializer = FeedbackSubmissionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'error': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            record = build_engine().feedback_service.submit_feedback(
                user_id=data['user_id'],
                entity_id=data['entity_id'],
                rating=data['rating'],
                category=data.get('category'),
                categories=data.get('categories'),
            )
        except FeedbackInputError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        except FeedbackDependencyError as e:
            return _dependency_error(e)

        return Response(asdict(record), status=status.HTTP_201_CREATED)


class ComputeScoreView(APIView):
    """
    Multiplicative trust-weighted score for a single candidate.

    POST /api/feedback/score/
    Body: {"user_id": "u-1", "base_score": 0.8, "category": "culture"}
    """

    def post(self, request):
        serializer = ComputeScoreRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'error': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            final_score = build_engine().ranking.compute_score(
                data['user_id'], data['base_score'], data.get('category')
            )
        except FeedbackDependencyError as e:
            return _dependency_error(e)

        return Response({'final_score': final_score}, status=status.HTTP_200_OK)


class RankTripsView(APIView):
    """
    Re-rank a list of trips for a user.

    POST /api/feedback/rank/
    Body:
    {
        "user_id": "u-1",
        "trips": [{"id": "t-1", "base_score": 0.9, "category": "beach"}]
    }
    """

    def post(self, request):
        serializer = RankTripsRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'error': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        candidates = [
            TripCandidate(id=trip['id'], base_score=trip['base_score'], category=trip.get('category'))
            for trip in data['trips']
        ]
        try:
            ranked = build_engine().ranking.rank_trips(data['user_id'], candidates)
        except FeedbackDependencyError as e:
            return _dependency_error(e)

        return Response(
            {'trips': RankedTripSerializer(ranked, many=True).data},
            status=status.HTTP_200_OK
        )


class AggregationView(APIView):
    """
    Cached feedback aggregation.

    GET /api/feedback/aggregation/?entity_id=...
    GET /api/feedback/aggregation/?destination=Kandy
    GET /api/feedback/aggregation/?category=food
    """

    def get(self, request):
        aggregator = build_engine().aggregator
        params = request.query_params

        if params.get('entity_id'):
            result = aggregator.aggregate_by_entity(params['entity_id'])
        elif params.get('destination'):
            result = aggregator.aggregate_by_destination(params['destination'])
        elif params.get('category'):
            result = aggregator.aggregate_by_category(params['category'])
        else:
            return Response(
                {'error': 'one of entity_id, destination or category is required'},
                status=status.HTTP_400_BAD_REQUEST
            )

        return Response(asdict(result), status=status.HTTP_200_OK)


class WeightAdjustmentView(APIView):
    """
    Additive feedback adjustment for a trip, destination or category.

    GET /api/feedback/adjustment/?entity_id=...&base_score=1.0
    """

    def get(self, request):
        params = request.query_params
        try:
            base_score = float(params.get('base_score', 1.0))
        except ValueError:
            base_score = None
        if base_score is None or not math.isfinite(base_score):
            return Response({'error': 'base_score must be a finite number'}, status=status.HTTP_400_BAD_REQUEST)

        adjuster = build_engine().weight_adjuster
        if params.get('entity_id'):
            adjustment = adjuster.calculate_trip_weight(params['entity_id'], base_score)
        elif params.get('destination'):
            adjustment = adjuster.calculate_destination_weight(params['destination'], base_score)
        elif params.get('category'):
            adjustment = adjuster.calculate_category_weight(params['category'], base_score)
        else:
            return Response(
                {'error': 'one of entity_id, destination or category is required'},
                status=status.HTTP_400_BAD_REQUEST
            )

        return Response(WeightAdjustmentSerializer(adjustment).data, status=status.HTTP_200_OK)


class UserLearnedStateView(APIView):
    """
    Stored trust signal and category weights of a user.

    GET /api/feedback/users/<user_id>/state/
    """

    def get(self, request, user_id):
        signal = UserFeedbackSignal.objects.filter(user_id=user_id).first()
        weights = UserCategoryWeight.objects.filter(user_id=user_id).order_by('category')

        return Response(
            {
                'signal': UserFeedbackSignalSerializer(signal).data if signal else None,
                'category_weights': UserCategoryWeightSerializer(weights, many=True).data,
            },
            status=status.HTTP_200_OK
        )


class UserBiasView(APIView):
    """
    GET /api/feedback/bias/<user_id>/
    """

    def get(self, request, user_id):
        try:
            report = build_engine().bias_monitor.detect_user_bias(user_id)
        except FeedbackDependencyError as e:
            return _dependency_error(e)
        return Response(asdict(report), status=status.HTTP_200_OK)


class BiasScanView(APIView):
    """
    Trigger a system-wide bias scan.

    POST /api/feedback/bias/scan/
    """

    def post(self, request):
        reports = build_engine().bias_monitor.run_system_bias_scan()
        return Response(
            {'flagged_users': [asdict(report) for report in reports]},
            status=status.HTTP_200_OK
        )


class BiasStatsView(APIView):
    """
    GET /api/feedback/bias/stats/
    """

    def get(self, request):
        return Response(build_engine().bias_monitor.get_bias_summary_stats(), status=status.HTTP_200_OK)


class UserValidationView(APIView):
    """
    GET /api/feedback/validation/<user_id>/
    """

    def get(self, request, user_id):
        try:
            result = build_engine().validator.validate_user_aggregation(user_id)
        except FeedbackDependencyError as e:
            return _dependency_error(e)
        return Response(asdict(result), status=status.HTTP_200_OK)


class SystemValidationView(APIView):
    """
    Trigger a system-wide aggregation audit.

    POST /api/feedback/validation/run/
    """

    def post(self, request):
        report = build_engine().validator.run_system_validation()
        return Response(asdict(report), status=status.HTTP_200_OK)
