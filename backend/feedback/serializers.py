"""
Serializers for the feedback module.
"""
from rest_framework import serializers
from feedback.models import UserFeedbackSignal, UserCategoryWeight


class UserFeedbackSignalSerializer(serializers.ModelSerializer):
    class Meta:
        model = UserFeedbackSignal
        fields = ['user_id', 'trust_score', 'positive_count', 'negative_count', 'neutral_count', 'version', 'updated_at']
        read_only_fields = fields


class UserCategoryWeightSerializer(serializers.ModelSerializer):
    class Meta:
        model = UserCategoryWeight
        fields = ['user_id', 'category', 'weight', 'feedback_count', 'version', 'updated_at']
        read_only_fields = fields


class FeedbackSubmissionSerializer(serializers.Serializer):
    """Boundary validation for a new rating"""
    user_id = serializers.CharField(max_length=64)
    entity_id = serializers.CharField(max_length=64)
    rating = serializers.IntegerField(min_value=1, max_value=5)
    category = serializers.CharField(max_length=100, required=False)
    categories = serializers.DictField(
        child=serializers.IntegerField(min_value=1, max_value=5),
        required=False,
        allow_empty=True
    )


class TripCandidateSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=64)
    base_score = serializers.FloatField()
    category = serializers.CharField(max_length=100, required=False, allow_null=True)


class RankTripsRequestSerializer(serializers.Serializer):
    user_id = serializers.CharField(max_length=64)
    trips = TripCandidateSerializer(many=True)


class ComputeScoreRequestSerializer(serializers.Serializer):
    user_id = serializers.CharField(max_length=64)
    base_score = serializers.FloatField()
    category = serializers.CharField(max_length=100, required=False, allow_null=True)


class RankedTripSerializer(serializers.Serializer):
    """Serializer for RankedTrip DTO"""
    id = serializers.CharField()
    base_score = serializers.FloatField()
    category = serializers.CharField(allow_null=True)
    final_score = serializers.FloatField()


class WeightAdjustmentSerializer(serializers.Serializer):
    """Serializer for WeightAdjustment DTO"""
    base_score = serializers.FloatField()
    feedback_weight = serializers.FloatField()
    adjusted_score = serializers.FloatField()
    meets_threshold = serializers.BooleanField()
    reason = serializers.CharField()
