"""
URL configuration for the feedback module.
"""
from django.urls import path
from feedback.views import (
    SubmitFeedbackView, ComputeScoreView, RankTripsView,
    AggregationView, WeightAdjustmentView, UserLearnedStateView,
    UserBiasView, BiasScanView, BiasStatsView,
    UserValidationView, SystemValidationView
)

app_name = 'feedback'

urlpatterns = [
    path('submit/', SubmitFeedbackView.as_view(), name='submit_feedback'),
    path('score/', ComputeScoreView.as_view(), name='compute_score'),
    path('rank/', RankTripsView.as_view(), name='rank_trips'),
    path('aggregation/', AggregationView.as_view(), name='aggregation'),
    path('adjustment/', WeightAdjustmentView.as_view(), name='weight_adjustment'),
    path('users/<str:user_id>/state/', UserLearnedStateView.as_view(), name='user_state'),
    path('bias/scan/', BiasScanView.as_view(), name='bias_scan'),
    path('bias/stats/', BiasStatsView.as_view(), name='bias_stats'),
    path('bias/<str:user_id>/', UserBiasView.as_view(), name='user_bias'),
    path('validation/run/', SystemValidationView.as_view(), name='system_validation'),
    path('validation/<str:user_id>/', UserValidationView.as_view(), name='user_validation'),
]
