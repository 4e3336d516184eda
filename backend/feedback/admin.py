"""
Django admin configuration for feedback models.
"""
from django.contrib import admin
from feedback.models import PlannerFeedback, UserFeedbackSignal, UserCategoryWeight


@admin.register(PlannerFeedback)
class PlannerFeedbackAdmin(admin.ModelAdmin):
    list_display = ['id', 'user_id', 'entity_id', 'feedback_value', 'created_at']
    list_filter = ['created_at']
    search_fields = ['user_id', 'entity_id']
    readonly_fields = ['id', 'created_at', 'updated_at']


@admin.register(UserFeedbackSignal)
class UserFeedbackSignalAdmin(admin.ModelAdmin):
    list_display = ['user_id', 'trust_score', 'positive_count', 'negative_count', 'neutral_count', 'version', 'updated_at']
    search_fields = ['user_id']
    readonly_fields = ['id', 'version', 'updated_at']


@admin.register(UserCategoryWeight)
class UserCategoryWeightAdmin(admin.ModelAdmin):
    list_display = ['user_id', 'category', 'weight', 'feedback_count', 'version', 'updated_at']
    list_filter = ['category']
    search_fields = ['user_id', 'category']
    readonly_fields = ['id', 'version', 'updated_at']
