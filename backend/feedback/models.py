import uuid
from django.db import models
from django.utils import timezone


class PlannerFeedback(models.Model):
    """
    Raw rating left by a user for a trip, destination or category key.
    One row per (user_id, entity_id); re-rating replaces feedback_value in place.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=64, db_index=True)
    entity_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Trip, destination or category key the rating refers to"
    )
    feedback_value = models.JSONField(
        default=dict,
        help_text="Either a bare rating or {'rating': int, 'categories': {name: sub_rating}}"
    )
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'feedback_planner_feedback'
        constraints = [
            models.UniqueConstraint(fields=['user_id', 'entity_id'], name='unique_user_entity_feedback'),
        ]
        indexes = [
            models.Index(fields=['user_id', 'created_at'], name='feedback_pl_user_id_7c1f0a_idx'),
        ]

    def __str__(self):
        return f"{self.user_id} -> {self.entity_id}: {self.feedback_value}"


class UserFeedbackSignal(models.Model):
    """
    Per-user trust signal derived from decayed feedback.
    Created lazily on the first submission and rewritten on every recalculation.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=64, unique=True)
    trust_score = models.FloatField(default=0.5, help_text="Bayesian-smoothed trust in [0, 1]")
    positive_count = models.IntegerField(default=0)
    negative_count = models.IntegerField(default=0)
    neutral_count = models.IntegerField(default=0)
    version = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'feedback_user_signal'

    def __str__(self):
        return f"Trust {self.trust_score:.3f} for {self.user_id}"


class UserCategoryWeight(models.Model):
    """
    Learned affinity multiplier of a user for a category, bounded to [0.5, 2.0].
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=64)
    category = models.CharField(max_length=100)
    weight = models.FloatField(default=1.0)
    feedback_count = models.PositiveIntegerField(default=0)
    version = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'feedback_user_category_weight'
        constraints = [
            models.UniqueConstraint(fields=['user_id', 'category'], name='unique_user_category_weight'),
        ]
        indexes = [
            models.Index(fields=['weight'], name='feedback_us_weight_3e9b2d_idx'),
        ]

    def __str__(self):
        return f"{self.user_id} / {self.category}: {self.weight:.2f}"
