"""
CategoryWeightLearner: online, bounded learning of per-user category affinity.
"""
import logging

from django.db import transaction

from feedback.dtos import CategoryWeight
from feedback.stores import CategoryWeightStore

logger = logging.getLogger(__name__)


class CategoryWeightLearner:
    """
    Nudges a (user, category) weight by a fixed step per rating once a
    cold-start threshold of feedback has been collected.

    - first feedback: weight 1.0, count 1
    - feedback 2..MIN_THRESHOLD: count only
    - afterwards: +STEP for rating >= 4, -STEP for rating <= 2, 3 is neutral
    - weight always clamped to [MIN_WEIGHT, MAX_WEIGHT]
    """

    NEUTRAL_WEIGHT = 1.0
    MIN_THRESHOLD = 3
    STEP = 0.1
    MIN_WEIGHT = 0.5
    MAX_WEIGHT = 2.0

    def __init__(self, weight_store: CategoryWeightStore, min_threshold: int = 3, step: float = 0.1):
        self.weight_store = weight_store
        self.MIN_THRESHOLD = min_threshold
        self.STEP = step

    def rating_delta(self, rating: int) -> float:
        if rating >= 4:
            return self.STEP
        if rating <= 2:
            return -self.STEP
        return 0.0

    def clamp(self, weight: float) -> float:
        return max(self.MIN_WEIGHT, min(self.MAX_WEIGHT, weight))

    def update_category_weight(self, user_id: str, category: str, rating: int) -> CategoryWeight:
        with transaction.atomic():
            existing = self.weight_store.get(user_id, category, for_update=True)

            if existing is None:
                created = self.weight_store.create(user_id, category, self.NEUTRAL_WEIGHT, 1)
                if created is not None:
                    return created
                # A concurrent first feedback inserted the row; count on top of it
                existing = self.weight_store.get(user_id, category, for_update=True)

            feedback_count = existing.feedback_count + 1
            if feedback_count <= self.MIN_THRESHOLD:
                # Cold start: collect evidence before moving the weight
                return self.weight_store.upsert(user_id, category, existing.weight, feedback_count)

            new_weight = self.clamp(existing.weight + self.rating_delta(rating))
            updated = self.weight_store.upsert(user_id, category, new_weight, feedback_count)

        if new_weight != existing.weight:
            logger.debug(
                f"Category weight for user={user_id}, category={category}: "
                f"{existing.weight:.2f} -> {new_weight:.2f} after {feedback_count} feedbacks"
            )
        return updated
