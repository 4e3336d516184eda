"""
FeedbackService: write path of the engine. Validates a rating, stores it, and
synchronously refreshes the user's trust signal and category weight so that
the next ranking call already sees the new state.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from feedback.aggregation_service import FeedbackAggregator
from feedback.aggregation_validator import AggregationValidator
from feedback.bias_monitor import BiasMonitor
from feedback.category_learner import CategoryWeightLearner
from feedback.dtos import FeedbackRecord, TrustSignal
from feedback.exceptions import FeedbackInputError
from feedback.ranking_service import FeedbackWeightAdjuster, TrustWeightedRanking
from feedback.stores import (
    DjangoCategoryWeightStore, DjangoFeedbackStore, DjangoTripDirectory, DjangoTrustStore,
    FeedbackStore, TripDirectory,
)
from feedback.trust_engine import TrustScoreEngine

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5
MAX_KEY_LENGTH = 64
MAX_CATEGORY_LENGTH = 100


def validate_rating(rating) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise FeedbackInputError(f"Feedback rating must be an integer, got {rating!r}")
    if rating < MIN_RATING or rating > MAX_RATING:
        raise FeedbackInputError(f"Feedback rating must be between {MIN_RATING} and {MAX_RATING}")
    return rating


def validate_key(value, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise FeedbackInputError(f"{name} must be a non-empty string")
    if len(value) > MAX_KEY_LENGTH:
        raise FeedbackInputError(f"{name} must be at most {MAX_KEY_LENGTH} characters")
    return value


def validate_category(category) -> Optional[str]:
    if category is None:
        return None
    if not isinstance(category, str) or not category.strip():
        raise FeedbackInputError("Category must be a non-empty string")
    if len(category) > MAX_CATEGORY_LENGTH:
        raise FeedbackInputError(f"Category must be at most {MAX_CATEGORY_LENGTH} characters")
    return category


def validate_categories(categories) -> Optional[Dict[str, int]]:
    if categories is None:
        return None
    if not isinstance(categories, dict):
        raise FeedbackInputError("Categories must be a mapping of category name to rating")
    return {validate_category(name): validate_rating(value) for name, value in categories.items()}


class FeedbackService:

    def __init__(self, feedback_store: FeedbackStore, trust_engine: TrustScoreEngine,
                 category_learner: CategoryWeightLearner, aggregator: FeedbackAggregator,
                 trip_directory: TripDirectory):
        self.feedback_store = feedback_store
        self.trust_engine = trust_engine
        self.category_learner = category_learner
        self.aggregator = aggregator
        self.trip_directory = trip_directory

    def submit_feedback(self, user_id: str, entity_id: str, rating: int, category: Optional[str] = None,
                        categories: Optional[Dict[str, int]] = None, now: Optional[datetime] = None) -> FeedbackRecord:
        """
        Upsert the (user, entity) rating, update learned state, then drop the
        cached aggregations the new rating belongs to.

        Raises:
            FeedbackInputError: invalid input, nothing was written
            FeedbackDependencyError: a store failed; learned state may lag the stored rating
        """
        validate_key(user_id, 'user_id')
        validate_key(entity_id, 'entity_id')
        validate_rating(rating)
        validate_category(category)
        categories = validate_categories(categories)

        record = self.feedback_store.insert_or_replace(user_id, entity_id, rating, categories)
        self.process_feedback(user_id, entity_id, rating, category, now=now)

        destination = self.trip_directory.destination_for_entity(entity_id)
        self.aggregator.invalidate_entity(entity_id, destination)
        for name in (categories or {}):
            self.aggregator.invalidate_category(name)

        logger.info(f"Feedback stored for user={user_id}, entity={entity_id}, rating={rating}")
        return record

    def process_feedback(self, user_id: str, entity_id: str, rating: int,
                         category: Optional[str] = None, now: Optional[datetime] = None) -> TrustSignal:
        """
        Recalculate trust and, when a category is given, update its weight.
        Does not touch the aggregation cache. now pins the decay clock.
        """
        validate_key(user_id, 'user_id')
        validate_rating(rating)
        validate_category(category)

        signal = self.trust_engine.recalculate_trust(user_id, now)
        if category:
            self.category_learner.update_category_weight(user_id, category, rating)
        return signal


@dataclass
class FeedbackEngine:
    """All engine components wired against one set of stores."""
    feedback_service: FeedbackService
    trust_engine: TrustScoreEngine
    category_learner: CategoryWeightLearner
    aggregator: FeedbackAggregator
    ranking: TrustWeightedRanking
    weight_adjuster: FeedbackWeightAdjuster
    bias_monitor: BiasMonitor
    validator: AggregationValidator


def build_engine(feedback_store=None, trust_store=None, weight_store=None, trip_directory=None,
                 cache=None) -> FeedbackEngine:
    """Wire the engine against the Django stores unless others are given."""
    feedback_store = feedback_store or DjangoFeedbackStore()
    trust_store = trust_store or DjangoTrustStore()
    weight_store = weight_store or DjangoCategoryWeightStore()
    trip_directory = trip_directory or DjangoTripDirectory()

    trust_engine = TrustScoreEngine(feedback_store, trust_store)
    category_learner = CategoryWeightLearner(weight_store)
    aggregator = FeedbackAggregator(feedback_store, trip_directory, cache=cache)

    return FeedbackEngine(
        feedback_service=FeedbackService(feedback_store, trust_engine, category_learner, aggregator, trip_directory),
        trust_engine=trust_engine,
        category_learner=category_learner,
        aggregator=aggregator,
        ranking=TrustWeightedRanking(feedback_store, trust_store, weight_store),
        weight_adjuster=FeedbackWeightAdjuster(aggregator),
        bias_monitor=BiasMonitor(trust_store, weight_store),
        validator=AggregationValidator(feedback_store, trust_store),
    )
