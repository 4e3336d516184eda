"""
Two independent score adjustment policies.

TrustWeightedRanking (multiplicative) re-ranks candidates for one user from
their learned trust and category weights. FeedbackWeightAdjuster (additive)
nudges the score of a trip, destination or category from the aggregated
feedback of all users. They use different formulas and different
positive/negative boundaries and are called from different places.
"""
import logging
from typing import Dict, Iterable, List, Optional, Union

from feedback.aggregation_service import FeedbackAggregator
from feedback.dtos import (
    AggregationResult, FeedbackRankedTrip, RankedTrip, TripCandidate, WeightAdjustment,
)
from feedback.stores import CategoryWeightStore, FeedbackStore, TrustStore

logger = logging.getLogger(__name__)


class TrustWeightedRanking:
    """
    Multiplicative policy:

    confidence       = n / (n + CONFIDENCE_K)
    effective_trust  = trust_score * confidence
    trust_multiplier = TRUST_MIN + TRUST_RANGE * effective_trust   (0.8 .. 1.2)
    final_score      = base_score * category_weight * trust_multiplier
    """

    CONFIDENCE_K = 10
    TRUST_MIN = 0.8
    TRUST_RANGE = 0.4
    DEFAULT_TRUST = 0.5
    DEFAULT_CATEGORY_WEIGHT = 1.0

    def __init__(self, feedback_store: FeedbackStore, trust_store: TrustStore,
                 weight_store: CategoryWeightStore, confidence_k: int = 10):
        self.feedback_store = feedback_store
        self.trust_store = trust_store
        self.weight_store = weight_store
        self.CONFIDENCE_K = confidence_k

    def trust_multiplier(self, trust_score: float, total_feedback: int) -> float:
        confidence = total_feedback / (total_feedback + self.CONFIDENCE_K)
        effective_trust = trust_score * confidence
        return self.TRUST_MIN + self.TRUST_RANGE * effective_trust

    def compute_score(self, user_id: str, base_score: float, category: Optional[str]) -> float:
        multiplier = self._user_multiplier(user_id)

        category_weight = self.DEFAULT_CATEGORY_WEIGHT
        if category:
            stored = self.weight_store.get(user_id, category)
            if stored is not None:
                category_weight = stored.weight

        return base_score * category_weight * multiplier

    def rank_trips(self, user_id: str, trips: Iterable[Union[TripCandidate, dict]]) -> List[RankedTrip]:
        """
        Score every candidate and sort by final_score, highest first.
        Equal scores keep their input order.
        """
        candidates = [self._as_candidate(trip) for trip in trips]
        if not candidates:
            return []

        multiplier = self._user_multiplier(user_id)
        category_map = {cw.category: cw.weight for cw in self.weight_store.list_by_user(user_id)}

        ranked = [
            RankedTrip(
                id=trip.id,
                base_score=trip.base_score,
                category=trip.category,
                final_score=trip.base_score * category_map.get(trip.category, self.DEFAULT_CATEGORY_WEIGHT) * multiplier,
            )
            for trip in candidates
        ]
        # sorted() is stable, reverse=True included
        return sorted(ranked, key=lambda trip: trip.final_score, reverse=True)

    # Helper methods
    def _user_multiplier(self, user_id: str) -> float:
        signal = self.trust_store.get(user_id)
        trust_score = signal.trust_score if signal is not None else self.DEFAULT_TRUST
        total_feedback = self.feedback_store.count_by_user(user_id)
        return self.trust_multiplier(trust_score, total_feedback)

    @staticmethod
    def _as_candidate(trip) -> TripCandidate:
        if isinstance(trip, TripCandidate):
            return trip
        return TripCandidate(id=str(trip['id']), base_score=trip['base_score'], category=trip.get('category'))


class FeedbackWeightAdjuster:
    """
    Additive, threshold-gated policy:

    - fewer than MINIMUM_RATING_THRESHOLD ratings: score unchanged
    - otherwise weight = (positive_ratio - 0.5) * 2 * MAX_WEIGHT_ADJUSTMENT,
      clamped to [MIN_WEIGHT_ADJUSTMENT, MAX_WEIGHT_ADJUSTMENT], added to the score
    """

    MINIMUM_RATING_THRESHOLD = 3
    MAX_WEIGHT_ADJUSTMENT = 0.3
    MIN_WEIGHT_ADJUSTMENT = -0.3

    def __init__(self, aggregator: FeedbackAggregator):
        self.aggregator = aggregator

    def apply_weight_adjustment(self, base_score: float, aggregation: AggregationResult,
                                target_type: str = 'trip') -> WeightAdjustment:
        if aggregation.total_feedback < self.MINIMUM_RATING_THRESHOLD:
            return WeightAdjustment(
                base_score=base_score,
                feedback_weight=0.0,
                adjusted_score=base_score,
                meets_threshold=False,
                reason=f"Insufficient feedback ({aggregation.total_feedback}/{self.MINIMUM_RATING_THRESHOLD} required)",
            )

        total_with_ratings = aggregation.positive_count + aggregation.negative_count
        positive_ratio = aggregation.positive_count / total_with_ratings if total_with_ratings > 0 else 0.5

        # 0% positive = -0.3, 50% = 0, 100% = +0.3
        feedback_weight = (positive_ratio - 0.5) * 2 * self.MAX_WEIGHT_ADJUSTMENT
        feedback_weight = max(self.MIN_WEIGHT_ADJUSTMENT, min(self.MAX_WEIGHT_ADJUSTMENT, feedback_weight))

        adjusted_score = base_score + feedback_weight

        logger.debug(
            f"Weight adjustment for {target_type}: base={base_score}, "
            f"weight={feedback_weight:.3f}, adjusted={adjusted_score:.3f}"
        )

        return WeightAdjustment(
            base_score=base_score,
            feedback_weight=feedback_weight,
            adjusted_score=adjusted_score,
            meets_threshold=True,
            reason=self.generate_reason(aggregation, positive_ratio, feedback_weight, target_type),
        )

    def generate_reason(self, aggregation: AggregationResult, positive_ratio: float,
                        weight: float, target_type: str) -> str:
        if weight > 0:
            direction = 'increased'
        elif weight < 0:
            direction = 'decreased'
        else:
            direction = 'unchanged'

        if positive_ratio >= 0.7:
            sentiment = 'highly positive'
        elif positive_ratio >= 0.5:
            sentiment = 'mostly positive'
        elif positive_ratio >= 0.3:
            sentiment = 'mixed'
        else:
            sentiment = 'mostly negative'

        return (
            f"Based on {aggregation.total_feedback} ratings ({positive_ratio * 100:.0f}% positive, "
            f"avg {aggregation.average_rating:.1f}/5), {target_type} ranking {direction} by "
            f"{abs(weight):.2f} ({sentiment} feedback)"
        )

    def calculate_trip_weight(self, entity_id: str, base_score: float = 1.0) -> WeightAdjustment:
        aggregation = self.aggregator.aggregate_by_entity(entity_id)
        return self.apply_weight_adjustment(base_score, aggregation, 'trip')

    def calculate_destination_weight(self, destination: str, base_score: float = 1.0) -> WeightAdjustment:
        aggregation = self.aggregator.aggregate_by_destination(destination)
        return self.apply_weight_adjustment(base_score, aggregation.as_aggregation(), 'destination')

    def calculate_category_weight(self, category: str, base_score: float = 1.0) -> WeightAdjustment:
        aggregation = self.aggregator.aggregate_by_category(category)
        return self.apply_weight_adjustment(base_score, aggregation, 'category')

    def calculate_batch_weights(self, entity_ids: Iterable[str], base_score: float = 1.0) -> Dict[str, WeightAdjustment]:
        return {entity_id: self.calculate_trip_weight(entity_id, base_score) for entity_id in entity_ids}

    def sort_trips_by_feedback(self, trips: Iterable[dict]) -> List[FeedbackRankedTrip]:
        """
        Sort trips ({'id', 'base_score'?}) by feedback-adjusted score, highest first.
        """
        scored = []
        for trip in trips:
            base_score = trip.get('base_score')
            adjustment = self.calculate_trip_weight(str(trip['id']), 1.0 if base_score is None else base_score)
            scored.append(FeedbackRankedTrip(id=str(trip['id']), score=adjustment.adjusted_score, adjustment=adjustment))

        return sorted(scored, key=lambda item: item.score, reverse=True)
