"""
Data Transfer Objects (DTOs) passed between the feedback stores, the scoring
engines and the API layer.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class FeedbackRecord:
    """
    Normalized feedback row. rating is None when the stored payload has no
    usable numeric rating (such rows are reported as corrupted).
    """
    user_id: str
    entity_id: str
    rating: Optional[float]
    created_at: datetime
    categories: Dict[str, float] = field(default_factory=dict)

    @property
    def is_corrupted(self) -> bool:
        return self.rating is None

    @classmethod
    def from_payload(cls, user_id: str, entity_id: str, payload: Any, created_at: datetime) -> "FeedbackRecord":
        """Build a record from a stored payload (bare number or {rating, categories})."""
        if isinstance(payload, dict):
            rating = _as_number(payload.get('rating'))
            raw_categories = payload.get('categories')
        else:
            rating = _as_number(payload)
            raw_categories = None

        categories = {}
        if isinstance(raw_categories, dict):
            for name, value in raw_categories.items():
                number = _as_number(value)
                if number is not None:
                    categories[str(name)] = number

        return cls(
            user_id=user_id,
            entity_id=entity_id,
            rating=rating,
            created_at=created_at,
            categories=categories,
        )


def _as_number(value: Any) -> Optional[float]:
    # bool is an int subclass but never a rating
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


@dataclass
class TrustSignal:
    user_id: str
    trust_score: float
    positive_count: int = 0
    negative_count: int = 0
    neutral_count: int = 0
    version: int = 0


@dataclass
class CategoryWeight:
    user_id: str
    category: str
    weight: float
    feedback_count: int
    version: int = 0


@dataclass
class CategoryBreakdown:
    positive: int
    negative: int
    average: float


@dataclass
class AggregationResult:
    """Statistical summary of a set of feedback rows. Cached by FeedbackAggregator."""
    total_feedback: int = 0
    positive_count: int = 0  # rating >= 4
    negative_count: int = 0  # rating < 4
    average_rating: float = 0.0
    category_breakdown: Optional[Dict[str, CategoryBreakdown]] = None
    has_minimum_threshold: bool = False


@dataclass
class DestinationAggregation:
    destination: str
    total_feedback: int = 0
    positive_count: int = 0
    negative_count: int = 0
    average_rating: float = 0.0
    has_minimum_threshold: bool = False

    def as_aggregation(self) -> AggregationResult:
        return AggregationResult(
            total_feedback=self.total_feedback,
            positive_count=self.positive_count,
            negative_count=self.negative_count,
            average_rating=self.average_rating,
            has_minimum_threshold=self.has_minimum_threshold,
        )


@dataclass
class WeightAdjustment:
    """Result of the additive, threshold-gated adjustment policy."""
    base_score: float
    feedback_weight: float  # -0.3 to +0.3
    adjusted_score: float
    meets_threshold: bool
    reason: str


@dataclass
class TripCandidate:
    id: str
    base_score: float
    category: Optional[str] = None


@dataclass
class RankedTrip:
    id: str
    base_score: float
    category: Optional[str]
    final_score: float


@dataclass
class FeedbackRankedTrip:
    id: str
    score: float
    adjustment: WeightAdjustment


@dataclass
class BiasReport:
    user_id: str
    suppressed_categories: List[str]
    over_weighted_categories: List[str]
    trust_score: float
    is_flagged: bool
    reasons: List[str]


@dataclass
class AggregationValidationResult:
    user_id: str
    feedback_count: int
    computed_trust_score: Optional[float]
    stored_trust_score: Optional[float]
    is_duplicate: bool
    is_corrupted: bool
    discrepancy_detected: bool
    issues: List[str] = field(default_factory=list)


@dataclass
class SystemAggregationReport:
    total_feedbacks: int
    unique_user_trip_pairs: int
    duplicates_detected: int
    corrupted_entries: int
    users_with_discrepancy: int
    validated_at: str
