"""
FeedbackAggregator: cached statistical summaries of feedback per trip,
destination and category.
"""
import logging
import time
from typing import Callable, Dict, Iterable, List, Optional
from urllib.parse import quote

from django.core.cache import caches

from feedback.conf import engine_setting
from feedback.dtos import AggregationResult, CategoryBreakdown, DestinationAggregation, FeedbackRecord
from feedback.exceptions import FeedbackDependencyError
from feedback.stores import FeedbackStore, TripDirectory

logger = logging.getLogger(__name__)


def calculate_aggregation(records: Iterable[FeedbackRecord], positive_threshold: int = 4,
                          minimum_feedback: int = 3) -> AggregationResult:
    """
    Reduce feedback rows to counts and averages.

    A rating >= positive_threshold is positive, anything below is negative,
    so a rating of 3 counts as negative here (the trust engine treats it as neutral).
    total_feedback counts every row, including rows without a usable rating.
    """
    records = list(records)
    total_feedback = len(records)
    if total_feedback == 0:
        return AggregationResult()

    positive_count = 0
    negative_count = 0
    ratings: List[float] = []
    category_ratings: Dict[str, List[float]] = {}

    for record in records:
        if record.rating is None:
            continue

        ratings.append(record.rating)
        if record.rating >= positive_threshold:
            positive_count += 1
        else:
            negative_count += 1

        for name, value in record.categories.items():
            category_ratings.setdefault(name, []).append(value)

    average_rating = sum(ratings) / len(ratings) if ratings else 0.0

    category_breakdown = None
    if category_ratings:
        category_breakdown = {
            name: CategoryBreakdown(
                positive=sum(1 for r in values if r >= positive_threshold),
                negative=sum(1 for r in values if r < positive_threshold),
                average=sum(values) / len(values),
            )
            for name, values in category_ratings.items()
        }

    return AggregationResult(
        total_feedback=total_feedback,
        positive_count=positive_count,
        negative_count=negative_count,
        average_rating=average_rating,
        category_breakdown=category_breakdown,
        has_minimum_threshold=total_feedback >= minimum_feedback,
    )


class FeedbackAggregator:
    """
    Read side of the feedback engine. Every aggregation is cached for
    CACHE_TTL seconds; callers that mutate feedback must call one of the
    invalidate_* hooks.
    """

    POSITIVE_RATING_THRESHOLD = 4
    MINIMUM_FEEDBACK_THRESHOLD = 3

    ENTITY_KEY = 'feedback_agg_trip_{}'
    DESTINATION_KEY = 'feedback_agg_dest_{}'
    CATEGORY_KEY = 'feedback_agg_cat_{}'

    def __init__(self, feedback_store: FeedbackStore, trip_directory: TripDirectory,
                 cache=None, cache_ttl: Optional[int] = None, slow_query_ms: Optional[int] = None):
        self.feedback_store = feedback_store
        self.trip_directory = trip_directory
        self.cache = cache if cache is not None else caches[engine_setting('CACHE_ALIAS')]
        self.CACHE_TTL = cache_ttl if cache_ttl is not None else engine_setting('AGGREGATION_CACHE_TTL')
        self.SLOW_QUERY_MS = slow_query_ms if slow_query_ms is not None else engine_setting('SLOW_QUERY_MS')

    def aggregate_by_entity(self, entity_id: str) -> AggregationResult:
        return self._cached(
            self._key(self.ENTITY_KEY, entity_id),
            f"trip {entity_id}",
            lambda: self._reduce(self.feedback_store.list_by_entity(entity_id)),
            AggregationResult,
        )

    def aggregate_by_destination(self, destination: str) -> DestinationAggregation:
        def load():
            entity_ids = self.trip_directory.entity_ids_for_destination(destination)
            aggregation = self._reduce(self.feedback_store.list_by_entities(entity_ids))
            return DestinationAggregation(
                destination=destination,
                total_feedback=aggregation.total_feedback,
                positive_count=aggregation.positive_count,
                negative_count=aggregation.negative_count,
                average_rating=aggregation.average_rating,
                has_minimum_threshold=aggregation.has_minimum_threshold,
            )

        return self._cached(
            self._key(self.DESTINATION_KEY, destination),
            f"destination {destination}",
            load,
            lambda: DestinationAggregation(destination=destination),
        )

    def aggregate_by_category(self, category: str) -> AggregationResult:
        def load():
            records = [r for r in self.feedback_store.list_all() if category in r.categories]
            return self._reduce(records)

        return self._cached(
            self._key(self.CATEGORY_KEY, category),
            f"category {category}",
            load,
            AggregationResult,
        )

    def invalidate_entity(self, entity_id: str, destination: Optional[str] = None) -> None:
        self._delete(self._key(self.ENTITY_KEY, entity_id))
        if destination:
            self.invalidate_destination(destination)
        logger.debug(f"Invalidated feedback cache for trip {entity_id}")

    def invalidate_destination(self, destination: str) -> None:
        self._delete(self._key(self.DESTINATION_KEY, destination))

    def invalidate_category(self, category: str) -> None:
        self._delete(self._key(self.CATEGORY_KEY, category))

    # Helper methods
    def _reduce(self, records: List[FeedbackRecord]) -> AggregationResult:
        return calculate_aggregation(records, self.POSITIVE_RATING_THRESHOLD, self.MINIMUM_FEEDBACK_THRESHOLD)

    @staticmethod
    def _key(template: str, value: str) -> str:
        # Keeps destination names with spaces or unicode valid for memcached-style backends
        return template.format(quote(str(value), safe=''))

    def _cached(self, cache_key: str, label: str, load: Callable, default: Callable):
        cached = self._get(cache_key)
        if cached is not None:
            logger.debug(f"Cache hit for {label} feedback")
            return cached

        start_time = time.monotonic()
        try:
            result = load()
        except FeedbackDependencyError:
            logger.exception(f"Feedback aggregation for {label} failed, returning empty aggregation")
            return default()

        query_duration_ms = (time.monotonic() - start_time) * 1000
        if query_duration_ms > self.SLOW_QUERY_MS:
            logger.warning(f"Slow aggregation query for {label}: {query_duration_ms:.0f}ms")

        self._set(cache_key, result)
        return result

    def _get(self, key: str):
        try:
            return self.cache.get(key)
        except Exception:
            logger.exception(f"Cache read failed for {key}")
            return None

    def _set(self, key: str, value) -> None:
        try:
            self.cache.set(key, value, self.CACHE_TTL)
        except Exception:
            logger.exception(f"Cache write failed for {key}")

    def _delete(self, key: str) -> None:
        try:
            self.cache.delete(key)
        except Exception:
            logger.exception(f"Cache delete failed for {key}")
