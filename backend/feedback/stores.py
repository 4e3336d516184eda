"""
Store contracts consumed by the feedback engine, plus their Django ORM
implementations. Services depend on the abstract classes only, so tests can
substitute in-memory doubles.
"""
import functools
import uuid
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone

from feedback.dtos import CategoryWeight, FeedbackRecord, TrustSignal
from feedback.exceptions import FeedbackDependencyError
from feedback.models import PlannerFeedback, UserCategoryWeight, UserFeedbackSignal
from trips.models import Itinerary


def translate_db_errors(method):
    """Re-raise database failures as FeedbackDependencyError."""
    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except DatabaseError as exc:
            raise FeedbackDependencyError(f"{method.__qualname__} failed: {exc}") from exc
    return wrapper


class FeedbackStore(ABC):
    """Read/write access to raw feedback rows, normalized to FeedbackRecord."""

    @abstractmethod
    def insert_or_replace(self, user_id: str, entity_id: str, rating: int,
                          categories: Optional[Dict[str, int]] = None) -> FeedbackRecord:
        pass

    @abstractmethod
    def list_by_user(self, user_id: str) -> List[FeedbackRecord]:
        pass

    @abstractmethod
    def list_by_entity(self, entity_id: str) -> List[FeedbackRecord]:
        pass

    @abstractmethod
    def list_by_entities(self, entity_ids: Iterable[str]) -> List[FeedbackRecord]:
        pass

    @abstractmethod
    def list_all(self) -> List[FeedbackRecord]:
        pass

    @abstractmethod
    def count_by_user(self, user_id: str) -> int:
        pass

    @abstractmethod
    def count_all(self) -> int:
        pass

    @abstractmethod
    def count_distinct_pairs(self) -> int:
        pass

    @abstractmethod
    def list_user_ids(self, limit: int) -> List[str]:
        """Distinct user ids that have at least one feedback row."""
        pass


class TrustStore(ABC):

    @abstractmethod
    def get(self, user_id: str, for_update: bool = False) -> Optional[TrustSignal]:
        pass

    @abstractmethod
    def upsert(self, user_id: str, trust_score: float, positive_count: int = 0,
               negative_count: int = 0, neutral_count: int = 0) -> TrustSignal:
        pass


class CategoryWeightStore(ABC):

    @abstractmethod
    def get(self, user_id: str, category: str, for_update: bool = False) -> Optional[CategoryWeight]:
        pass

    @abstractmethod
    def create(self, user_id: str, category: str, weight: float, feedback_count: int) -> Optional[CategoryWeight]:
        """Insert a new row; None when the (user, category) row already exists."""
        pass

    @abstractmethod
    def upsert(self, user_id: str, category: str, weight: float, feedback_count: int) -> CategoryWeight:
        pass

    @abstractmethod
    def list_by_user(self, user_id: str) -> List[CategoryWeight]:
        pass

    @abstractmethod
    def list_extreme(self, low: float, high: float) -> List[CategoryWeight]:
        """Rows with weight < low or weight > high."""
        pass

    @abstractmethod
    def count_all(self) -> int:
        pass

    @abstractmethod
    def count_below(self, threshold: float) -> int:
        pass

    @abstractmethod
    def count_above(self, threshold: float) -> int:
        pass


class TripDirectory(ABC):
    """Maps trips to destinations for destination-level aggregation."""

    @abstractmethod
    def entity_ids_for_destination(self, destination: str) -> List[str]:
        pass

    @abstractmethod
    def destination_for_entity(self, entity_id: str) -> Optional[str]:
        pass


def _to_record(row: PlannerFeedback) -> FeedbackRecord:
    return FeedbackRecord.from_payload(row.user_id, row.entity_id, row.feedback_value, row.created_at)


def _to_signal(row: UserFeedbackSignal) -> TrustSignal:
    return TrustSignal(
        user_id=row.user_id,
        trust_score=row.trust_score,
        positive_count=row.positive_count,
        negative_count=row.negative_count,
        neutral_count=row.neutral_count,
        version=row.version,
    )


def _to_weight(row: UserCategoryWeight) -> CategoryWeight:
    return CategoryWeight(
        user_id=row.user_id,
        category=row.category,
        weight=row.weight,
        feedback_count=row.feedback_count,
        version=row.version,
    )


class DjangoFeedbackStore(FeedbackStore):

    @translate_db_errors
    def insert_or_replace(self, user_id, entity_id, rating, categories=None):
        feedback_value = {'rating': rating}
        if categories:
            feedback_value['categories'] = dict(categories)

        # created_at is kept on replace so decay keeps counting from the first rating
        row, _ = PlannerFeedback.objects.update_or_create(
            user_id=user_id,
            entity_id=entity_id,
            defaults={'feedback_value': feedback_value},
        )
        return _to_record(row)

    @translate_db_errors
    def list_by_user(self, user_id):
        return [_to_record(row) for row in PlannerFeedback.objects.filter(user_id=user_id)]

    @translate_db_errors
    def list_by_entity(self, entity_id):
        return [_to_record(row) for row in PlannerFeedback.objects.filter(entity_id=entity_id)]

    @translate_db_errors
    def list_by_entities(self, entity_ids):
        entity_ids = list(entity_ids)
        if not entity_ids:
            return []
        return [_to_record(row) for row in PlannerFeedback.objects.filter(entity_id__in=entity_ids)]

    @translate_db_errors
    def list_all(self):
        return [_to_record(row) for row in PlannerFeedback.objects.all().iterator()]

    @translate_db_errors
    def count_by_user(self, user_id):
        return PlannerFeedback.objects.filter(user_id=user_id).count()

    @translate_db_errors
    def count_all(self):
        return PlannerFeedback.objects.count()

    @translate_db_errors
    def count_distinct_pairs(self):
        return PlannerFeedback.objects.values('user_id', 'entity_id').distinct().count()

    @translate_db_errors
    def list_user_ids(self, limit):
        return list(
            PlannerFeedback.objects.order_by('user_id')
            .values_list('user_id', flat=True)
            .distinct()[:limit]
        )


class DjangoTrustStore(TrustStore):

    @translate_db_errors
    def get(self, user_id, for_update=False):
        queryset = UserFeedbackSignal.objects.filter(user_id=user_id)
        if for_update:
            queryset = queryset.select_for_update()
        row = queryset.first()
        return _to_signal(row) if row else None

    @translate_db_errors
    def upsert(self, user_id, trust_score, positive_count=0, negative_count=0, neutral_count=0):
        values = {
            'trust_score': trust_score,
            'positive_count': positive_count,
            'negative_count': negative_count,
            'neutral_count': neutral_count,
        }
        updated = UserFeedbackSignal.objects.filter(user_id=user_id).update(
            version=F('version') + 1, updated_at=timezone.now(), **values
        )
        if not updated:
            try:
                with transaction.atomic():
                    UserFeedbackSignal.objects.create(user_id=user_id, version=1, **values)
            except IntegrityError:
                # Another writer created the row first
                UserFeedbackSignal.objects.filter(user_id=user_id).update(
                    version=F('version') + 1, updated_at=timezone.now(), **values
                )
        return _to_signal(UserFeedbackSignal.objects.get(user_id=user_id))


class DjangoCategoryWeightStore(CategoryWeightStore):

    @translate_db_errors
    def get(self, user_id, category, for_update=False):
        queryset = UserCategoryWeight.objects.filter(user_id=user_id, category=category)
        if for_update:
            queryset = queryset.select_for_update()
        row = queryset.first()
        return _to_weight(row) if row else None

    @translate_db_errors
    def create(self, user_id, category, weight, feedback_count):
        try:
            with transaction.atomic():
                row = UserCategoryWeight.objects.create(
                    user_id=user_id, category=category, weight=weight, feedback_count=feedback_count, version=1
                )
        except IntegrityError:
            return None
        return _to_weight(row)

    @translate_db_errors
    def upsert(self, user_id, category, weight, feedback_count):
        values = {'weight': weight, 'feedback_count': feedback_count}
        lookup = {'user_id': user_id, 'category': category}
        updated = UserCategoryWeight.objects.filter(**lookup).update(
            version=F('version') + 1, updated_at=timezone.now(), **values
        )
        if not updated:
            try:
                with transaction.atomic():
                    UserCategoryWeight.objects.create(version=1, **lookup, **values)
            except IntegrityError:
                UserCategoryWeight.objects.filter(**lookup).update(
                    version=F('version') + 1, updated_at=timezone.now(), **values
                )
        return _to_weight(UserCategoryWeight.objects.get(**lookup))

    @translate_db_errors
    def list_by_user(self, user_id):
        return [_to_weight(row) for row in UserCategoryWeight.objects.filter(user_id=user_id).order_by('category')]

    @translate_db_errors
    def list_extreme(self, low, high):
        queryset = UserCategoryWeight.objects.filter(Q(weight__lt=low) | Q(weight__gt=high))
        return [_to_weight(row) for row in queryset.order_by('user_id', 'category')]

    @translate_db_errors
    def count_all(self):
        return UserCategoryWeight.objects.count()

    @translate_db_errors
    def count_below(self, threshold):
        return UserCategoryWeight.objects.filter(weight__lt=threshold).count()

    @translate_db_errors
    def count_above(self, threshold):
        return UserCategoryWeight.objects.filter(weight__gt=threshold).count()


class DjangoTripDirectory(TripDirectory):

    @translate_db_errors
    def entity_ids_for_destination(self, destination):
        return [str(pk) for pk in Itinerary.objects.filter(destination=destination).values_list('id', flat=True)]

    @translate_db_errors
    def destination_for_entity(self, entity_id):
        try:
            trip_id = uuid.UUID(str(entity_id))
        except ValueError:
            return None
        return Itinerary.objects.filter(id=trip_id).values_list('destination', flat=True).first()
