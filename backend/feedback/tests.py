"""
Tests for the feedback module.
"""
from datetime import timedelta
from unittest.mock import MagicMock

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from feedback.aggregation_service import FeedbackAggregator, calculate_aggregation
from feedback.aggregation_validator import AggregationValidator
from feedback.bias_monitor import BiasMonitor
from feedback.category_learner import CategoryWeightLearner
from feedback.dtos import AggregationResult, CategoryWeight, FeedbackRecord, TripCandidate, TrustSignal
from feedback.exceptions import FeedbackDependencyError, FeedbackInputError
from feedback.feedback_service import build_engine
from feedback.models import PlannerFeedback, UserCategoryWeight, UserFeedbackSignal
from feedback.ranking_service import FeedbackWeightAdjuster, TrustWeightedRanking
from feedback.stores import (
    CategoryWeightStore, DjangoCategoryWeightStore, DjangoFeedbackStore, DjangoTripDirectory, DjangoTrustStore,
    FeedbackStore, TrustStore,
)
from feedback.trust_engine import TrustScoreEngine, compute_trust_score, decay_weight
from trips.models import Itinerary


def make_feedback(user_id, entity_id, value, created_at=None):
    return PlannerFeedback.objects.create(
        user_id=user_id,
        entity_id=entity_id,
        feedback_value=value,
        created_at=created_at or timezone.now(),
    )


def record(entity_id, rating, created_at, user_id='u-1', categories=None):
    return FeedbackRecord(
        user_id=user_id,
        entity_id=entity_id,
        rating=rating,
        created_at=created_at,
        categories=categories or {},
    )


class InMemoryFeedbackStore(FeedbackStore):
    """Feedback store without the unique (user, entity) constraint"""

    def __init__(self, records=None):
        self.records = list(records or [])

    def insert_or_replace(self, user_id, entity_id, rating, categories=None):
        new = record(entity_id, rating, timezone.now(), user_id=user_id, categories=categories)
        self.records = [r for r in self.records if (r.user_id, r.entity_id) != (user_id, entity_id)]
        self.records.append(new)
        return new

    def list_by_user(self, user_id):
        return [r for r in self.records if r.user_id == user_id]

    def list_by_entity(self, entity_id):
        return [r for r in self.records if r.entity_id == entity_id]

    def list_by_entities(self, entity_ids):
        entity_ids = set(entity_ids)
        return [r for r in self.records if r.entity_id in entity_ids]

    def list_all(self):
        return list(self.records)

    def count_by_user(self, user_id):
        return len(self.list_by_user(user_id))

    def count_all(self):
        return len(self.records)

    def count_distinct_pairs(self):
        return len({(r.user_id, r.entity_id) for r in self.records})

    def list_user_ids(self, limit):
        return sorted({r.user_id for r in self.records})[:limit]


class InMemoryTrustStore(TrustStore):

    def __init__(self, scores=None):
        self.signals = {
            user_id: TrustSignal(user_id=user_id, trust_score=score)
            for user_id, score in (scores or {}).items()
        }

    def get(self, user_id, for_update=False):
        return self.signals.get(user_id)

    def upsert(self, user_id, trust_score, positive_count=0, negative_count=0, neutral_count=0):
        previous = self.signals.get(user_id)
        self.signals[user_id] = TrustSignal(
            user_id=user_id,
            trust_score=trust_score,
            positive_count=positive_count,
            negative_count=negative_count,
            neutral_count=neutral_count,
            version=(previous.version + 1) if previous else 1,
        )
        return self.signals[user_id]


class FeedbackRecordTestCase(SimpleTestCase):
    """Test payload normalization at the store boundary"""

    def setUp(self):
        """Set up test data"""
        self.now = timezone.now()

    def test_bare_number_payload(self):
        """Test bare number payload"""
        rec = FeedbackRecord.from_payload('u-1', 't-1', 4, self.now)
        self.assertEqual(rec.rating, 4)
        self.assertEqual(rec.categories, {})
        self.assertFalse(rec.is_corrupted)

    def test_object_payload_with_categories(self):
        """Test object payload with categories"""
        rec = FeedbackRecord.from_payload(
            'u-1', 't-1', {'rating': 5, 'categories': {'food': 4, 'noise': 'loud'}}, self.now
        )
        self.assertEqual(rec.rating, 5)
        self.assertEqual(rec.categories, {'food': 4})

    def test_non_numeric_rating_is_corrupted(self):
        """Test non-numeric ratings mark the row corrupted"""
        self.assertTrue(FeedbackRecord.from_payload('u-1', 't-1', {'rating': 'five'}, self.now).is_corrupted)
        self.assertTrue(FeedbackRecord.from_payload('u-1', 't-1', {}, self.now).is_corrupted)
        self.assertTrue(FeedbackRecord.from_payload('u-1', 't-1', {'rating': True}, self.now).is_corrupted)
        self.assertTrue(FeedbackRecord.from_payload('u-1', 't-1', None, self.now).is_corrupted)


class TrustScoreEngineTestCase(TestCase):
    """Test cases for TrustScoreEngine"""

    def setUp(self):
        """Set up test data"""
        self.now = timezone.now()
        self.trust_store = DjangoTrustStore()
        self.engine = TrustScoreEngine(DjangoFeedbackStore(), self.trust_store)

    def test_no_feedback_gives_neutral_prior(self):
        """Test no feedback gives neutral prior"""
        signal = self.engine.recalculate_trust('u-empty', now=self.now)

        self.assertEqual(signal.trust_score, 0.5)
        self.assertEqual(UserFeedbackSignal.objects.get(user_id='u-empty').trust_score, 0.5)

    def test_same_day_five_and_two_is_neutral(self):
        """Test same day five and two is neutral"""
        make_feedback('u-1', 't-1', {'rating': 5}, created_at=self.now)
        make_feedback('u-1', 't-2', {'rating': 2}, created_at=self.now)

        signal = self.engine.recalculate_trust('u-1', now=self.now)

        # (1 + 2) / (1 + 1 + 4)
        self.assertAlmostEqual(signal.trust_score, 0.5)
        self.assertEqual(signal.positive_count, 1)
        self.assertEqual(signal.negative_count, 1)

    def test_rating_three_carries_no_trust_signal(self):
        """Test rating three carries no trust signal"""
        make_feedback('u-1', 't-1', {'rating': 3}, created_at=self.now)

        signal = self.engine.recalculate_trust('u-1', now=self.now)

        self.assertEqual(signal.trust_score, 0.5)
        self.assertEqual(signal.neutral_count, 1)

    def test_positive_feedback_raises_trust(self):
        """Test positive feedback raises trust"""
        make_feedback('u-1', 't-1', {'rating': 5}, created_at=self.now)

        signal = self.engine.recalculate_trust('u-1', now=self.now)

        self.assertAlmostEqual(signal.trust_score, 3 / 5)

    def test_corrupted_rows_are_skipped(self):
        """Test corrupted rows are skipped"""
        make_feedback('u-1', 't-1', {'rating': 'bad'}, created_at=self.now)

        signal = self.engine.recalculate_trust('u-1', now=self.now)

        self.assertEqual(signal.trust_score, 0.5)

    def test_recalculation_is_idempotent(self):
        """Test recalculation is idempotent"""
        make_feedback('u-1', 't-1', {'rating': 5}, created_at=self.now - timedelta(days=3))
        make_feedback('u-1', 't-2', {'rating': 1}, created_at=self.now)

        first = self.engine.recalculate_trust('u-1', now=self.now)
        second = self.engine.recalculate_trust('u-1', now=self.now)

        self.assertEqual(first.trust_score, second.trust_score)
        self.assertEqual(second.version, first.version + 1)
        self.assertEqual(UserFeedbackSignal.objects.filter(user_id='u-1').count(), 1)


class TrustComputationTestCase(SimpleTestCase):

    def setUp(self):
        """Set up test data"""
        self.now = timezone.now()

    def test_decay_monotonicity(self):
        """Test older rows weigh less"""
        recent = decay_weight(self.now - timedelta(days=1), self.now)
        old = decay_weight(self.now - timedelta(days=30), self.now)
        self.assertLess(old, recent)

        fresh_positive = compute_trust_score([record('t-1', 5, self.now)], self.now)
        stale_positive = compute_trust_score([record('t-1', 5, self.now - timedelta(days=60))], self.now)
        self.assertGreater(fresh_positive.trust_score, stale_positive.trust_score)

        fresh_negative = compute_trust_score([record('t-1', 1, self.now)], self.now)
        stale_negative = compute_trust_score([record('t-1', 1, self.now - timedelta(days=60))], self.now)
        self.assertLess(fresh_negative.trust_score, stale_negative.trust_score)

    def test_future_rows_count_as_new(self):
        """Test future rows count as new"""
        self.assertEqual(decay_weight(self.now + timedelta(days=5), self.now), 1.0)

    def test_trust_bounded_under_volume(self):
        """Test trust bounded under volume"""
        positives = [record(f't-{i}', 5, self.now) for i in range(500)]
        negatives = [record(f't-{i}', 1, self.now) for i in range(500)]

        high = compute_trust_score(positives, self.now).trust_score
        low = compute_trust_score(negatives, self.now).trust_score

        self.assertGreater(high, 0.99)
        self.assertLessEqual(high, 1.0)
        self.assertLess(low, 0.01)
        self.assertGreaterEqual(low, 0.0)

    def test_empty_history_is_neutral(self):
        """Test empty history is neutral"""
        self.assertEqual(compute_trust_score([], self.now).trust_score, 0.5)


class CategoryWeightLearnerTestCase(TestCase):
    """Test cases for CategoryWeightLearner"""

    def setUp(self):
        """Set up test data"""
        self.learner = CategoryWeightLearner(DjangoCategoryWeightStore())

    def test_cold_start_guard(self):
        """Test cold start guard"""
        for expected_count in (1, 2, 3):
            weight = self.learner.update_category_weight('u-1', 'beach', 5)
            self.assertEqual(weight.weight, 1.0)
            self.assertEqual(weight.feedback_count, expected_count)

        weight = self.learner.update_category_weight('u-1', 'beach', 5)

        self.assertAlmostEqual(weight.weight, 1.1)
        self.assertEqual(weight.feedback_count, 4)

    def test_negative_feedback_lowers_weight(self):
        """Test negative feedback lowers weight"""
        for _ in range(3):
            self.learner.update_category_weight('u-1', 'nightlife', 1)

        weight = self.learner.update_category_weight('u-1', 'nightlife', 2)

        self.assertAlmostEqual(weight.weight, 0.9)

    def test_neutral_rating_keeps_weight(self):
        """Test neutral rating keeps weight"""
        for _ in range(4):
            self.learner.update_category_weight('u-1', 'museums', 5)

        weight = self.learner.update_category_weight('u-1', 'museums', 3)

        self.assertAlmostEqual(weight.weight, 1.1)
        self.assertEqual(weight.feedback_count, 5)

    def test_weight_clamped_to_bounds(self):
        """Test weight clamped to bounds"""
        for _ in range(40):
            high = self.learner.update_category_weight('u-1', 'hiking', 5)
            low = self.learner.update_category_weight('u-1', 'shopping', 1)

        self.assertEqual(high.weight, 2.0)
        self.assertEqual(low.weight, 0.5)
        stored = UserCategoryWeight.objects.get(user_id='u-1', category='hiking')
        self.assertEqual(stored.feedback_count, 40)
        self.assertEqual(stored.version, 40)

    def test_lost_first_insert_counts_on_existing_row(self):
        """Test lost first insert counts on existing row"""
        weight_store = MagicMock(spec=CategoryWeightStore)
        weight_store.get.side_effect = [None, CategoryWeight('u-1', 'beach', 1.0, 1, version=1)]
        weight_store.create.return_value = None
        weight_store.upsert.side_effect = lambda user_id, category, weight, feedback_count: CategoryWeight(
            user_id, category, weight, feedback_count
        )

        weight = CategoryWeightLearner(weight_store).update_category_weight('u-1', 'beach', 5)

        self.assertEqual(weight.feedback_count, 2)
        weight_store.upsert.assert_called_once_with('u-1', 'beach', 1.0, 2)


class AggregationTestCase(TestCase):
    """Test cases for FeedbackAggregator"""

    def setUp(self):
        """Set up test data"""
        cache.clear()
        self.aggregator = FeedbackAggregator(DjangoFeedbackStore(), DjangoTripDirectory())
        self.now = timezone.now()

    def test_calculate_aggregation(self):
        """Test calculate_aggregation counts, average and threshold"""
        result = calculate_aggregation([
            record('t-1', 5, self.now, user_id='a'),
            record('t-1', 4, self.now, user_id='b'),
            record('t-1', 2, self.now, user_id='c'),
        ])

        self.assertEqual(result.total_feedback, 3)
        self.assertEqual(result.positive_count, 2)
        self.assertEqual(result.negative_count, 1)
        self.assertAlmostEqual(result.average_rating, 3.67, places=2)
        self.assertTrue(result.has_minimum_threshold)
        self.assertIsNone(result.category_breakdown)

    def test_rating_three_counts_as_negative(self):
        """Test rating three counts as negative"""
        result = calculate_aggregation([record('t-1', 3, self.now)])

        self.assertEqual(result.positive_count, 0)
        self.assertEqual(result.negative_count, 1)
        self.assertFalse(result.has_minimum_threshold)

    def test_empty_aggregation(self):
        """Test empty aggregation"""
        result = calculate_aggregation([])

        self.assertEqual(result, AggregationResult())

    def test_category_breakdown(self):
        """Test category breakdown"""
        result = calculate_aggregation([
            record('t-1', 5, self.now, user_id='a', categories={'food': 5, 'transport': 2}),
            record('t-1', 4, self.now, user_id='b', categories={'food': 3}),
        ])

        self.assertEqual(result.category_breakdown['food'].positive, 1)
        self.assertEqual(result.category_breakdown['food'].negative, 1)
        self.assertEqual(result.category_breakdown['food'].average, 4.0)
        self.assertEqual(result.category_breakdown['transport'].negative, 1)

    def test_aggregate_by_entity_is_cached_until_invalidated(self):
        """Test aggregate by entity is cached until invalidated"""
        make_feedback('a', 't-1', {'rating': 5})
        make_feedback('b', 't-1', {'rating': 4})

        first = self.aggregator.aggregate_by_entity('t-1')
        make_feedback('c', 't-1', {'rating': 1})
        cached = self.aggregator.aggregate_by_entity('t-1')

        self.assertEqual(first.total_feedback, 2)
        self.assertEqual(cached.total_feedback, 2)

        self.aggregator.invalidate_entity('t-1')
        fresh = self.aggregator.aggregate_by_entity('t-1')

        self.assertEqual(fresh.total_feedback, 3)
        self.assertTrue(fresh.has_minimum_threshold)

    def test_aggregate_by_destination(self):
        """Test aggregate by destination"""
        user = get_user_model().objects.create_user(username='planner', password='testpass123')
        kandy_1 = Itinerary.objects.create(user=user, title='Temple run', destination='Kandy')
        kandy_2 = Itinerary.objects.create(user=user, title='Lake walk', destination='Kandy')
        galle = Itinerary.objects.create(user=user, title='Fort', destination='Galle')

        make_feedback('a', str(kandy_1.id), {'rating': 5})
        make_feedback('b', str(kandy_2.id), {'rating': 2})
        make_feedback('c', str(galle.id), {'rating': 5})

        result = self.aggregator.aggregate_by_destination('Kandy')

        self.assertEqual(result.destination, 'Kandy')
        self.assertEqual(result.total_feedback, 2)
        self.assertEqual(result.positive_count, 1)
        self.assertEqual(result.negative_count, 1)

    def test_aggregate_by_category(self):
        """Test aggregate by category"""
        make_feedback('a', 't-1', {'rating': 5, 'categories': {'food': 5}})
        make_feedback('b', 't-2', {'rating': 2, 'categories': {'food': 1}})
        make_feedback('c', 't-3', {'rating': 4})

        result = self.aggregator.aggregate_by_category('food')

        self.assertEqual(result.total_feedback, 2)
        self.assertEqual(result.average_rating, 3.5)

    def test_store_failure_returns_empty_aggregation(self):
        """Test store failure returns empty aggregation"""
        failing_store = MagicMock(spec=FeedbackStore)
        failing_store.list_by_entity.side_effect = FeedbackDependencyError('db down')
        aggregator = FeedbackAggregator(failing_store, DjangoTripDirectory())

        with self.assertLogs('feedback.aggregation_service', level='ERROR'):
            result = aggregator.aggregate_by_entity('t-1')

        self.assertEqual(result.total_feedback, 0)
        self.assertIsNone(cache.get('feedback_agg_trip_t-1'))

    def test_cache_failure_falls_back_to_store(self):
        """Test cache failure falls back to store"""
        broken_cache = MagicMock()
        broken_cache.get.side_effect = ConnectionError('cache down')
        broken_cache.set.side_effect = ConnectionError('cache down')
        broken_cache.delete.side_effect = ConnectionError('cache down')
        aggregator = FeedbackAggregator(DjangoFeedbackStore(), DjangoTripDirectory(), cache=broken_cache)
        make_feedback('a', 't-1', {'rating': 5})
        make_feedback('b', 't-1', {'rating': 1})

        with self.assertLogs('feedback.aggregation_service', level='ERROR') as logs:
            result = aggregator.aggregate_by_entity('t-1')
            aggregator.invalidate_entity('t-1', destination='Kandy')

        self.assertEqual(result.total_feedback, 2)
        self.assertEqual(result.positive_count, 1)
        self.assertEqual(len(logs.records), 4)


class TrustWeightedRankingTestCase(TestCase):
    """Test cases for the multiplicative policy"""

    def setUp(self):
        """Set up test data"""
        self.ranking = TrustWeightedRanking(DjangoFeedbackStore(), DjangoTrustStore(), DjangoCategoryWeightStore())

    def test_zero_feedback_uses_minimum_multiplier(self):
        """Test zero feedback uses minimum multiplier"""
        score = self.ranking.compute_score('new-user', 10.0, 'beach')

        self.assertAlmostEqual(score, 10.0 * 1.0 * 0.8)

    def test_category_weight_and_confidence(self):
        """Test category weight and confidence"""
        for i in range(10):
            make_feedback('u-1', f't-{i}', {'rating': 5})
        DjangoTrustStore().upsert('u-1', 1.0)
        DjangoCategoryWeightStore().upsert('u-1', 'beach', 1.5, 8)

        score = self.ranking.compute_score('u-1', 2.0, 'beach')

        # confidence = 10 / 20, multiplier = 0.8 + 0.4 * 0.5
        self.assertAlmostEqual(score, 2.0 * 1.5 * 1.0)

    def test_trust_multiplier_range(self):
        """Test trust multiplier range"""
        self.assertAlmostEqual(self.ranking.trust_multiplier(0.0, 1000), 0.8)
        self.assertLess(self.ranking.trust_multiplier(1.0, 10 ** 6), 1.2)

    def test_rank_trips_sorts_descending_and_is_stable(self):
        """Test rank trips sorts descending and is stable"""
        DjangoCategoryWeightStore().upsert('u-1', 'beach', 2.0, 10)
        trips = [
            TripCandidate(id='a', base_score=1.0, category='culture'),
            TripCandidate(id='b', base_score=1.0, category='beach'),
            TripCandidate(id='c', base_score=1.0, category='culture'),
            {'id': 'd', 'base_score': 0.1, 'category': None},
        ]

        ranked = self.ranking.rank_trips('u-1', trips)

        self.assertEqual([trip.id for trip in ranked], ['b', 'a', 'c', 'd'])
        self.assertAlmostEqual(ranked[0].final_score, 2.0 * 0.8)

    def test_rank_trips_empty(self):
        """Test rank trips empty"""
        self.assertEqual(self.ranking.rank_trips('u-1', []), [])


class FeedbackWeightAdjusterTestCase(TestCase):
    """Test cases for the additive policy"""

    def setUp(self):
        """Set up test data"""
        cache.clear()
        self.adjuster = FeedbackWeightAdjuster(FeedbackAggregator(DjangoFeedbackStore(), DjangoTripDirectory()))

    def test_mostly_positive_adjustment(self):
        """Test mostly positive adjustment"""
        aggregation = AggregationResult(
            total_feedback=3, positive_count=2, negative_count=1,
            average_rating=11 / 3, has_minimum_threshold=True,
        )

        adjustment = self.adjuster.apply_weight_adjustment(1.0, aggregation)

        self.assertTrue(adjustment.meets_threshold)
        # (2/3 - 0.5) * 2 * 0.3
        self.assertAlmostEqual(adjustment.feedback_weight, 0.1)
        self.assertAlmostEqual(adjustment.adjusted_score, 1.1)
        self.assertIn('67% positive', adjustment.reason)
        self.assertIn('mostly positive', adjustment.reason)
        self.assertIn('increased', adjustment.reason)

    def test_below_threshold_leaves_score_unchanged(self):
        """Test below threshold leaves score unchanged"""
        aggregation = AggregationResult(total_feedback=2, positive_count=2, average_rating=5.0)

        adjustment = self.adjuster.apply_weight_adjustment(0.75, aggregation)

        self.assertFalse(adjustment.meets_threshold)
        self.assertEqual(adjustment.adjusted_score, 0.75)
        self.assertEqual(adjustment.feedback_weight, 0.0)
        self.assertEqual(adjustment.reason, 'Insufficient feedback (2/3 required)')

    def test_all_negative_hits_lower_bound(self):
        """Test all negative hits lower bound"""
        aggregation = AggregationResult(total_feedback=5, negative_count=5, average_rating=1.0)

        adjustment = self.adjuster.apply_weight_adjustment(1.0, aggregation)

        self.assertAlmostEqual(adjustment.feedback_weight, -0.3)
        self.assertIn('mostly negative', adjustment.reason)

    def test_no_rated_entries_is_neutral(self):
        """Test no rated entries is neutral"""
        aggregation = AggregationResult(total_feedback=3)

        adjustment = self.adjuster.apply_weight_adjustment(1.0, aggregation)

        self.assertEqual(adjustment.feedback_weight, 0.0)
        self.assertIn('unchanged', adjustment.reason)

    def test_trip_weight_from_stored_feedback(self):
        """Test trip weight from stored feedback"""
        for user_id, rating in (('a', 5), ('b', 4), ('c', 2)):
            make_feedback(user_id, 't-1', {'rating': rating})

        adjustment = self.adjuster.calculate_trip_weight('t-1', base_score=0.5)

        self.assertAlmostEqual(adjustment.adjusted_score, 0.5 + (2 / 3 - 0.5) * 0.6)

    def test_sort_trips_by_feedback(self):
        """Test sort trips by feedback"""
        for user_id in ('a', 'b', 'c'):
            make_feedback(user_id, 'liked', {'rating': 5})
            make_feedback(user_id, 'disliked', {'rating': 1})

        ranked = self.adjuster.sort_trips_by_feedback([
            {'id': 'disliked'}, {'id': 'unrated'}, {'id': 'liked'},
        ])

        self.assertEqual([item.id for item in ranked], ['liked', 'unrated', 'disliked'])
        batch = self.adjuster.calculate_batch_weights(['liked', 'unrated'])
        self.assertTrue(batch['liked'].meets_threshold)
        self.assertFalse(batch['unrated'].meets_threshold)

    def test_sort_keeps_explicit_zero_base_score(self):
        """Test sort keeps explicit zero base score"""
        ranked = self.adjuster.sort_trips_by_feedback([{'id': 't-1', 'base_score': 0.0}, {'id': 't-2'}])

        self.assertEqual(ranked[0].id, 't-2')
        self.assertEqual(ranked[1].adjustment.base_score, 0.0)
        self.assertEqual(ranked[1].score, 0.0)


class BiasMonitorTestCase(TestCase):
    """Test cases for BiasMonitor"""

    def setUp(self):
        """Set up test data"""
        self.trust_store = DjangoTrustStore()
        self.weight_store = DjangoCategoryWeightStore()
        self.monitor = BiasMonitor(self.trust_store, self.weight_store)

    def test_all_flags_in_one_report(self):
        """Test all flags in one report"""
        self.weight_store.upsert('u-1', 'nightlife', 0.55, 12)
        self.weight_store.upsert('u-1', 'beach', 1.9, 15)
        self.weight_store.upsert('u-1', 'culture', 1.0, 4)
        self.trust_store.upsert('u-1', 0.15)

        with self.assertLogs('feedback.bias_monitor', level='WARNING'):
            report = self.monitor.detect_user_bias('u-1')

        self.assertTrue(report.is_flagged)
        self.assertEqual(report.suppressed_categories, ['nightlife'])
        self.assertEqual(report.over_weighted_categories, ['beach'])
        self.assertEqual(report.trust_score, 0.15)
        self.assertEqual(len(report.reasons), 3)

    def test_unknown_user_is_not_flagged(self):
        """Test unknown user is not flagged"""
        report = self.monitor.detect_user_bias('nobody')

        self.assertFalse(report.is_flagged)
        self.assertEqual(report.trust_score, 0.5)
        self.assertEqual(report.reasons, [])

    def test_system_scan_returns_flagged_candidates_only(self):
        """Test system scan returns flagged candidates only"""
        self.weight_store.upsert('u-1', 'beach', 1.95, 20)
        self.weight_store.upsert('u-1', 'hiking', 1.85, 20)
        self.weight_store.upsert('u-2', 'beach', 1.2, 5)
        self.trust_store.upsert('u-3', 0.1)

        reports = self.monitor.run_system_bias_scan()

        self.assertEqual([report.user_id for report in reports], ['u-1'])
        self.assertEqual(reports[0].over_weighted_categories, ['beach', 'hiking'])

    def test_summary_stats(self):
        """Test get_bias_summary_stats counts and rates"""
        self.weight_store.upsert('u-1', 'beach', 0.5, 20)
        self.weight_store.upsert('u-2', 'beach', 2.0, 20)
        self.weight_store.upsert('u-3', 'beach', 1.0, 20)
        self.weight_store.upsert('u-4', 'beach', 1.1, 20)

        stats = self.monitor.get_bias_summary_stats()

        self.assertEqual(stats['total_category_weights'], 4)
        self.assertEqual(stats['suppressed_count'], 1)
        self.assertEqual(stats['over_weighted_count'], 1)
        self.assertEqual(stats['suppression_rate'], '25.00%')
        self.assertEqual(stats['thresholds'], {'suppression_below': 0.6, 'over_weight_above': 1.8})

    def test_summary_stats_without_rows(self):
        """Test summary stats without rows"""
        stats = self.monitor.get_bias_summary_stats()

        self.assertEqual(stats['suppression_rate'], '0%')
        self.assertEqual(stats['over_weight_rate'], '0%')

    def test_scan_survives_store_failure(self):
        """Test scan survives store failure"""
        failing_store = MagicMock()
        failing_store.list_extreme.side_effect = FeedbackDependencyError('db down')
        monitor = BiasMonitor(self.trust_store, failing_store)

        with self.assertLogs('feedback.bias_monitor', level='ERROR'):
            self.assertEqual(monitor.run_system_bias_scan(), [])

    def test_summary_stats_survive_store_failure(self):
        """Test summary stats survive store failure"""
        failing_store = MagicMock(spec=CategoryWeightStore)
        failing_store.count_all.side_effect = FeedbackDependencyError('db down')
        monitor = BiasMonitor(self.trust_store, failing_store)

        with self.assertLogs('feedback.bias_monitor', level='ERROR'):
            stats = monitor.get_bias_summary_stats()

        self.assertEqual(stats['total_category_weights'], 0)
        self.assertEqual(stats['suppressed_count'], 0)
        self.assertEqual(stats['over_weighted_count'], 0)
        self.assertEqual(stats['suppression_rate'], '0%')
        self.assertEqual(stats['over_weight_rate'], '0%')


class AggregationValidatorTestCase(TestCase):
    """Test cases for AggregationValidator"""

    def setUp(self):
        """Set up test data"""
        self.now = timezone.now()

    def test_duplicate_feedback_detected(self):
        """Test duplicate feedback detected"""
        store = InMemoryFeedbackStore([
            record('t-1', 5, self.now),
            record('t-1', 4, self.now),
        ])
        validator = AggregationValidator(store, InMemoryTrustStore())

        with self.assertLogs('feedback.aggregation_validator', level='ERROR'):
            result = validator.validate_user_aggregation('u-1', now=self.now)

        self.assertTrue(result.is_duplicate)
        self.assertIn('Duplicate feedback detected: 2 entries for 1 unique trips', result.issues)

    def test_corrupted_feedback_detected(self):
        """Test corrupted feedback detected"""
        make_feedback('u-1', 't-1', {'rating': 'five'})
        make_feedback('u-1', 't-2', {'rating': 4})
        validator = AggregationValidator(DjangoFeedbackStore(), DjangoTrustStore())

        result = validator.validate_user_aggregation('u-1')

        self.assertTrue(result.is_corrupted)
        self.assertFalse(result.is_duplicate)
        self.assertEqual(result.feedback_count, 2)

    def test_trust_discrepancy_detected(self):
        """Test trust discrepancy detected"""
        store = InMemoryFeedbackStore([record('t-1', 5, self.now)])
        validator = AggregationValidator(store, InMemoryTrustStore({'u-1': 0.40}))

        result = validator.validate_user_aggregation('u-1', now=self.now)

        self.assertTrue(result.discrepancy_detected)
        self.assertAlmostEqual(result.computed_trust_score, 0.6)
        self.assertEqual(result.stored_trust_score, 0.40)

    def test_within_tolerance_passes(self):
        """Test within tolerance passes"""
        store = InMemoryFeedbackStore([record('t-1', 5, self.now)])
        validator = AggregationValidator(store, InMemoryTrustStore({'u-1': 0.595}))

        result = validator.validate_user_aggregation('u-1', now=self.now)

        self.assertFalse(result.discrepancy_detected)
        self.assertEqual(result.issues, [])

    def test_consistent_state_after_processing(self):
        """Test consistent state after processing"""
        engine = build_engine()
        engine.feedback_service.submit_feedback('u-1', 't-1', 5)
        engine.feedback_service.submit_feedback('u-1', 't-2', 1)

        result = engine.validator.validate_user_aggregation('u-1')

        self.assertFalse(result.discrepancy_detected)
        self.assertFalse(result.is_duplicate)
        self.assertFalse(result.is_corrupted)

    def test_system_validation(self):
        """Test run_system_validation totals"""
        store = InMemoryFeedbackStore([
            record('t-1', 5, self.now, user_id='u-1'),
            record('t-1', 5, self.now, user_id='u-1'),
            record('t-2', None, self.now, user_id='u-2'),
            record('t-3', 4, self.now, user_id='u-3'),
        ])
        trust_store = InMemoryTrustStore({'u-1': 0.1, 'u-2': 0.5})
        validator = AggregationValidator(store, trust_store, sample_size=20)

        report = validator.run_system_validation()

        self.assertEqual(report.total_feedbacks, 4)
        self.assertEqual(report.unique_user_trip_pairs, 3)
        self.assertEqual(report.duplicates_detected, 1)
        self.assertEqual(report.corrupted_entries, 1)
        self.assertEqual(report.users_with_discrepancy, 1)
        self.assertTrue(report.validated_at)

    def test_system_validation_samples_users(self):
        """Test system validation samples users"""
        store = InMemoryFeedbackStore([record('t-1', 5, self.now, user_id=f'u-{i:02d}') for i in range(30)])
        trust_store = InMemoryTrustStore({f'u-{i:02d}': 0.0 for i in range(30)})

        report = AggregationValidator(store, trust_store, sample_size=20).run_system_validation()

        self.assertEqual(report.users_with_discrepancy, 20)

    def test_system_validation_survives_store_failure(self):
        """Test system validation survives store failure"""
        failing_store = MagicMock(spec=FeedbackStore)
        failing_store.count_all.side_effect = FeedbackDependencyError('db down')
        validator = AggregationValidator(failing_store, InMemoryTrustStore(), sample_size=20)

        with self.assertLogs('feedback.aggregation_validator', level='ERROR'):
            report = validator.run_system_validation()

        self.assertEqual(report.total_feedbacks, 0)
        self.assertEqual(report.unique_user_trip_pairs, 0)
        self.assertEqual(report.duplicates_detected, 0)
        self.assertEqual(report.corrupted_entries, 0)
        self.assertEqual(report.users_with_discrepancy, 0)
        self.assertTrue(report.validated_at)
        failing_store.list_by_user.assert_not_called()


class FeedbackServiceTestCase(TestCase):
    """Test cases for the submission path"""

    def setUp(self):
        """Set up test data"""
        cache.clear()
        self.engine = build_engine()
        self.service = self.engine.feedback_service

    def test_invalid_ratings_rejected_before_writing(self):
        """Test invalid ratings rejected before writing"""
        for rating in (0, 6, 4.5, True, '5', None):
            with self.assertRaises(FeedbackInputError):
                self.service.submit_feedback('u-1', 't-1', rating)

        self.assertFalse(PlannerFeedback.objects.exists())
        self.assertFalse(UserFeedbackSignal.objects.exists())

    def test_malformed_category_rejected(self):
        """Test malformed category rejected"""
        with self.assertRaises(FeedbackInputError):
            self.service.submit_feedback('u-1', 't-1', 4, category='  ')
        with self.assertRaises(FeedbackInputError):
            self.service.submit_feedback('u-1', 't-1', 4, categories={'food': 9})

        self.assertFalse(PlannerFeedback.objects.exists())

    def test_submit_updates_learned_state(self):
        """Test submit updates learned state"""
        stored = self.service.submit_feedback('u-1', 't-1', 5, category='beach', categories={'food': 4})

        self.assertEqual(stored.rating, 5)
        self.assertEqual(stored.categories, {'food': 4})
        signal = UserFeedbackSignal.objects.get(user_id='u-1')
        self.assertAlmostEqual(signal.trust_score, 0.6, places=4)
        weight = UserCategoryWeight.objects.get(user_id='u-1', category='beach')
        self.assertEqual(weight.weight, 1.0)
        self.assertEqual(weight.feedback_count, 1)

    def test_resubmission_replaces_rating(self):
        """Test resubmission replaces rating"""
        first = self.service.submit_feedback('u-1', 't-1', 5)
        self.service.submit_feedback('u-1', 't-1', 1)

        row = PlannerFeedback.objects.get(user_id='u-1', entity_id='t-1')
        self.assertEqual(row.feedback_value, {'rating': 1})
        self.assertEqual(row.created_at, first.created_at)

    def test_submit_invalidates_cached_aggregations(self):
        """Test submit invalidates cached aggregations"""
        user = get_user_model().objects.create_user(username='planner', password='testpass123')
        trip = Itinerary.objects.create(user=user, title='Hill country', destination='Ella')
        trip_id = str(trip.id)

        self.assertEqual(self.engine.aggregator.aggregate_by_entity(trip_id).total_feedback, 0)
        self.assertEqual(self.engine.aggregator.aggregate_by_destination('Ella').total_feedback, 0)
        self.assertEqual(self.engine.aggregator.aggregate_by_category('views').total_feedback, 0)

        self.service.submit_feedback('u-1', trip_id, 5, categories={'views': 5})

        self.assertEqual(self.engine.aggregator.aggregate_by_entity(trip_id).total_feedback, 1)
        self.assertEqual(self.engine.aggregator.aggregate_by_destination('Ella').total_feedback, 1)
        self.assertEqual(self.engine.aggregator.aggregate_by_category('views').total_feedback, 1)

    def test_process_feedback_is_idempotent(self):
        """Test repeated processing at a fixed clock stores the same trust"""
        now = timezone.now()
        make_feedback('u-1', 't-1', {'rating': 4}, created_at=now - timedelta(days=2))

        first = self.service.process_feedback('u-1', 't-1', 4, now=now)
        second = self.service.process_feedback('u-1', 't-1', 4, now=now)

        self.assertEqual(first.trust_score, second.trust_score)
        self.assertEqual(UserFeedbackSignal.objects.get(user_id='u-1').trust_score, second.trust_score)

    def test_submit_feedback_uses_given_clock(self):
        """Test the decay clock passed to submit_feedback reaches the trust engine"""
        later = timezone.now() + timedelta(days=50)

        first = self.service.submit_feedback('u-1', 't-1', 5, now=later)
        second = self.service.submit_feedback('u-1', 't-1', 5, now=later)

        expected = compute_trust_score([first], later).trust_score
        self.assertLess(expected, 0.6)
        self.assertEqual(UserFeedbackSignal.objects.get(user_id='u-1').trust_score, expected)
        self.assertEqual(second.created_at, first.created_at)

    def test_store_failure_propagates(self):
        """Test store failure propagates"""
        failing_trust = MagicMock(spec=TrustStore)
        failing_trust.get.side_effect = FeedbackDependencyError('db down')
        engine = build_engine(trust_store=failing_trust)

        with self.assertRaises(FeedbackDependencyError):
            engine.feedback_service.process_feedback('u-1', 't-1', 5)

    def test_weights_stay_bounded_under_volume(self):
        """Test weights stay bounded under volume"""
        for i in range(60):
            self.service.submit_feedback('u-1', f't-{i}', 5, category='beach')
            self.service.submit_feedback('u-2', f't-{i}', 1, category='beach')

        self.assertEqual(UserCategoryWeight.objects.get(user_id='u-1').weight, 2.0)
        self.assertEqual(UserCategoryWeight.objects.get(user_id='u-2').weight, 0.5)
        for signal in UserFeedbackSignal.objects.all():
            self.assertGreaterEqual(signal.trust_score, 0.0)
            self.assertLessEqual(signal.trust_score, 1.0)


class StoreTestCase(TestCase):
    """Test cases for the Django store adapters"""

    def test_trust_upsert_bumps_version(self):
        """Test trust upsert bumps version"""
        store = DjangoTrustStore()

        created = store.upsert('u-1', 0.7)
        updated = store.upsert('u-1', 0.4, positive_count=1)

        self.assertEqual(created.version, 1)
        self.assertEqual(updated.version, 2)
        self.assertEqual(store.get('u-1').trust_score, 0.4)

    def test_list_extreme(self):
        """Test list_extreme selects weights outside the bounds"""
        store = DjangoCategoryWeightStore()
        store.upsert('u-1', 'a', 0.5, 10)
        store.upsert('u-1', 'b', 1.0, 10)
        store.upsert('u-2', 'a', 1.9, 10)

        extreme = store.list_extreme(0.6, 1.8)

        self.assertEqual([(cw.user_id, cw.category) for cw in extreme], [('u-1', 'a'), ('u-2', 'a')])

    def test_distinct_pairs_and_users(self):
        """Test distinct pairs and users"""
        store = DjangoFeedbackStore()
        store.insert_or_replace('u-2', 't-1', 5)
        store.insert_or_replace('u-1', 't-1', 4)
        store.insert_or_replace('u-1', 't-1', 3)

        self.assertEqual(store.count_all(), 2)
        self.assertEqual(store.count_distinct_pairs(), 2)
        self.assertEqual(store.list_user_ids(limit=1), ['u-1'])
        self.assertEqual(store.count_by_user('u-1'), 1)

    def test_create_reports_existing_row(self):
        """Test create reports existing row"""
        store = DjangoCategoryWeightStore()

        created = store.create('u-1', 'beach', 1.0, 1)
        duplicate = store.create('u-1', 'beach', 1.0, 1)

        self.assertEqual(created.version, 1)
        self.assertIsNone(duplicate)
        self.assertEqual(UserCategoryWeight.objects.filter(user_id='u-1', category='beach').count(), 1)

    def test_destination_lookup_ignores_non_trip_ids(self):
        """Test destination lookup ignores non-trip ids"""
        self.assertIsNone(DjangoTripDirectory().destination_for_entity('food'))


class FeedbackAPITestCase(APITestCase):
    """Test cases for the feedback API endpoints"""

    def setUp(self):
        """Set up test data"""
        cache.clear()

    def test_submit_feedback(self):
        """Test submit endpoint stores feedback and trust"""
        url = reverse('feedback:submit_feedback')
        response = self.client.post(url, {'user_id': 'u-1', 'entity_id': 't-1', 'rating': 4, 'category': 'beach'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['rating'], 4)
        self.assertTrue(UserFeedbackSignal.objects.filter(user_id='u-1').exists())

    def test_submit_out_of_range_rating(self):
        """Test submit out of range rating"""
        url = reverse('feedback:submit_feedback')
        response = self.client.post(url, {'user_id': 'u-1', 'entity_id': 't-1', 'rating': 7}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(PlannerFeedback.objects.exists())

    def test_rank_trips(self):
        """Test rank endpoint orders trips by final score"""
        url = reverse('feedback:rank_trips')
        payload = {
            'user_id': 'u-1',
            'trips': [
                {'id': 'low', 'base_score': 0.2, 'category': 'beach'},
                {'id': 'high', 'base_score': 0.9, 'category': 'beach'},
            ],
        }
        response = self.client.post(url, payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([trip['id'] for trip in response.data['trips']], ['high', 'low'])

    def test_compute_score(self):
        """Test score endpoint for a user without history"""
        response = self.client.post(reverse('feedback:compute_score'), {'user_id': 'u-1', 'base_score': 1.0}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertAlmostEqual(response.data['final_score'], 0.8)

    def test_aggregation_requires_a_target(self):
        """Test aggregation requires a target"""
        response = self.client.get(reverse('feedback:aggregation'))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_weight_adjustment(self):
        """Test adjustment endpoint for a trip"""
        for user_id in ('a', 'b', 'c'):
            make_feedback(user_id, 't-1', {'rating': 5})

        response = self.client.get(reverse('feedback:weight_adjustment'), {'entity_id': 't-1', 'base_score': '1.0'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertAlmostEqual(response.data['adjusted_score'], 1.3)

    def test_weight_adjustment_rejects_non_finite_base_score(self):
        """Test adjustment endpoint rejects non-finite base_score"""
        url = reverse('feedback:weight_adjustment')

        for value in ('nan', 'inf', '-inf', 'abc'):
            response = self.client.get(url, {'entity_id': 't-1', 'base_score': value})
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_bias_and_validation_endpoints(self):
        """Test bias and validation endpoints"""
        DjangoCategoryWeightStore().upsert('u-1', 'beach', 0.5, 10)

        bias = self.client.get(reverse('feedback:user_bias', args=['u-1']))
        scan = self.client.post(reverse('feedback:bias_scan'))
        stats = self.client.get(reverse('feedback:bias_stats'))
        validation = self.client.get(reverse('feedback:user_validation', args=['u-1']))
        system = self.client.post(reverse('feedback:system_validation'))
        state = self.client.get(reverse('feedback:user_state', args=['u-1']))

        self.assertTrue(bias.data['is_flagged'])
        self.assertEqual(len(scan.data['flagged_users']), 1)
        self.assertEqual(stats.data['suppressed_count'], 1)
        self.assertEqual(validation.data['feedback_count'], 0)
        self.assertEqual(system.data['total_feedbacks'], 0)
        self.assertEqual(state.data['category_weights'][0]['category'], 'beach')
        self.assertIsNone(state.data['signal'])
