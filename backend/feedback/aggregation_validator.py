"""
AggregationValidator: audits stored feedback and trust signals for
duplicates, corrupted rows and drift between computed and stored trust.
Findings are returned as data for operators; nothing here raises on a finding.
"""
import logging
from collections import Counter
from datetime import datetime
from typing import Optional

from django.utils import timezone

from feedback.conf import engine_setting
from feedback.dtos import AggregationValidationResult, SystemAggregationReport
from feedback.exceptions import FeedbackDependencyError
from feedback.stores import FeedbackStore, TrustStore
from feedback.trust_engine import compute_trust_score

logger = logging.getLogger(__name__)


class AggregationValidator:

    # Maximum allowed difference between recomputed and stored trust scores
    TRUST_SCORE_TOLERANCE = 0.01

    def __init__(self, feedback_store: FeedbackStore, trust_store: TrustStore,
                 sample_size: Optional[int] = None):
        self.feedback_store = feedback_store
        self.trust_store = trust_store
        self.sample_size = sample_size if sample_size is not None else engine_setting('VALIDATION_SAMPLE_SIZE')

    def validate_user_aggregation(self, user_id: str, now: Optional[datetime] = None) -> AggregationValidationResult:
        issues = []
        records = self.feedback_store.list_by_user(user_id)

        # The unique (user, entity) constraint should make this impossible
        entity_counts = Counter(record.entity_id for record in records)
        is_duplicate = any(count > 1 for count in entity_counts.values())
        if is_duplicate:
            issues.append(
                f"Duplicate feedback detected: {len(records)} entries for {len(entity_counts)} unique trips"
            )
            logger.error(f"Duplicate feedback for user={user_id}")

        corrupted = [record for record in records if record.is_corrupted]
        is_corrupted = len(corrupted) > 0
        if is_corrupted:
            issues.append(f"{len(corrupted)} corrupted feedback entries (missing/invalid rating)")
            logger.error(f"Corrupted entries for user={user_id}: {len(corrupted)}")

        computed_trust_score = None
        if records:
            computed_trust_score = compute_trust_score(records, now).trust_score

        stored_signal = self.trust_store.get(user_id)
        stored_trust_score = stored_signal.trust_score if stored_signal is not None else None

        discrepancy_detected = (
            computed_trust_score is not None
            and stored_trust_score is not None
            and abs(computed_trust_score - stored_trust_score) > self.TRUST_SCORE_TOLERANCE
        )
        if discrepancy_detected:
            issues.append(
                f"Trust score discrepancy: computed={computed_trust_score:.4f}, stored={stored_trust_score:.4f}"
            )
            logger.warning(
                f"Trust score discrepancy for user={user_id}: "
                f"computed={computed_trust_score:.4f}, stored={stored_trust_score:.4f}"
            )

        if not issues:
            logger.info(f"User {user_id} passed aggregation validation ({len(records)} feedbacks)")

        return AggregationValidationResult(
            user_id=user_id,
            feedback_count=len(records),
            computed_trust_score=computed_trust_score,
            stored_trust_score=stored_trust_score,
            is_duplicate=is_duplicate,
            is_corrupted=is_corrupted,
            discrepancy_detected=discrepancy_detected,
            issues=issues,
        )

    def run_system_validation(self) -> SystemAggregationReport:
        """
        Batch Job: system-wide duplicate and corruption counts, plus a trust
        recomputation for a sample of users.
        """
        logger.info("Running system-wide aggregation validation...")

        try:
            total_feedbacks = self.feedback_store.count_all()
            unique_pairs = self.feedback_store.count_distinct_pairs()
            corrupted_entries = sum(1 for record in self.feedback_store.list_all() if record.is_corrupted)
            sample_users = self.feedback_store.list_user_ids(self.sample_size)
        except FeedbackDependencyError:
            logger.exception("System validation could not read feedback")
            total_feedbacks = unique_pairs = corrupted_entries = 0
            sample_users = []

        users_with_discrepancy = 0
        for user_id in sample_users:
            try:
                result = self.validate_user_aggregation(user_id)
            except FeedbackDependencyError:
                logger.exception(f"Validation failed for user={user_id}, skipping")
                continue
            if result.discrepancy_detected:
                users_with_discrepancy += 1

        report = SystemAggregationReport(
            total_feedbacks=total_feedbacks,
            unique_user_trip_pairs=unique_pairs,
            duplicates_detected=total_feedbacks - unique_pairs,
            corrupted_entries=corrupted_entries,
            users_with_discrepancy=users_with_discrepancy,
            validated_at=timezone.now().isoformat(),
        )
        logger.info(f"System validation complete: {report}")
        return report
