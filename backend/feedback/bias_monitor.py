"""
BiasMonitor: flags learned state that drifted to extremes.
"""
import logging
from typing import List

from feedback.dtos import BiasReport
from feedback.exceptions import FeedbackDependencyError
from feedback.stores import CategoryWeightStore, TrustStore

logger = logging.getLogger(__name__)


class BiasMonitor:
    """
    Monitoring Service: detects extreme category suppression, over-weighted
    categories and low trust. Flags are reported, never corrected here.
    """

    SUPPRESSION_THRESHOLD = 0.6
    OVER_WEIGHT_THRESHOLD = 1.8
    LOW_TRUST_THRESHOLD = 0.2
    DEFAULT_TRUST = 0.5

    def __init__(self, trust_store: TrustStore, weight_store: CategoryWeightStore,
                 suppression_threshold: float = 0.6, over_weight_threshold: float = 1.8,
                 low_trust_threshold: float = 0.2):
        self.trust_store = trust_store
        self.weight_store = weight_store
        self.SUPPRESSION_THRESHOLD = suppression_threshold
        self.OVER_WEIGHT_THRESHOLD = over_weight_threshold
        self.LOW_TRUST_THRESHOLD = low_trust_threshold

    def detect_user_bias(self, user_id: str) -> BiasReport:
        """
        Check one user's category weights and trust score against the thresholds.

        Returns:
            BiasReport: is_flagged is True when at least one reason was found
        """
        category_weights = self.weight_store.list_by_user(user_id)
        signal = self.trust_store.get(user_id)

        suppressed_categories: List[str] = []
        over_weighted_categories: List[str] = []
        reasons: List[str] = []

        for cw in category_weights:
            if cw.weight < self.SUPPRESSION_THRESHOLD:
                suppressed_categories.append(cw.category)
                logger.warning(
                    f"Extreme suppression detected for user={user_id}, category={cw.category}, weight={cw.weight:.3f}"
                )
            if cw.weight > self.OVER_WEIGHT_THRESHOLD:
                over_weighted_categories.append(cw.category)
                logger.warning(
                    f"Over-weighted signal detected for user={user_id}, category={cw.category}, weight={cw.weight:.3f}"
                )

        trust_score = signal.trust_score if signal is not None else self.DEFAULT_TRUST

        if suppressed_categories:
            reasons.append(
                f"Suppressed categories (weight < {self.SUPPRESSION_THRESHOLD}): {', '.join(suppressed_categories)}"
            )
        if over_weighted_categories:
            reasons.append(
                f"Over-weighted categories (weight > {self.OVER_WEIGHT_THRESHOLD}): {', '.join(over_weighted_categories)}"
            )
        if trust_score < self.LOW_TRUST_THRESHOLD:
            reasons.append(f"Low trust score: {trust_score:.3f} (threshold < {self.LOW_TRUST_THRESHOLD})")

        is_flagged = len(reasons) > 0
        if is_flagged:
            logger.warning(f"User {user_id} flagged for bias: {' | '.join(reasons)}")

        return BiasReport(
            user_id=user_id,
            suppressed_categories=suppressed_categories,
            over_weighted_categories=over_weighted_categories,
            trust_score=trust_score,
            is_flagged=is_flagged,
            reasons=reasons,
        )

    def run_system_bias_scan(self) -> List[BiasReport]:
        """
        Batch Job: runs detect_user_bias on every user owning at least one
        weight outside [SUPPRESSION_THRESHOLD, OVER_WEIGHT_THRESHOLD].
        Users flagged only for low trust are not candidates.
        """
        logger.info("Starting system-wide bias scan...")

        try:
            extreme_weights = self.weight_store.list_extreme(self.SUPPRESSION_THRESHOLD, self.OVER_WEIGHT_THRESHOLD)
        except FeedbackDependencyError:
            logger.exception("Bias scan could not load candidate users")
            return []

        candidate_ids = list(dict.fromkeys(cw.user_id for cw in extreme_weights))

        reports: List[BiasReport] = []
        for user_id in candidate_ids:
            try:
                report = self.detect_user_bias(user_id)
            except FeedbackDependencyError:
                logger.exception(f"Bias check failed for user={user_id}, skipping")
                continue
            if report.is_flagged:
                reports.append(report)

        logger.info(f"Scan complete. Flagged {len(reports)} user(s) out of {len(candidate_ids)} candidates.")
        return reports

    def get_bias_summary_stats(self) -> dict:
        """
        Counts of extreme weights across all users, for admin dashboards.
        """
        try:
            total_weights = self.weight_store.count_all()
            suppressed_count = self.weight_store.count_below(self.SUPPRESSION_THRESHOLD)
            over_weighted_count = self.weight_store.count_above(self.OVER_WEIGHT_THRESHOLD)
        except FeedbackDependencyError:
            logger.exception("Bias summary stats unavailable")
            total_weights = suppressed_count = over_weighted_count = 0

        return {
            'total_category_weights': total_weights,
            'suppressed_count': suppressed_count,
            'over_weighted_count': over_weighted_count,
            'suppression_rate': self._rate(suppressed_count, total_weights),
            'over_weight_rate': self._rate(over_weighted_count, total_weights),
            'thresholds': {
                'suppression_below': self.SUPPRESSION_THRESHOLD,
                'over_weight_above': self.OVER_WEIGHT_THRESHOLD,
            },
        }

    @staticmethod
    def _rate(count: int, total: int) -> str:
        if total <= 0:
            return '0%'
        return f"{count / total * 100:.2f}%"
