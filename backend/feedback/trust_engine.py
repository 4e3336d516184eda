"""
TrustScoreEngine: turns a user's rating history into a single trust value.

Each rating is weighted by an exponential recency decay, positive (>= 4) and
negative (<= 2) mass is accumulated separately, and a Bayesian prior keeps
sparse histories close to neutral. Rating 3 carries no trust signal.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from django.db import transaction
from django.utils import timezone

from feedback.dtos import FeedbackRecord, TrustSignal
from feedback.stores import FeedbackStore, TrustStore

logger = logging.getLogger(__name__)

DECAY_LAMBDA = 0.02  # per day
PRIOR = 2
NEUTRAL_TRUST = 0.5
POSITIVE_MIN_RATING = 4
NEGATIVE_MAX_RATING = 2


@dataclass
class TrustComputation:
    trust_score: float
    weighted_positive: float = 0.0
    weighted_negative: float = 0.0
    neutral_count: int = 0


def decay_weight(created_at: datetime, now: datetime, decay_lambda: float = DECAY_LAMBDA) -> float:
    """
    exp(-lambda * days_old). Rows stamped in the future count as brand new.
    """
    days_old = max(0.0, (now - created_at).total_seconds() / 86400.0)
    return math.exp(-decay_lambda * days_old)


def compute_trust_score(records: Iterable[FeedbackRecord], now: Optional[datetime] = None,
                        decay_lambda: float = DECAY_LAMBDA, prior: float = PRIOR) -> TrustComputation:
    """
    Formula:
    trust = (weighted_positive + PRIOR) / (weighted_positive + weighted_negative + 2 * PRIOR)

    Records without a numeric rating are skipped. The result is clamped to [0, 1].
    An empty history yields exactly the neutral prior (0.5).
    """
    now = now or timezone.now()
    weighted_positive = 0.0
    weighted_negative = 0.0
    neutral_count = 0

    for record in records:
        if record.rating is None:
            continue

        weight = decay_weight(record.created_at, now, decay_lambda)
        if record.rating >= POSITIVE_MIN_RATING:
            weighted_positive += weight
        elif record.rating <= NEGATIVE_MAX_RATING:
            weighted_negative += weight
        else:
            neutral_count += 1

    raw_trust = (weighted_positive + prior) / (weighted_positive + weighted_negative + prior * 2)

    return TrustComputation(
        trust_score=max(0.0, min(1.0, raw_trust)),
        weighted_positive=weighted_positive,
        weighted_negative=weighted_negative,
        neutral_count=neutral_count,
    )


class TrustScoreEngine:
    """
    Recomputes and persists the TrustSignal of a user from scratch on every call,
    so repeated calls over the same history converge to the same stored value.
    """

    def __init__(self, feedback_store: FeedbackStore, trust_store: TrustStore,
                 decay_lambda: float = DECAY_LAMBDA, prior: float = PRIOR):
        self.feedback_store = feedback_store
        self.trust_store = trust_store
        self.decay_lambda = decay_lambda
        self.prior = prior

    def recalculate_trust(self, user_id: str, now: Optional[datetime] = None) -> TrustSignal:
        with transaction.atomic():
            # Serializes concurrent recalculations for the same user
            self.trust_store.get(user_id, for_update=True)

            records = self.feedback_store.list_by_user(user_id)
            if not records:
                signal = self.trust_store.upsert(user_id, NEUTRAL_TRUST)
                logger.debug(f"No feedback for user={user_id}, trust reset to neutral prior")
                return signal

            result = compute_trust_score(records, now, self.decay_lambda, self.prior)
            signal = self.trust_store.upsert(
                user_id,
                result.trust_score,
                positive_count=round(result.weighted_positive),
                negative_count=round(result.weighted_negative),
                neutral_count=result.neutral_count,
            )

        logger.debug(
            f"Trust recalculated for user={user_id}: {result.trust_score:.4f} "
            f"(+{result.weighted_positive:.3f} / -{result.weighted_negative:.3f}, {len(records)} feedbacks)"
        )
        return signal
