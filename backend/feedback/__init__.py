"""
Feedback Module Summary
=======================

This module turns raw trip ratings into ranking signals and audits the
learned state.

Key Features Implemented:
1. TrustScoreEngine - decayed, Bayesian-smoothed trust per user
2. CategoryWeightLearner - bounded per-category affinity with a cold-start guard
3. FeedbackAggregator - cached summaries per trip, destination and category
4. TrustWeightedRanking - multiplicative re-ranking from trust and category weights
5. FeedbackWeightAdjuster - additive, threshold-gated score adjustment
6. BiasMonitor - suppression / over-weight / low-trust flags
7. AggregationValidator - duplicate, corruption and trust drift audit

Rating 3 is neutral for trust but negative for aggregation; both rules are
intentional until product decides otherwise.
"""
