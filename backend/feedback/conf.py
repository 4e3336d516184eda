"""
Runtime settings for the feedback engine, read from settings.FEEDBACK_ENGINE.
"""
from django.conf import settings

DEFAULTS = {
    'AGGREGATION_CACHE_TTL': 600,  # seconds
    'SLOW_QUERY_MS': 200,
    'VALIDATION_SAMPLE_SIZE': 20,
    'CACHE_ALIAS': 'default',
}


def engine_setting(name: str):
    overrides = getattr(settings, 'FEEDBACK_ENGINE', None) or {}
    return overrides.get(name, DEFAULTS[name])
