"""
Prometheus metrics
"""

from prometheus_client import Counter, Histogram

registrations_total = Counter(
    'organ_match_registrations_total',
    'Registered donors and recipients',
    ['kind']
)
matches_created_total = Counter(
    'organ_match_matches_created_total',
    'Match records created',
    ['trigger']
)
status_transitions_total = Counter(
    'organ_match_status_transitions_total',
    'Match status transitions',
    ['status']
)
successful_transplants_total = Counter(
    'organ_match_successful_transplants_total',
    'Matches transitioned to completed'
)
refresh_duration = Histogram(
    'organ_match_refresh_duration_seconds',
    'Duration of full match refreshes'
)
