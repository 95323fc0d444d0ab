"""
Prometheus metrics definitions for the API and Celery workers.
All metrics are registered here and can be imported by other modules.
"""
from prometheus_client import Counter, Histogram

# HTTP request metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'path', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'path'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Error metrics
errors_total = Counter(
    'errors_total',
    'Total errors',
    ['error_type']
)

# Authorization metrics
key_verifications_total = Counter(
    'key_verifications_total',
    'Key verification attempts by outcome',
    ['outcome']  # valid, invalid, error
)

key_verification_duration_seconds = Histogram(
    'key_verification_duration_seconds',
    'Key verification service latency in seconds',
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

# Quota metrics
quota_decisions_total = Counter(
    'quota_decisions_total',
    'Quota gate decisions',
    ['resource', 'decision']
)

usage_consumed_total = Counter(
    'usage_consumed_total',
    'Metered consumption recorded',
    ['resource']  # tokens, audio_minutes
)

usage_recording_failures_total = Counter(
    'usage_recording_failures_total',
    'Usage increments that failed to persist',
    ['resource']
)

usage_resets_total = Counter(
    'usage_resets_total',
    'Records reset by the periodic resetter',
    ['tier']  # subscriber, free
)

scheduled_jobs_total = Counter(
    'scheduled_jobs_total',
    'Scheduled job runs by outcome',
    ['job', 'status']  # success, failure
)

scheduled_job_duration_seconds = Histogram(
    'scheduled_job_duration_seconds',
    'Scheduled job duration in seconds',
    ['job'],
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0]
)

analytics_failures_total = Counter(
    'analytics_failures_total',
    'Analytics events that failed to send'
)

# AI provider metrics
ai_provider_requests_total = Counter(
    'ai_provider_requests_total',
    'Total AI provider requests',
    ['provider', 'operation']
)

ai_provider_failures_total = Counter(
    'ai_provider_failures_total',
    'Total AI provider failures',
    ['provider', 'operation']
)

ai_provider_latency_seconds = Histogram(
    'ai_provider_latency_seconds',
    'AI provider request latency in seconds',
    ['provider', 'operation'],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0]
)

ai_provider_tokens_total = Counter(
    'ai_provider_tokens_total',
    'Total AI provider tokens used',
    ['provider', 'operation', 'token_type']
)
