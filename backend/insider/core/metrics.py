"""
Prometheus metrics configuration
"""
from prometheus_client import (CONTENT_TYPE_LATEST, REGISTRY, Counter, Gauge,
                               Histogram, Info, generate_latest)

from insider.core.config import get_settings

# ============================================================================
# HTTP Request Metrics
# ============================================================================

http_requests_total = Counter(
    'http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint', 'status_code'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

http_errors_total = Counter(
    'http_errors_total',
    'Total number of HTTP errors',
    ['method', 'endpoint', 'status_code', 'error_type']
)

# ============================================================================
# LLM Request Metrics
# ============================================================================

llm_requests_total = Counter(
    'llm_requests_total',
    'Total number of LLM requests',
    ['model', 'feature', 'status']
)

llm_request_duration_seconds = Histogram(
    'llm_request_duration_seconds',
    'LLM request duration in seconds',
    ['model', 'feature'],
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0)
)

llm_tokens_total = Counter(
    'llm_tokens_total',
    'Total number of tokens processed',
    ['model', 'type']  # type: 'input' or 'output'
)

llm_errors_total = Counter(
    'llm_errors_total',
    'Total number of LLM errors',
    ['model', 'error_type']
)

llm_key_fallbacks_total = Counter(
    'llm_key_fallbacks_total',
    'Requests retried with the site API key after a user key was rejected',
    []
)

# ============================================================================
# E2EE Metrics
# ============================================================================

e2ee_prekeys_uploaded_total = Counter(
    'e2ee_prekeys_uploaded_total',
    'Total number of one-time prekeys uploaded',
    []
)

e2ee_prekey_claims_total = Counter(
    'e2ee_prekey_claims_total',
    'Total number of one-time prekey claims',
    ['result']  # result: 'claimed', 'exhausted'
)

e2ee_megolm_shares_total = Counter(
    'e2ee_megolm_shares_total',
    'Total number of Megolm session shares stored',
    []
)

sas_verifications_total = Counter(
    'sas_verifications_total',
    'SAS verification transitions',
    ['status']  # status: 'started', 'verified', 'cancelled', 'expired', ...
)

# ============================================================================
# Content Metrics
# ============================================================================

discovery_decisions_total = Counter(
    'discovery_decisions_total',
    'Discovery queue review decisions',
    ['decision']  # decision: 'approved', 'rejected', 'duplicate', 'needs_info'
)

achievements_awarded_total = Counter(
    'achievements_awarded_total',
    'Achievements awarded to users',
    ['tier']
)

ai_consent_checks_total = Counter(
    'ai_consent_checks_total',
    'AI consent checks for encrypted conversations',
    ['feature', 'result']  # result: 'allowed', 'denied'
)

rag_index_chunks = Gauge(
    'rag_index_chunks',
    'Number of documentation chunks in the RAG index',
    []
)

# ============================================================================
# Database Metrics
# ============================================================================

db_queries_total = Counter(
    'db_queries_total',
    'Total number of database queries',
    ['operation', 'table']  # operation: 'select', 'insert', 'update', 'delete'
)

db_query_duration_seconds = Histogram(
    'db_query_duration_seconds',
    'Database query duration in seconds',
    ['operation', 'table'],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5)
)

db_connection_pool_size = Gauge(
    'db_connection_pool_size',
    'Database connection pool size',
    ['state']  # state: 'active', 'idle'
)

# ============================================================================
# System Info
# ============================================================================

app_info = Info(
    'app_info',
    'Application information'
)

_settings = get_settings()
app_info.info({
    'app_name': _settings.app_name,
    'app_env': _settings.app_env,
    'version': '1.0.0'
})


def get_metrics():
    """
    Get Prometheus metrics in text format

    Returns:
        bytes: Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def get_metrics_content_type():
    """Content type for the metrics endpoint"""
    return CONTENT_TYPE_LATEST
