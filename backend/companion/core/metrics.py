"""
Prometheus metrics configuration
"""
import os

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from prometheus_client.multiprocess import MultiProcessCollector
from prometheus_client.registry import REGISTRY, CollectorRegistry

if os.environ.get('PROMETHEUS_MULTIPROC_DIR'):
    REGISTRY = CollectorRegistry()
    MultiProcessCollector(REGISTRY)

# ============================================================================
# Pipeline Metrics
# ============================================================================

pipeline_turns_total = Counter(
    'companion_pipeline_turns_total',
    'Total number of processed turns',
    ['status']  # status: 'success', 'failed'
)

pipeline_stage_duration_seconds = Histogram(
    'companion_pipeline_stage_duration_seconds',
    'Pipeline stage duration in seconds',
    ['stage'],
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
)

pipeline_errors_total = Counter(
    'companion_pipeline_errors_total',
    'Total number of pipeline infrastructure failures',
    ['stage']
)

classification_fallbacks_total = Counter(
    'companion_classification_fallbacks_total',
    'Classifier failures replaced by a conservative fallback',
    ['classifier']
)

# ============================================================================
# Enrichment and Orchestration Metrics
# ============================================================================

domain_extractions_total = Counter(
    'companion_domain_extractions_total',
    'Domain extraction outcomes',
    ['domain', 'outcome']  # outcome: 'accepted', 'below_threshold', 'empty', 'failed'
)

orchestrations_total = Counter(
    'companion_orchestrations_total',
    'Response orchestration outcomes',
    ['outcome']  # outcome: 'single', 'primary_only', 'composed', 'fallback', 'generic'
)

handler_failures_total = Counter(
    'companion_handler_failures_total',
    'Mode handler failures and timeouts during orchestration',
    ['mode', 'reason']
)

# ============================================================================
# LLM Request Metrics
# ============================================================================

llm_requests_total = Counter(
    'companion_llm_requests_total',
    'Total number of LLM requests',
    ['model', 'task_type', 'status']
)

llm_request_duration_seconds = Histogram(
    'companion_llm_request_duration_seconds',
    'LLM request duration in seconds',
    ['model', 'task_type'],
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0)
)


def get_metrics() -> bytes:
    """Render metrics in Prometheus text format"""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Content type for the metrics endpoint"""
    return CONTENT_TYPE_LATEST
