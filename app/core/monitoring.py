from prometheus_client import Counter, Histogram, Info as PrometheusInfo
from prometheus_fastapi_instrumentator import Instrumentator, metrics
from prometheus_fastapi_instrumentator.metrics import Info as MetricsInfo
from fastapi import FastAPI
from functools import wraps
import time

from app.core.config import settings
from app.core.exceptions import ProviderTimeoutError, ProviderUnavailableError

# Provider calls
ai_service_requests = Counter(
    'ai_service_requests_total',
    'Calls to AI providers by outcome',
    ['service', 'endpoint', 'outcome']  # success/timeout/unavailable/error
)

ai_service_duration = Histogram(
    'ai_service_duration_seconds',
    'Wall time of AI provider calls',
    ['service', 'endpoint'],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 45.0, 60.0, 90.0)
)

ai_service_tokens = Counter(
    'ai_service_tokens_total',
    'Tokens reported by AI providers',
    ['service', 'type']  # prompt/completion
)

# Skin analysis pipeline
skin_analysis_total = Counter(
    'skin_analysis_total',
    'Total skin analyses by final outcome',
    ['outcome']  # rich/best_effort/unparseable
)

analysis_repairs = Counter(
    'skin_analysis_repairs_total',
    'Repair messages sent to the completion provider',
    ['kind']  # json/richness
)

completion_calls = Histogram(
    'skin_analysis_completion_calls',
    'Completion calls made per analysis',
    buckets=(1, 2)
)

# Best-effort collaborators
best_effort_failures = Counter(
    'best_effort_failures_total',
    'Failures of optional collaborators that were downgraded to warnings',
    ['collaborator', 'operation']  # embedding/vector_index/analysis_log
)

analysis_responses = Counter(
    'skin_analysis_http_responses_total',
    'Responses of the analyze endpoint by status code',
    ['status']
)

app_info = PrometheusInfo('app_info', 'Application information')
app_info.info({
    'version': settings.APP_VERSION,
    'name': settings.APP_NAME,
})


def _provider_outcome(error: Exception) -> str:
    if isinstance(error, ProviderTimeoutError):
        return "timeout"
    if isinstance(error, ProviderUnavailableError):
        return "unavailable"
    return "error"


def setup_metrics(app: FastAPI) -> Instrumentator:
    """
    Instrument HTTP traffic. Analysis requests run for tens of seconds, so
    latency buckets reach past the provider deadline.
    """
    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        excluded_handlers=["/metrics", "/api/health", "/"],
    )

    instrumentator.add(metrics.latency(buckets=(0.25, 1.0, 5.0, 10.0, 20.0, 30.0, 60.0, 90.0, 120.0)))
    instrumentator.add(metrics.requests())

    @instrumentator.add
    def analysis_status(info: MetricsInfo) -> None:
        if info.modified_handler == "/api/skin/analyze":
            analysis_responses.labels(status=str(info.modified_status)).inc()

    return instrumentator


def track_ai_service(service: str, endpoint: str):
    """
    Record outcome and duration of an async provider call
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            started = time.monotonic()
            outcome = "success"
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                outcome = _provider_outcome(e)
                raise
            finally:
                ai_service_requests.labels(service=service, endpoint=endpoint, outcome=outcome).inc()
                ai_service_duration.labels(service=service, endpoint=endpoint).observe(time.monotonic() - started)

        return wrapper
    return decorator
