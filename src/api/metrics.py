from prometheus_client import REGISTRY, Counter, Histogram


# we check if they are already registered to avoid errors during hot reloads or test runs
def get_or_create_metric(name, documentation, metric_type, **kwargs):
    try:
        return metric_type(name, documentation, **kwargs)
    except ValueError:
        return REGISTRY._names_to_collectors[name]


REQUESTS_TOTAL = get_or_create_metric(
    "chatmate_requests_total",
    "Total requests",
    Counter,
    labelnames=["endpoint", "status"],
)

REQUEST_LATENCY_SECONDS = get_or_create_metric(
    "chatmate_request_latency_seconds",
    "Request latency",
    Histogram,
    labelnames=["endpoint"],
)

TASKS_CREATED_TOTAL = get_or_create_metric(
    "chatmate_tasks_created_total",
    "Tasks created from chat turns",
    Counter,
    labelnames=["kind"],
)

CONFIRMATIONS_REQUESTED_TOTAL = get_or_create_metric(
    "chatmate_meeting_confirmations_requested_total",
    "Meeting confirmation questions sent to users",
    Counter,
)

MEETINGS_SCHEDULED_TOTAL = get_or_create_metric(
    "chatmate_meetings_scheduled_total",
    "Calendar meetings created",
    Counter,
    labelnames=["task_linked"],
)

LLM_CALLS_TOTAL = get_or_create_metric(
    "chatmate_llm_calls_total",
    "LLM calls by purpose (classify, topic, answer) and outcome",
    Counter,
    labelnames=["purpose", "outcome"],
)
