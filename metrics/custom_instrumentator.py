from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

instrumentator = Instrumentator(
    should_ignore_untemplated=True,      # /foo/123 -> /foo/{id}
    excluded_handlers=["/metrics"],
    should_instrument_requests_inprogress=True,
    should_group_status_codes=False,
)

# outcome: queued | dropped | written | failed
audit_events_total = Counter(
    "printstore_audit_events_total",
    "Audit log entries by outcome",
    ["outcome"],
)

payment_verifications_total = Counter(
    "printstore_payment_verifications_total",
    "Payment verification attempts by result",
    ["result"],
)
