from prometheus_client import Counter, Gauge, Histogram

api_request_latency_seconds = Histogram(
    "api_request_latency_seconds",
    "API request latency in seconds",
    ["route", "method", "status"],
)

tickets_created_total = Counter(
    "tickets_created_total",
    "Total tickets created",
    ["priority"],
)

ticket_status_changes_total = Counter(
    "ticket_status_changes_total",
    "Total ticket status updates",
    ["status"],
)

ticket_messages_total = Counter(
    "ticket_messages_total",
    "Total chat messages posted on tickets",
)

emails_queued_total = Counter(
    "emails_queued_total",
    "Total emails handed to the mail worker",
    ["kind"],
)

login_attempts_total = Counter(
    "login_attempts_total",
    "Login attempts",
    ["outcome"],
)

websocket_connections = Gauge(
    "websocket_connections",
    "Currently connected WebSocket clients",
)
