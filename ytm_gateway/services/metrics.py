from prometheus_client import Counter, Gauge, make_asgi_app

# Rate limiting
gateway_rate_limit_decisions = Counter(
    "gateway_rate_limit_decisions_total", "Rate limiter decisions", ["decision"]
)
gateway_rate_limit_tracked_clients = Gauge(
    "gateway_rate_limit_tracked_clients", "Client windows currently held by the rate limiter"
)

# Upstream
gateway_upstream_errors = Counter(
    "gateway_upstream_errors_total", "Upstream provider failures by operation", ["operation"]
)

# Relay
gateway_relay_active = Gauge("gateway_relay_active", "Relay sessions currently streaming")
gateway_relay_bytes = Counter("gateway_relay_bytes_total", "Bytes relayed from upstream to clients")
gateway_relay_outcomes = Counter(
    "gateway_relay_outcomes_total", "Finished relay sessions by outcome", ["outcome"]
)

metrics_app = make_asgi_app()
