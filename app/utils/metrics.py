"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
challenges_issued_total = Counter(
    "challenges_issued_total",
    "Total number of payment challenges issued",
    ["scope"],  # asset, layer
)

payments_verified_total = Counter(
    "payments_verified_total",
    "Total number of payments committed to the ledger",
    ["scope"],
)

payment_replays_total = Counter(
    "payment_replays_total",
    "Verify calls answered from an already committed payment",
)

verification_failures_total = Counter(
    "verification_failures_total",
    "Total rejected payment verifications",
    ["reason"],
)

license_mint_failures_total = Counter(
    "license_mint_failures_total",
    "License mints that failed (payment still committed)",
)

gate_decisions_total = Counter(
    "gate_decisions_total",
    "Resource gate decisions",
    ["state"],  # LOCKED, UNLOCKED
)

chain_rpc_requests_total = Counter(
    "chain_rpc_requests_total",
    "Total chain RPC requests",
    ["method", "status"],
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
chain_rpc_duration_seconds = Histogram(
    "chain_rpc_duration_seconds",
    "Chain RPC request duration",
    ["method"],
    buckets=[0.05, 0.1, 0.5, 1, 2, 5, 10],
)

verify_duration_seconds = Histogram(
    "verify_duration_seconds",
    "End-to-end payment verification duration",
    buckets=[0.1, 0.5, 1, 2, 5, 10, 20, 30],
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
