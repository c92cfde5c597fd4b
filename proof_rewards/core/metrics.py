"""Prometheus metrics for the proof rewards service."""

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# Proof pipeline
# ---------------------------------------------------------------------------

rewards_proof_submissions_total = Counter(
    "rewards_proof_submissions_total",
    "Total proof submissions",
    ["platform", "outcome"],  # outcome: success | rejected | failed | duplicate
)

rewards_pipeline_latency_seconds = Histogram(
    "rewards_pipeline_latency_seconds",
    "End-to-end proof pipeline latency in seconds",
    buckets=[0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)

rewards_pipeline_stage_latency_seconds = Histogram(
    "rewards_pipeline_stage_latency_seconds",
    "Latency per pipeline stage in seconds",
    ["stage"],  # decode | classify | verify | extract | transfer
    buckets=[0.001, 0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 15.0, 60.0],
)

# ---------------------------------------------------------------------------
# Ledger transfers
# ---------------------------------------------------------------------------

rewards_transfers_total = Counter(
    "rewards_transfers_total",
    "Total token transfers attempted",
    ["entrypoint", "status"],  # entrypoint: proof | direct
)

rewards_token_accounts_created_total = Counter(
    "rewards_token_accounts_created_total",
    "Recipient associated token accounts created by the sender",
)

# ---------------------------------------------------------------------------
# Observers
# ---------------------------------------------------------------------------

rewards_observers_connected = Gauge(
    "rewards_observers_connected",
    "Currently connected notification observers",
)

rewards_broadcast_deliveries_total = Counter(
    "rewards_broadcast_deliveries_total",
    "Notification deliveries to observers",
    ["status"],  # sent | skipped | failed
)

# ---------------------------------------------------------------------------
# External dependencies
# ---------------------------------------------------------------------------

rewards_dependency_failures_total = Counter(
    "rewards_dependency_failures_total",
    "Total external dependency failures",
    ["dependency"],  # verifier | solana_rpc | proof_request
)
