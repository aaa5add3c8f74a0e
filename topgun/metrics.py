# File: topgun/metrics.py

from prometheus_client import Counter, Gauge, Histogram

METRICS = {
    "deploy_duration": Histogram(
        "topgun_deploy_duration_seconds",
        "Time taken to bring a deployment up and reachable",
        buckets=(10, 30, 60, 120, 300, 600, 1200, 1800),
    ),
    "deploy_failures": Counter(
        "topgun_deploy_failures_total",
        "Deployments that failed during setup",
        ["step"],
    ),
    "poll_duration": Histogram(
        "topgun_poll_duration_seconds",
        "Time spent waiting for convergence",
        ["outcome"],
        buckets=(0.1, 1, 5, 15, 30, 60, 120, 300),
    ),
    "teardown_step_failures": Counter(
        "topgun_teardown_step_failures_total",
        "Teardown steps that recorded a failure",
        ["step"],
    ),
    "live_sessions": Gauge(
        "topgun_live_sessions",
        "Spawned processes that have not exited yet",
    ),
}
