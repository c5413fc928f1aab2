"""Prometheus metrics for the HVAC bridge."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    start_http_server,
)

SESSION_STATES: Final = ("unbound", "discovering", "bound", "polling")

hvac_frames_received_total: Final = Counter(  # type: ignore[assignment]
    "hvac_frames_received_total",
    "Total frames received from the unit",
    ["frame_type", "outcome"],
)

hvac_decode_errors_total: Final = Counter(  # type: ignore[assignment]
    "hvac_decode_errors_total",
    "Total frames dropped because they could not be decoded",
    ["reason"],
)

hvac_commands_sent_total: Final = Counter(  # type: ignore[assignment]
    "hvac_commands_sent_total",
    "Total set-requests handled",
    ["property", "outcome"],
)

hvac_poll_failures_total: Final = Counter(  # type: ignore[assignment]
    "hvac_poll_failures_total",
    "Total failed status polls",
)

hvac_discovery_probes_total: Final = Counter(  # type: ignore[assignment]
    "hvac_discovery_probes_total",
    "Total discovery probes broadcast",
    ["outcome"],
)

hvac_session_state: Final = Gauge(  # type: ignore[assignment]
    "hvac_session_state",
    "Current session state (1 for the active state)",
    ["state"],
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9105) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_frame_received(frame_type: int, outcome: str) -> None:
    hvac_frames_received_total.labels(frame_type=f"0x{frame_type:02x}", outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_decode_error(reason: str) -> None:
    hvac_decode_errors_total.labels(reason=reason).inc()  # type: ignore[no-untyped-call]


def record_command(property_name: str, outcome: str) -> None:
    hvac_commands_sent_total.labels(property=property_name, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_poll_failure() -> None:
    hvac_poll_failures_total.inc()  # type: ignore[no-untyped-call]


def record_discovery_probe(outcome: str) -> None:
    hvac_discovery_probes_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_session_state(state: str) -> None:
    """Set the gauge to 1 for ``state`` and 0 for every other state."""
    for s in SESSION_STATES:
        hvac_session_state.labels(state=s).set(1 if s == state else 0)  # type: ignore[no-untyped-call]
