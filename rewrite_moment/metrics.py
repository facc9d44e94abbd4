"""
Thread-safe in-memory metrics for the generation service.

Counters cover submissions, compose retries/degradation, provider fallback
and error kinds; latency samples cover vendor round-trips. Everything resets
on restart.
"""

import threading
import time
from collections import defaultdict
from typing import Dict, List

_lock = threading.Lock()

_counters: Dict[str, int] = defaultdict(int)

# ── Latency samples (last 100 per name) ──────────────────────────────────────
_latency_samples: Dict[str, List[float]] = defaultdict(list)
MAX_SAMPLES = 100

# ── Event log (last 50 notable events: errors, degradations, fallbacks) ──────
_recent_events: List[dict] = []
MAX_EVENTS = 50

_started_at = time.time()


def inc_counter(name: str, amount: int = 1):
    """Increment a counter (e.g. 'compose.degraded', 'errors.transient')."""
    with _lock:
        _counters[name] += amount


def get_counter(name: str) -> int:
    with _lock:
        return _counters.get(name, 0)


def record_latency(name: str, duration_ms: float):
    with _lock:
        samples = _latency_samples[name]
        samples.append(duration_ms)
        if len(samples) > MAX_SAMPLES:
            _latency_samples[name] = samples[-MAX_SAMPLES:]


def record_event(kind: str, message: str, provider: str = "", job_id: str = ""):
    """Keep a short trail of notable events for the /metrics endpoint."""
    with _lock:
        _recent_events.append({
            "timestamp": time.time(),
            "kind": kind,
            "provider": provider,
            "job_id": job_id,
            "message": message[:300],
        })
        if len(_recent_events) > MAX_EVENTS:
            _recent_events.pop(0)


def reset():
    """Clear everything. Used by tests."""
    with _lock:
        _counters.clear()
        _latency_samples.clear()
        _recent_events.clear()


def get_snapshot() -> dict:
    now = time.time()
    with _lock:
        latency = {}
        for name, samples in _latency_samples.items():
            if not samples:
                continue
            ordered = sorted(samples)
            n = len(ordered)
            latency[name] = {
                "p50": ordered[n // 2],
                "p95": ordered[int(n * 0.95)] if n >= 20 else ordered[-1],
                "avg": sum(ordered) / n,
                "count": n,
            }

        return {
            "timestamp": now,
            "counters": dict(_counters),
            "latency": latency,
            "recent_events": list(_recent_events[-10:]),
            "uptime_seconds": now - _started_at,
        }
