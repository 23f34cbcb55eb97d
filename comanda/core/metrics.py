from __future__ import annotations

from dataclasses import dataclass
from threading import Lock


@dataclass
class OutcomeMetric:
    total: int = 0
    total_duration_ms: float = 0.0


class InMemoryPipelineMetrics:
    """Contadores por desfecho do processamento de mensagens (ok, manual, provider_error...)."""

    def __init__(self) -> None:
        self._outcomes: dict[str, OutcomeMetric] = {}
        self._restaurant_outcomes: dict[tuple[str, str], int] = {}
        self._lock = Lock()

    def observe(self, outcome: str, duration_ms: float, restaurant_id: str | None = None) -> None:
        with self._lock:
            metric = self._outcomes.setdefault(outcome, OutcomeMetric())
            metric.total += 1
            metric.total_duration_ms += duration_ms
            if restaurant_id:
                key = (restaurant_id, outcome)
                self._restaurant_outcomes[key] = self._restaurant_outcomes.get(key, 0) + 1

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            result: dict[str, dict[str, float | int]] = {}
            for outcome, metric in self._outcomes.items():
                avg = metric.total_duration_ms / metric.total if metric.total else 0.0
                result[outcome] = {
                    "total": metric.total,
                    "total_duration_ms": round(metric.total_duration_ms, 2),
                    "avg_duration_ms": round(avg, 2),
                }
            return result

    def snapshot_per_restaurant(self) -> dict[str, dict[str, int]]:
        with self._lock:
            result: dict[str, dict[str, int]] = {}
            for (restaurant_id, outcome), count in self._restaurant_outcomes.items():
                result.setdefault(restaurant_id, {})[outcome] = count
            return result

    def reset(self) -> None:
        with self._lock:
            self._outcomes.clear()
            self._restaurant_outcomes.clear()


@dataclass
class EndpointMetric:
    total_requests: int = 0
    total_duration_ms: float = 0.0
    error_count: int = 0


class InMemoryRequestMetrics:
    def __init__(self) -> None:
        self._metrics: dict[tuple[str, str], EndpointMetric] = {}
        self._lock = Lock()

    def observe(self, endpoint: str, method: str, status_code: int, duration_ms: float) -> None:
        with self._lock:
            metric = self._metrics.setdefault((endpoint, method), EndpointMetric())
            metric.total_requests += 1
            metric.total_duration_ms += duration_ms
            if status_code >= 400:
                metric.error_count += 1

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            result: dict[str, dict[str, float | int]] = {}
            for (endpoint, method), metric in self._metrics.items():
                avg = metric.total_duration_ms / metric.total_requests if metric.total_requests else 0.0
                result[f"{method} {endpoint}"] = {
                    "total_requests": metric.total_requests,
                    "avg_duration_ms": round(avg, 2),
                    "error_count": metric.error_count,
                }
            return result

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()


pipeline_metrics = InMemoryPipelineMetrics()
request_metrics = InMemoryRequestMetrics()
