"""Run duration gauge, rendered in the Prometheus text exposition format."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

DEFAULT_LABELS = ("category", "name")


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


class DurationGauge:
    """Latest run duration (seconds) per label set.

    With ``custom_labels`` configured, only those names are kept as extra
    dimensions and any missing one is reported as an empty value. Without
    it, every extracted label is kept.
    """

    name = "jmeter_test_duration"
    help = "jmeter test duration (in seconds)"

    def __init__(self, custom_labels: list[str] | None = None):
        self.custom_labels = list(custom_labels or [])
        self._values: dict[tuple[tuple[str, str], ...], float] = {}

    def _dimensions(
        self, category: str | None, name: str, labels: dict[str, str]
    ) -> tuple[tuple[str, str], ...]:
        if self.custom_labels:
            ignored = set(labels) - set(self.custom_labels)
            if ignored:
                logger.debug("Ignoring unconfigured labels: %s", ", ".join(sorted(ignored)))
            extra = {k: labels.get(k, "") for k in self.custom_labels}
        else:
            extra = {k: v for k, v in labels.items() if k not in DEFAULT_LABELS}
        dims = dict(sorted(extra.items()))
        dims["category"] = category or ""
        dims["name"] = name
        return tuple(dims.items())

    def observe(
        self,
        duration: float,
        *,
        category: str | None,
        name: str,
        labels: dict[str, str] | None = None,
    ) -> None:
        self._values[self._dimensions(category, name, labels or {})] = duration

    def samples(self) -> list[tuple[dict[str, str], float]]:
        return [(dict(dims), value) for dims, value in self._values.items()]

    def render(self) -> str:
        lines = [
            f"# HELP {self.name} {self.help}",
            f"# TYPE {self.name} gauge",
        ]
        for dims, value in self._values.items():
            rendered = ",".join(f'{k}="{_escape(v)}"' for k, v in dims)
            lines.append(f"{self.name}{{{rendered}}} {value}")
        return "\n".join(lines) + "\n"
