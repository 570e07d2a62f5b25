"""Per-session streaming anomaly detection over pressure and gas readings."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Optional

from .models import AnomalyWarning, Sample, WarningKind


@dataclass(frozen=True)
class AnalyzerThresholds:
    """Spike and band limits fixed for the lifetime of one analyzer."""

    pressure_delta_threshold: float = 2.0
    co_delta_threshold: float = 0.5
    no2_delta_threshold: float = 0.5
    percent_deviation: float = 25.0


@dataclass
class RunningStatistics:
    """Last-seen values plus the incremental pressure mean for one session."""

    last_pressure: Optional[float] = None
    last_co: Optional[float] = None
    last_no2: Optional[float] = None
    pressure_mean: float = 0.0
    pressure_count: int = 0


def _direction(delta: float) -> str:
    return "above expected" if delta > 0 else "below expected"


def _spike(
    kind: WarningKind,
    label: str,
    symbol: str,
    current: float,
    previous: Optional[float],
    threshold: float,
) -> Optional[AnomalyWarning]:
    if previous is None:
        return None
    delta = current - previous
    magnitude = abs(delta)
    if magnitude <= threshold:
        return None
    message = f"{label}: |Δ{symbol}|={magnitude:.2f} > {threshold} ({_direction(delta)})"
    return AnomalyWarning(kind, message, magnitude)


class StreamingAnalyzer:
    """
    Stateful detector fed one sample at a time, in session order.

    :meth:`process` is a pure function of the current state and the new
    sample: no clock, no I/O. It is not thread-safe; callers serialize
    access per session.
    """

    def __init__(self, thresholds: AnalyzerThresholds | None = None) -> None:
        self.thresholds = thresholds or AnalyzerThresholds()
        self._stats = RunningStatistics()

    @property
    def statistics(self) -> RunningStatistics:
        """Return a snapshot copy of the running state."""
        return replace(self._stats)

    def process(self, sample: Sample) -> List[AnomalyWarning]:
        cfg = self.thresholds
        stats = self._stats
        pressure = float(sample.pressure)
        co = float(sample.co)
        no2 = float(sample.no2)
        warnings: List[AnomalyWarning] = []

        spike = _spike(
            WarningKind.PRESSURE_SPIKE, "PressureSpike", "P",
            pressure, stats.last_pressure, cfg.pressure_delta_threshold,
        )
        if spike is not None:
            warnings.append(spike)

        # The band uses the mean from *before* this sample is folded in.
        if stats.pressure_count > 0:
            band = self._band_warning(pressure, stats.pressure_mean)
            if band is not None:
                warnings.append(band)

        stats.pressure_count += 1
        stats.pressure_mean += (pressure - stats.pressure_mean) / stats.pressure_count

        for spike in (
            _spike(WarningKind.CO_SPIKE, "COSpike", "CO", co, stats.last_co, cfg.co_delta_threshold),
            _spike(WarningKind.NO2_SPIKE, "NO2Spike", "NO2", no2, stats.last_no2, cfg.no2_delta_threshold),
        ):
            if spike is not None:
                warnings.append(spike)

        stats.last_pressure = pressure
        stats.last_co = co
        stats.last_no2 = no2
        return warnings

    def _band_warning(self, pressure: float, mean: float) -> Optional[AnomalyWarning]:
        fraction = self.thresholds.percent_deviation / 100.0
        lower = mean * (1 - fraction)
        upper = mean * (1 + fraction)
        if pressure < lower:
            message = (
                f"OutOfBandWarning: Pressure {pressure:.2f} < lower {lower:.2f} "
                f"(session mean {mean:.2f})"
            )
        elif pressure > upper:
            message = (
                f"OutOfBandWarning: Pressure {pressure:.2f} > upper {upper:.2f} "
                f"(session mean {mean:.2f})"
            )
        else:
            return None
        return AnomalyWarning(WarningKind.OUT_OF_BAND, message, pressure)
