"""Descriptive QC statistics for a test+level+lot series.

SD is the sample standard deviation (n - 1 denominator). Nothing here
validates or clamps: n == 0, n == 1 or a zero mean/SD produce nan/inf.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from .westgard import z_score

# Proporción esperada (%) dentro de ±1/2/3 SD en una gaussiana
GAUSSIAN_EXPECTATION = {"one_sd": 68.27, "two_sd": 95.45, "three_sd": 99.73}


class QCPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"

    @property
    def days(self) -> int:
        return {"daily": 1, "weekly": 7, "monthly": 30, "quarterly": 90}[self.value]


def period_bounds(period: QCPeriod, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    end = now or datetime.now()
    return end - timedelta(days=QCPeriod(period).days), end


@dataclass(frozen=True)
class WithinSDCounts:
    one_sd: int = 0
    two_sd: int = 0
    three_sd: int = 0

    def percentages(self, n: int) -> dict:
        return {
            "one_sd": _div(self.one_sd * 100.0, n),
            "two_sd": _div(self.two_sd * 100.0, n),
            "three_sd": _div(self.three_sd * 100.0, n),
        }


@dataclass(frozen=True)
class QCStatistics:
    n: int
    mean: float
    sd: float
    cv: float
    bias: float
    within_sd: WithinSDCounts
    min: float
    max: float
    median: float
    total_error: float
    sigma: Optional[float] = None
    period: Optional[QCPeriod] = None


def _div(a: float, b: float) -> float:
    # división con semántica IEEE (x/0 -> ±inf, 0/0 -> nan)
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a)
    return a / b


def _median(values: List[float]) -> float:
    if not values:
        return math.nan
    s = sorted(values)
    mid = len(s) // 2
    return s[mid] if len(s) % 2 else (s[mid - 1] + s[mid]) / 2


def compute_statistics(
    series: Iterable[float],
    target_mean: Optional[float] = None,
    target_sd: Optional[float] = None,
    target_cv: Optional[float] = None,
    period: Optional[QCPeriod] = None,
) -> QCStatistics:
    values = [float(v) for v in series]
    n = len(values)
    mean = _div(math.fsum(values), n)
    variance = _div(math.fsum((v - mean) ** 2 for v in values), n - 1) if n else math.nan
    sd = math.sqrt(variance) if variance >= 0 else math.nan
    cv = _div(sd, mean) * 100

    # Sin objetivo configurado se usa la propia serie (bias = 0)
    ref_mean = mean if target_mean is None else target_mean
    ref_sd = sd if target_sd is None else target_sd
    bias = _div(mean - ref_mean, ref_mean) * 100

    devs = [abs(v - ref_mean) for v in values]
    within = WithinSDCounts(
        one_sd=sum(1 for d in devs if d <= ref_sd),
        two_sd=sum(1 for d in devs if d <= 2 * ref_sd),
        three_sd=sum(1 for d in devs if d <= 3 * ref_sd),
    )

    total_error = abs(bias) + 1.65 * cv
    sigma = _div(target_cv - abs(bias), cv) if target_cv else None

    return QCStatistics(
        n=n,
        mean=mean,
        sd=sd,
        cv=cv,
        bias=bias,
        within_sd=within,
        min=min(values) if values else math.nan,
        max=max(values) if values else math.nan,
        median=_median(values),
        total_error=total_error,
        sigma=sigma,
        period=period,
    )


@dataclass(frozen=True)
class LeveyJenningsChart:
    mean: float
    sd: float
    limits: dict = field(default_factory=dict)
    points: List[Tuple[float, float]] = field(default_factory=list)  # (valor, z)


def levey_jennings(values: Iterable[float], mean: float, sd: float) -> LeveyJenningsChart:
    limits = {
        "plus_1sd": mean + sd,
        "plus_2sd": mean + 2 * sd,  # uwl
        "plus_3sd": mean + 3 * sd,  # ucl
        "minus_1sd": mean - sd,
        "minus_2sd": mean - 2 * sd,  # lwl
        "minus_3sd": mean - 3 * sd,  # lcl
    }
    points = [(v, z_score(v, mean, sd)) for v in values]
    return LeveyJenningsChart(mean=mean, sd=sd, limits=limits, points=points)
