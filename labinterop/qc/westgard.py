"""Westgard multi-rule evaluation over a rolling window of control results.

All z-scores use the control's configured target mean/SD. Degenerate inputs
(sd == 0, empty window) never raise: z becomes +-inf or nan and whatever rules
can be evaluated are evaluated.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

RULE_1_2S = "1_2s"
RULE_1_3S = "1_3s"
RULE_2_2S = "2_2s"
RULE_R_4S = "R_4s"
RULE_4_1S = "4_1s"
RULE_10X = "10x"

WARNING = "warning"
REJECTION = "rejection"


@dataclass(frozen=True)
class WestgardRule:
    code: str
    name: str
    description: str
    kind: str  # warning | rejection


RULES: Dict[str, WestgardRule] = {
    r.code: r
    for r in (
        WestgardRule(RULE_1_2S, "1-2s", "One control observation exceeds ±2SD", WARNING),
        WestgardRule(RULE_1_3S, "1-3s", "One control observation exceeds ±3SD", REJECTION),
        WestgardRule(RULE_2_2S, "2-2s", "Two consecutive values exceed same ±2SD limit", REJECTION),
        WestgardRule(
            RULE_R_4S, "R-4s", "One observation exceeds +2SD and another exceeds -2SD", REJECTION
        ),
        WestgardRule(RULE_4_1S, "4-1s", "Four consecutive values exceed same ±1SD limit", REJECTION),
        WestgardRule(RULE_10X, "10x", "Ten consecutive values are on the same side of the mean", REJECTION),
    )
}

ALL_RULES: Tuple[str, ...] = tuple(RULES)

CRITICAL_RULES = frozenset({RULE_1_3S, RULE_R_4S, RULE_4_1S, RULE_10X})
HIGH_RULES = frozenset({RULE_2_2S, RULE_1_2S})

# Grafías viejas que aparecen en datos guardados
_ALIASES = {
    "12s": RULE_1_2S,
    "1-2s": RULE_1_2S,
    "13s": RULE_1_3S,
    "1-3s": RULE_1_3S,
    "22s": RULE_2_2S,
    "2-2s": RULE_2_2S,
    "r4s": RULE_R_4S,
    "r-4s": RULE_R_4S,
    "r_4s": RULE_R_4S,
    "41s": RULE_4_1S,
    "4-1s": RULE_4_1S,
    "10x": RULE_10X,
    "10-x": RULE_10X,
}


@dataclass(frozen=True)
class WestgardEvaluation:
    violations: Tuple[str, ...]
    z_score: float

    @property
    def status(self) -> str:
        return qc_status(self.violations)

    @property
    def accepted(self) -> bool:
        return not self.violations


def normalize_rule_code(code: str) -> str:
    if code in RULES:
        return code
    return _ALIASES.get(code.strip().lower(), code)


def z_score(value: float, mean: float, sd: float) -> float:
    """(value - mean) / sd con semántica IEEE: sd == 0 da ±inf o nan."""
    diff = value - mean
    if sd == 0:
        if diff == 0 or math.isnan(diff):
            return math.nan
        return math.copysign(math.inf, diff) * math.copysign(1.0, sd)
    return diff / sd


def _same_side(zs: Sequence[float], limit: float) -> bool:
    return all(z > limit for z in zs) or all(z < -limit for z in zs)


def evaluate(
    new_value: float,
    mean: float,
    sd: float,
    prior_values: Iterable[float] = (),
    rules: Optional[Iterable[str]] = None,
) -> WestgardEvaluation:
    """Evalúa las reglas sobre prior_values (viejo -> nuevo) + new_value."""
    enabled = set(ALL_RULES if rules is None else (normalize_rule_code(r) for r in rules))
    window: List[float] = [*prior_values, new_value]
    zs = [z_score(v, mean, sd) for v in window]
    z = zs[-1]
    violations: List[str] = []

    if RULE_1_2S in enabled and abs(z) > 2:
        violations.append(RULE_1_2S)
    if RULE_1_3S in enabled and abs(z) > 3:
        violations.append(RULE_1_3S)
    if RULE_2_2S in enabled and len(zs) >= 2 and _same_side(zs[-2:], 2):
        violations.append(RULE_2_2S)
    if RULE_R_4S in enabled and len(zs) >= 2:
        a, b = zs[-2:]
        if (a > 2 and b < -2) or (a < -2 and b > 2):
            violations.append(RULE_R_4S)
    if RULE_4_1S in enabled and len(zs) >= 4 and _same_side(zs[-4:], 1):
        violations.append(RULE_4_1S)
    if RULE_10X in enabled and len(zs) >= 10 and _same_side(zs[-10:], 0):
        violations.append(RULE_10X)

    return WestgardEvaluation(tuple(violations), z)


def qc_status(violations: Iterable[str]) -> str:
    """accepted | warning | rejected. Única fuente de verdad para UI y escalamiento."""
    codes = [normalize_rule_code(v) for v in violations]
    if not codes:
        return "accepted"
    if any(c in RULES and RULES[c].kind == REJECTION for c in codes):
        return "rejected"
    return "warning"


def qc_severity(violations: Iterable[str]) -> str:
    codes = {normalize_rule_code(v) for v in violations}
    if codes & CRITICAL_RULES:
        return "critical"
    # Corrida sólo con advertencias (1_2s) no escala como alta
    if qc_status(codes) == "warning":
        return "warning"
    if codes & HIGH_RULES:
        return "high"
    return "warning"


@dataclass(frozen=True)
class AffectedResultsQuery:
    """Resultados de pacientes posiblemente afectados por un QC crítico."""

    test_id: str
    since: datetime
    until: datetime
    statuses: Tuple[str, ...] = ("validated", "released")


def affected_results_query(
    test_id: str, reference_time: datetime, hours: int = 24
) -> AffectedResultsQuery:
    return AffectedResultsQuery(
        test_id=test_id,
        since=reference_time - timedelta(hours=hours),
        until=reference_time,
    )
