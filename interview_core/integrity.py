# interview_core/integrity.py
"""Behavioral integrity risk: flat anomaly events -> bounded risk score.

Purely behavioral; answer content is never inspected.  Per item and per type:

* ``visibilitychange``: one occurrence +0.05, two or more a flat +0.15
* ``paste``: +0.05 for the first, +0.10 for each additional
* ``latencyOutlier``: +0.10 each
* ``focus`` / ``blur``: audit only, unscored
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Union

from .config import RISK_BAND_HIGH, RISK_BAND_MED, RISK_MAX_REASONS
from .types import IntegrityEvent, IntegrityRisk, RiskBand

UNKNOWN_ITEM = "unknown"

VIS_SINGLE = 0.05
VIS_REPEAT = 0.15
PASTE_FIRST = 0.05
PASTE_EXTRA = 0.10
LATENCY_EACH = 0.10

EventLike = Union[IntegrityEvent, Mapping[str, object]]


def _field(evt: EventLike, name: str, alt: str | None = None):
    if isinstance(evt, Mapping):
        val = evt.get(name)
        if val is None and alt:
            val = evt.get(alt)
        return val
    return getattr(evt, name, None)


def _group_by_item(events: Iterable[EventLike]) -> Dict[str, List[str]]:
    grouped: Dict[str, List[str]] = {}
    for evt in events:
        key = _field(evt, "item_id", "itemId") or UNKNOWN_ITEM
        grouped.setdefault(str(key), []).append(str(_field(evt, "type") or ""))
    return grouped


def risk_band(risk: float) -> RiskBand:
    if risk < RISK_BAND_MED:
        return "Low"
    if risk < RISK_BAND_HIGH:
        return "Med"
    return "High"


def compute_integrity_risk(events: Iterable[EventLike]) -> IntegrityRisk:
    """Aggregate events into ``IntegrityRisk(risk, band, reasons)``.

    Reasons follow grouping order (first appearance of each item, then
    visibility / paste / latency) and are cut to the first five; they are not
    sorted by severity.
    """
    risk = 0.0
    reasons: List[str] = []

    for item_id, types in _group_by_item(events).items():
        vis = types.count("visibilitychange")
        pst = types.count("paste")
        lat = types.count("latencyOutlier")

        if vis > 0:
            risk += VIS_SINGLE if vis == 1 else VIS_REPEAT
            reasons.append(f"{vis} tab hides on {item_id}")
        if pst > 0:
            risk += PASTE_FIRST + (pst - 1) * PASTE_EXTRA
            reasons.append(f"{pst} pastes on {item_id}")
        if lat > 0:
            risk += LATENCY_EACH * lat
            reasons.append(f"{lat} latency outliers on {item_id}")

    # clamp to [0, 1], 4 places
    risk = round(max(0.0, min(1.0, risk)), 4)
    return IntegrityRisk(risk=risk, band=risk_band(risk), reasons=reasons[:RISK_MAX_REASONS])


__all__ = ["compute_integrity_risk", "risk_band", "UNKNOWN_ITEM"]
