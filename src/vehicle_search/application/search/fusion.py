"""
Weighted Reciprocal Rank Fusion for exact and semantic result lists.

RRF formula (weighted):
    RRF(d) = Σ_i w_i / (k + rank_i(d))

where i iterates over the result lists that actually returned something,
rank_i(d) is the 1-based rank of vehicle d in list i, and the weights of
the contributing lists are normalized to sum to 1. A vehicle missing from
a list gets no contribution from it.

RRF combines rankings without calibrating the underlying scores, which
matters here: exact hits are ordered by match count while vector hits are
ordered by cosine similarity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vehicle_search.domain.entities.search import SearchCandidate
    from vehicle_search.domain.entities.vehicle import Vehicle


# Standard RRF constant (Cormack et al., 2009)
DEFAULT_RRF_K = 60


@dataclass
class FusedCandidate:
    vehicle: Vehicle
    score: float
    contributions: dict[str, float] = field(default_factory=dict)
    ranks: dict[str, int] = field(default_factory=dict)


def reciprocal_rank_fusion(
    ranked_lists: dict[str, list[SearchCandidate]],
    weights: dict[str, float] | None = None,
    k: int = DEFAULT_RRF_K,
) -> list[FusedCandidate]:
    """
    Fuse ranked candidate lists into one list, best first.

    Args:
        ranked_lists: {list_name: candidates in ranked order}
        weights: {list_name: weight}; missing names weigh 1.0
        k: RRF constant

    Returns:
        FusedCandidates sorted by fused score; ties keep first-seen order
    """
    if k <= 0:
        raise ValueError(f"RRF k must be positive, got {k}")

    contributing = {name: items for name, items in ranked_lists.items() if items}
    if not contributing:
        return []

    weights = weights or {}
    raw = {name: max(0.0, weights.get(name, 1.0)) for name in contributing}
    total = sum(raw.values())
    if total == 0:
        raw = {name: 1.0 for name in contributing}
        total = float(len(raw))
    normalized = {name: w / total for name, w in raw.items()}

    fused: dict[str, FusedCandidate] = {}
    for name, items in contributing.items():
        for rank, candidate in enumerate(items, start=1):
            key = candidate.vehicle.id
            entry = fused.get(key)
            if entry is None:
                entry = fused[key] = FusedCandidate(vehicle=candidate.vehicle, score=0.0)
            if name in entry.ranks:
                # Duplicate within one list: keep the better rank
                continue
            contribution = normalized[name] / (k + rank)
            entry.ranks[name] = rank
            entry.contributions[name] = contribution
            entry.score += contribution

    return sorted(fused.values(), key=lambda c: c.score, reverse=True)
