from __future__ import annotations

from collections.abc import Iterable

from src.search.models import Candidate, RankedResult, RankingWeights


def merge_candidates(
    exact: Iterable[Candidate],
    fuzzy: Iterable[Candidate],
    partial: Iterable[Candidate],
    weights: RankingWeights | None = None,
) -> list[RankedResult]:
    """
    Deduplicate candidates across strategies and rank them.

    weighted_rank = raw_score * weight(strategy). Each employee keeps the
    candidate with the highest weighted rank; an existing entry is only
    replaced by a strictly greater one, so on equal ranks the earlier
    strategy (exact, then fuzzy, then partial) wins.

    Ordering: weighted_rank descending, then employee_id ascending.
    """
    weights = weights or RankingWeights()
    best: dict[str, RankedResult] = {}

    for batch in (exact, fuzzy, partial):
        for candidate in batch:
            weighted = candidate.raw_score * weights.for_strategy(candidate.strategy)
            existing = best.get(candidate.employee_id)
            if existing is None or weighted > existing.weighted_rank:
                best[candidate.employee_id] = RankedResult(candidate, weighted)

    return sorted(best.values(), key=lambda r: (-r.weighted_rank, r.employee_id))
