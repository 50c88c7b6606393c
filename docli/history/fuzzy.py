"""Fuzzy subsequence scoring for history search."""

from __future__ import annotations

MATCH_SCORE = 1
CONTIGUITY_BONUS = 2


def score(query: str, candidate: str) -> int | None:
    """Score ``candidate`` against ``query``.

    Returns None unless every character of ``query`` appears in ``candidate``
    in order (case-insensitive). Otherwise each matched character is worth
    MATCH_SCORE, plus CONTIGUITY_BONUS when it directly follows the previous
    matched character. The best alignment is used, so ``"ab"`` scores
    higher against ``"a_ab"`` than a greedy left-to-right match would.
    An empty query matches everything with score 0.
    """
    if not query:
        return 0

    q = query.lower()
    c = candidate.lower()
    if len(q) > len(c):
        return None

    # best[j]: best score with the current query prefix ending exactly at candidate index j
    none = -1
    best = [MATCH_SCORE if ch == q[0] else none for ch in c]

    for qi in range(1, len(q)):
        nxt = [none] * len(c)
        running = none  # best score for the previous prefix ending before j - 1
        for j in range(1, len(c)):
            if j >= 2 and best[j - 2] > running:
                running = best[j - 2]
            if c[j] != q[qi]:
                continue
            candidates = []
            if best[j - 1] != none:
                candidates.append(best[j - 1] + MATCH_SCORE + CONTIGUITY_BONUS)
            if running != none:
                candidates.append(running + MATCH_SCORE)
            if candidates:
                nxt[j] = max(candidates)
        best = nxt

    result = max(best, default=none)
    return None if result == none else result


def fuzzy_match(text: str, candidates: list[str], max_results: int = 50) -> list[str]:
    """Filter and rank completion candidates.

    Prefix matches come first (shortest first), then subsequence matches by
    score. E.g. 'gcn' matches 'getCollectionNames'.
    """
    if not text:
        return candidates[:max_results]

    text_lower = text.lower()
    results: list[tuple[int, int, str]] = []
    for candidate in candidates:
        if candidate.lower().startswith(text_lower):
            results.append((0, len(candidate), candidate))
            continue
        candidate_score = score(text, candidate)
        if candidate_score is not None:
            results.append((1, -candidate_score * 1000 + len(candidate), candidate))

    results.sort(key=lambda r: (r[0], r[1], r[2]))
    return [r[2] for r in results[:max_results]]
