"""Additive scoring of GUI process candidates.

Scores are ranking keys, not probabilities. The terminal and ancestor bonuses
always outweigh the sum of the CPU-activity and freshness terms.
"""

from __future__ import annotations

from actionsum.model.models import CandidateRecord

BASE_SCORE = 0.3
ENCLOSING_TERMINAL_BONUS = 10.0
ANCESTOR_BONUS = 5.0
FRESHNESS_BONUS = 0.2
FRESHNESS_WINDOW = 1.0

# (経過秒の上限, 加点)
ACTIVITY_BONUSES = (
    (1.0, 0.5),
    (5.0, 0.3),
    (30.0, 0.1),
)


def activity_bonus(last_active_at: float | None, now: float) -> float:
    """直近の CPU アクティビティからの経過時間に応じた加点."""
    if last_active_at is None:
        return 0.0
    elapsed = now - last_active_at
    for limit, bonus in ACTIVITY_BONUSES:
        if elapsed < limit:
            return bonus
    return 0.0


def score_candidate(
    record: CandidateRecord,
    now: float,
    *,
    enclosing_terminal: int | None = None,
    is_ancestor: bool = False,
    last_active_at: float | None = None,
) -> float:
    """候補1件のスコアを計算する."""
    score = BASE_SCORE
    if enclosing_terminal is not None and record.pid == enclosing_terminal:
        score += ENCLOSING_TERMINAL_BONUS
    if is_ancestor:
        score += ANCESTOR_BONUS
    score += activity_bonus(last_active_at, now)
    if now - record.last_seen_at < FRESHNESS_WINDOW:
        score += FRESHNESS_BONUS
    return score


def rank_candidates(records: list[CandidateRecord]) -> list[CandidateRecord]:
    """スコア降順、同点は PID 昇順で並べる."""
    return sorted(records, key=lambda r: (-r.score, r.pid))
