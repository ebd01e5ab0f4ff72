from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence

from ..config import DEFAULT_COMPATIBILITY_SCORE, MAX_MATCH_SIZE, MIN_MATCH_SIZE
from ..errors import InvalidMatchSizeError, NotEnoughMembersError
from ..schemas import MatchingConfig
from .history import canonical_pair

MAX_REFINEMENT_PASSES = 100
_IMPROVEMENT_EPS = 1e-9


@dataclass(frozen=True)
class RoundMember:
    member_id: str
    user_id: str
    excluded_members: frozenset[str] = field(default_factory=frozenset)


@dataclass
class RoundAssignment:
    groups: list[list[str]]
    skipped: list[str]


CompatibilityLookup = Callable[[RoundMember, RoundMember], "float | None"]
HistoryLookup = Callable[[str, str], int]


def is_excluded(a: RoundMember, b: RoundMember) -> bool:
    return b.member_id in a.excluded_members or a.member_id in b.excluded_members


def pair_score(compatibility: float | None, history_count: int, config: MatchingConfig) -> float:
    if compatibility is None:
        compatibility = DEFAULT_COMPATIBILITY_SCORE
    compatibility = max(0.0, min(100.0, float(compatibility)))
    variety_penalty = min(1.0, max(0, history_count) / config.recency_days)
    return config.compatibility_weight * (compatibility / 100.0) - config.variety_weight * variety_penalty


def build_pair_scores(
    roster: Sequence[RoundMember],
    config: MatchingConfig,
    compatibility_lookup: CompatibilityLookup,
    history_lookup: HistoryLookup,
) -> dict[tuple[str, str], float]:
    """Score every non-excluded pair. Excluded pairs are simply absent from the table."""
    ordered = sorted(roster, key=lambda m: m.member_id)
    scores: dict[tuple[str, str], float] = {}
    for i in range(len(ordered)):
        for j in range(i + 1, len(ordered)):
            a = ordered[i]
            b = ordered[j]
            if is_excluded(a, b):
                continue
            count = int(history_lookup(a.member_id, b.member_id) or 0)
            scores[(a.member_id, b.member_id)] = pair_score(compatibility_lookup(a, b), count, config)
    return scores


def _dedupe(members: Iterable[RoundMember]) -> list[RoundMember]:
    seen: set[str] = set()
    out: list[RoundMember] = []
    for m in members:
        if m.member_id in seen:
            continue
        seen.add(m.member_id)
        out.append(m)
    return sorted(out, key=lambda m: m.member_id)


def _aggregate(candidate: str, group: Sequence[str], scores: dict[tuple[str, str], float]) -> float | None:
    total = 0.0
    for member in group:
        s = scores.get(canonical_pair(candidate, member))
        if s is None:
            return None
        total += s
    return total


def _group_score(group: Sequence[str], scores: dict[tuple[str, str], float]) -> float | None:
    total = 0.0
    for i, a in enumerate(group):
        for b in group[i + 1 :]:
            s = scores.get(canonical_pair(a, b))
            if s is None:
                return None
            total += s
    return total


def _best_candidate(group: Sequence[str], candidates: Sequence[str], scores: dict[tuple[str, str], float]) -> str | None:
    best: str | None = None
    best_score = 0.0
    # candidates arrive sorted by id, so strict ">" keeps the lowest id on ties
    for candidate in candidates:
        agg = _aggregate(candidate, group, scores)
        if agg is None:
            continue
        if best is None or agg > best_score:
            best = candidate
            best_score = agg
    return best


def _greedy_groups(member_ids: Sequence[str], scores: dict[tuple[str, str], float], match_size: int) -> list[list[str]]:
    ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0][0], item[0][1]))
    assigned: set[str] = set()
    groups: list[list[str]] = []

    for (a, b), _ in ranked:
        if a in assigned or b in assigned:
            continue
        group = [a, b]
        assigned.update(group)
        while len(group) < match_size:
            pick = _best_candidate(group, [m for m in member_ids if m not in assigned], scores)
            if pick is None:
                break
            group.append(pick)
            assigned.add(pick)
        groups.append(group)

    return groups


def _place_leftovers(
    member_ids: Sequence[str],
    groups: list[list[str]],
    scores: dict[tuple[str, str], float],
    match_size: int,
) -> list[str]:
    assigned = {m for g in groups for m in g}
    skipped: list[str] = []
    for member in member_ids:
        if member in assigned:
            continue
        target: int | None = None
        target_score = 0.0
        for idx, group in enumerate(groups):
            if len(group) >= match_size:
                continue
            agg = _aggregate(member, group, scores)
            if agg is None:
                continue
            if target is None or agg > target_score:
                target = idx
                target_score = agg
        if target is None:
            skipped.append(member)
            continue
        groups[target].append(member)
        assigned.add(member)
    return skipped


def _refine_groups(groups: list[list[str]], scores: dict[tuple[str, str], float]) -> list[list[str]]:
    """Swap members between groups while the total within-group score strictly improves.

    Swaps keep group sizes fixed and a swap creating an excluded pair scores as
    invalid, so the exclusion and size guarantees of the greedy phase survive.
    """
    groups = [list(g) for g in groups]
    current = [_group_score(g, scores) or 0.0 for g in groups]

    for _ in range(MAX_REFINEMENT_PASSES):
        improved = False
        for i in range(len(groups)):
            for j in range(i + 1, len(groups)):
                for x in range(len(groups[i])):
                    for y in range(len(groups[j])):
                        gi = groups[i][:]
                        gj = groups[j][:]
                        gi[x], gj[y] = groups[j][y], groups[i][x]
                        si = _group_score(gi, scores)
                        if si is None:
                            continue
                        sj = _group_score(gj, scores)
                        if sj is None:
                            continue
                        if si + sj > current[i] + current[j] + _IMPROVEMENT_EPS:
                            groups[i], groups[j] = gi, gj
                            current[i], current[j] = si, sj
                            improved = True
        if not improved:
            break

    return groups


def generate_round(
    match_size: int,
    members: Iterable[RoundMember],
    config: MatchingConfig,
    compatibility_lookup: CompatibilityLookup | None = None,
    history_lookup: HistoryLookup | None = None,
) -> RoundAssignment:
    """Partition ``members`` into groups of at most ``match_size`` for one round.

    Pure and deterministic: identical members, exclusions, compatibility scores
    and history counts always produce the same assignment. Members that cannot
    be placed without breaking an exclusion or exceeding ``match_size`` are
    returned in ``skipped``; that is a normal outcome, not an error.
    """
    if match_size < MIN_MATCH_SIZE or match_size > MAX_MATCH_SIZE:
        raise InvalidMatchSizeError()

    roster = _dedupe(members)
    if len(roster) < match_size:
        raise NotEnoughMembersError(f"need at least {match_size} active members, have {len(roster)}")

    compatibility_lookup = compatibility_lookup or (lambda a, b: None)
    history_lookup = history_lookup or (lambda a, b: 0)

    member_ids = [m.member_id for m in roster]
    scores = build_pair_scores(roster, config, compatibility_lookup, history_lookup)

    groups = _greedy_groups(member_ids, scores, match_size)
    skipped = _place_leftovers(member_ids, groups, scores, match_size)
    groups = _refine_groups(groups, scores)

    ordered_groups = sorted((sorted(g) for g in groups), key=lambda g: g[0])
    return RoundAssignment(groups=ordered_groups, skipped=sorted(skipped))
