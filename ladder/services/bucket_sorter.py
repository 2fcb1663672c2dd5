"""
Bucket Sorter

Deterministic total order over a tournament's players, shared by team
formation and the player listing so both agree on rank and bucket.

Order:
    1. strength descending (missing → 3, clamped to 1..5)
    2. FNV-1a 32-bit hash of str(player_id) + str(tournament_id) ascending
    3. str(player_id) ascending

Pure functions: no randomness, no clock, no I/O.
"""
from typing import Any, Dict, Iterable, List, Optional, Tuple

BUCKET_SIZE = 8
BUCKET_COUNT = 3
DEFAULT_STRENGTH = 3
MIN_STRENGTH = 1
MAX_STRENGTH = 5

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 16777619


def fnv1a_32(text: str) -> int:
    h = FNV_OFFSET_BASIS
    for ch in text:
        h ^= ord(ch)
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return h


def normalize_strength(value: Optional[Any]) -> int:
    if value is None:
        return DEFAULT_STRENGTH
    return max(MIN_STRENGTH, min(MAX_STRENGTH, int(value)))


def sort_key(player: Any, tournament_id: Any) -> Tuple[int, int, str]:
    player_id = str(player.id)
    return (
        -normalize_strength(player.strength),
        fnv1a_32(player_id + str(tournament_id)),
        player_id,
    )


def sort_players_deterministic(players: Iterable[Any], tournament_id: Any) -> List[Any]:
    """
    Rank players for bucketing.

    Args:
        players: Objects exposing ``id`` and ``strength``
        tournament_id: Salt for the hash tie-break

    Returns:
        New list, strongest first
    """
    return sorted(players, key=lambda p: sort_key(p, tournament_id))


def bucket_for_rank(rank: int) -> int:
    """0-7 → 1, 8-15 → 2, everything from 16 up → 3."""
    return min(rank // BUCKET_SIZE + 1, BUCKET_COUNT)


def compute_buckets(sorted_players: List[Any]) -> Dict[int, List[Any]]:
    buckets: Dict[int, List[Any]] = {b: [] for b in range(1, BUCKET_COUNT + 1)}
    for rank, player in enumerate(sorted_players):
        buckets[bucket_for_rank(rank)].append(player)
    return buckets


def rank_players(players: Iterable[Any], tournament_id: Any) -> List[Tuple[Any, int, int]]:
    """(player, rank, bucket) triples in bucket order."""
    ordered = sort_players_deterministic(players, tournament_id)
    return [(p, rank, bucket_for_rank(rank)) for rank, p in enumerate(ordered)]
