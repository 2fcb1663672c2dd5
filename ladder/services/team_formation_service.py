"""
Team Formation Service

Partitions exactly 24 SOLO players into 8 teams of 3 using the three skill
buckets from the bucket sorter and up to 8 manual seeds.

Core Principles:
- Bucket membership is deterministic; only the order inside a bucket is shuffled
- At most one player per bucket in each team
- Seeded players always land in their target team
- Formation is refused, never merged, when teams already exist
- Plan first (pure), then persist 8 teams + 24 memberships in one transaction
"""
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from ladder.errors import ErrorCode
from ladder.exceptions import (
    InvariantViolationError, PreconditionError, ValidationFailedError
)
from ladder.orm.tournament import RegistrationMode, Tournament
from ladder.services.bucket_sorter import (
    BUCKET_COUNT, MAX_STRENGTH, MIN_STRENGTH, bucket_for_rank, sort_players_deterministic
)
from ladder.services.roster_store import RosterStore
from ladder.services.tournament_locks import locked_transaction
from ladder.state_machines.tournament_lifecycle import TournamentLifecycleStateMachine

logger = logging.getLogger(__name__)

TEAM_COUNT = 8
TEAM_SIZE = 3
PLAYER_COUNT = TEAM_COUNT * TEAM_SIZE
MAX_SEEDS = TEAM_COUNT
SLOTS = (1, 2, 3)
TEAM_NAME_SEPARATOR = " / "


@dataclass
class PlannedTeam:
    team_index: int
    seats: Dict[int, Any] = field(default_factory=dict)
    buckets: Dict[int, int] = field(default_factory=dict)

    @property
    def used_buckets(self) -> set:
        return set(self.buckets.values())

    @property
    def is_full(self) -> bool:
        return len(self.seats) >= TEAM_SIZE

    def first_free_slot(self, preferred: Optional[int] = None) -> Optional[int]:
        if preferred in SLOTS and preferred not in self.seats:
            return preferred
        for slot in SLOTS:
            if slot not in self.seats:
                return slot
        return None

    def place(self, player: Any, bucket: int, slot: int) -> None:
        self.seats[slot] = player
        self.buckets[slot] = bucket

    @property
    def name(self) -> str:
        return TEAM_NAME_SEPARATOR.join(self.seats[slot].full_name for slot in sorted(self.seats))

    def members(self) -> List[tuple]:
        """(slot, player_id) in slot order."""
        return [(slot, self.seats[slot].id) for slot in sorted(self.seats)]


# ============================================================================
# Pure planning
# ============================================================================

def validate_seeds(players: Sequence[Any]) -> List[Any]:
    """Return the seeded players, refusing configurations formation cannot honor."""
    seeded = [p for p in players if p.seed_team_index is not None]

    if len(seeded) > MAX_SEEDS:
        raise PreconditionError(
            f"At most {MAX_SEEDS} players may be seeded, found {len(seeded)}",
            ErrorCode.TOO_MANY_SEEDS,
            {"seeded": len(seeded), "max": MAX_SEEDS}
        )

    targets: Dict[int, Any] = {}
    for player in seeded:
        if not 1 <= player.seed_team_index <= TEAM_COUNT:
            raise ValidationFailedError(
                f"Player {player.id} has seed team {player.seed_team_index}, expected 1-{TEAM_COUNT}",
                ErrorCode.INVALID_SEED,
                {"player_id": player.id, "seed_team_index": player.seed_team_index}
            )
        if player.seed_team_index in targets:
            raise PreconditionError(
                f"Team {player.seed_team_index} is seeded by more than one player",
                ErrorCode.DUPLICATE_SEED,
                {
                    "seed_team_index": player.seed_team_index,
                    "player_ids": [targets[player.seed_team_index].id, player.id],
                }
            )
        targets[player.seed_team_index] = player
    return seeded


def plan_team_formation(
    players: Sequence[Any],
    tournament_id: Any,
    rng: Optional[random.Random] = None
) -> List[PlannedTeam]:
    """
    Plan 8 teams of 3 from 24 players.

    Args:
        players: Objects with id, full_name, strength, seed_team_index, seed_slot
        tournament_id: Salt for the deterministic bucket order
        rng: Source for the intra-bucket shuffle

    Returns:
        Planned teams ordered by team_index 1..8

    Raises:
        ValidationFailedError: not exactly 24 players, malformed seed
        PreconditionError: too many seeds, duplicate seed target
        InvariantViolationError: the plan breaks a postcondition
    """
    rng = rng or random.Random()

    if len(players) != PLAYER_COUNT:
        raise ValidationFailedError(
            f"Exactly {PLAYER_COUNT} players are required, found {len(players)}",
            ErrorCode.PLAYER_COUNT_INVALID,
            {"count": len(players), "required": PLAYER_COUNT}
        )

    ordered = sort_players_deterministic(players, tournament_id)
    bucket_of = {p.id: bucket_for_rank(rank) for rank, p in enumerate(ordered)}

    seeded = validate_seeds(ordered)
    seeded_ids = {p.id for p in seeded}

    teams = {index: PlannedTeam(team_index=index) for index in range(1, TEAM_COUNT + 1)}

    for player in seeded:
        team = teams[player.seed_team_index]
        slot = team.first_free_slot(player.seed_slot)
        if slot is None:
            raise PreconditionError(
                f"Team {team.team_index} has no free slot for seeded player {player.id}",
                ErrorCode.SEED_SLOT_UNAVAILABLE,
                {"team_index": team.team_index, "player_id": player.id}
            )
        team.place(player, bucket_of[player.id], slot)

    pools: Dict[int, List[Any]] = {}
    for bucket in range(1, BUCKET_COUNT + 1):
        pool = [p for p in ordered if bucket_of[p.id] == bucket and p.id not in seeded_ids]
        rng.shuffle(pool)
        pools[bucket] = pool

    def take(team: PlannedTeam, bucket: int) -> None:
        player = pools[bucket].pop()
        team.place(player, bucket, team.first_free_slot())

    # First pass: one seat from each bucket the team has not used yet
    for team in teams.values():
        for bucket in range(1, BUCKET_COUNT + 1):
            if team.is_full:
                break
            if bucket in team.used_buckets or not pools[bucket]:
                continue
            take(team, bucket)

    # Second pass: fill shortfalls from whatever remains, unused buckets first
    for team in teams.values():
        while not team.is_full:
            candidates = [b for b in range(1, BUCKET_COUNT + 1) if pools[b]]
            if not candidates:
                break
            fresh = [b for b in candidates if b not in team.used_buckets]
            take(team, (fresh or candidates)[0])

    _check_plan(list(teams.values()))
    return list(teams.values())


def _check_plan(teams: List[PlannedTeam]) -> None:
    placed = sum(len(t.seats) for t in teams)
    short = [t.team_index for t in teams if len(t.seats) != TEAM_SIZE]
    if placed != PLAYER_COUNT or short:
        logger.error(f"[FORMATION ANOMALY] placed={placed} short_teams={short}")
        raise InvariantViolationError(
            f"Formation placed {placed} of {PLAYER_COUNT} players",
            ErrorCode.FORMATION_INCOMPLETE,
            {"placed": placed, "short_teams": short}
        )

    collisions = [
        {"team_index": t.team_index, "buckets": [t.buckets[s] for s in sorted(t.buckets)]}
        for t in teams
        if len(t.used_buckets) != len(t.buckets)
    ]
    if collisions:
        logger.error(f"[FORMATION ANOMALY] bucket collision: {collisions}")
        raise InvariantViolationError(
            "A team received two players from the same bucket",
            ErrorCode.BUCKET_COLLISION,
            {"teams": collisions}
        )


# ============================================================================
# Persistence
# ============================================================================

def _ensure_solo(tournament: Tournament) -> None:
    if tournament.mode != RegistrationMode.SOLO:
        raise PreconditionError(
            f"Tournament {tournament.id} registers {tournament.registration_mode} entrants; "
            "teams are formed from SOLO players only",
            ErrorCode.MODE_MISMATCH,
            {"registration_mode": tournament.registration_mode}
        )


async def form_teams(
    db: AsyncSession,
    tournament_id: int,
    rng: Optional[random.Random] = None
) -> Dict[str, Any]:
    """
    Form 8 teams from the tournament's 24 players.

    Concurrent calls have exactly one winner; the others see
    TEAMS_ALREADY_EXIST.
    """
    logger.info(f"[FORMATION START] tournament={tournament_id}")

    async with locked_transaction(db, tournament_id):
        store = RosterStore(db)
        tournament = await store.get_tournament(tournament_id, lock=True)
        _ensure_solo(tournament)
        TournamentLifecycleStateMachine.ensure_draft(tournament, "Team formation")

        existing = await store.count_teams(tournament_id)
        if existing:
            logger.warning(f"[FORMATION REFUSED] tournament={tournament_id} teams={existing}")
            raise PreconditionError(
                "Teams already exist; reset them before forming again",
                ErrorCode.TEAMS_ALREADY_EXIST,
                {"team_count": existing}
            )

        if not await store.all_accepted_paid(tournament_id):
            raise PreconditionError(
                "All accepted entrants must be paid before teams are formed",
                ErrorCode.PAYMENT_INCOMPLETE
            )

        players = await store.list_accepted_players(tournament_id)
        plan = plan_team_formation(players, tournament_id, rng)

        created = await store.create_teams(
            tournament_id,
            [(t.team_index, t.name, None) for t in plan]
        )
        for team, planned in zip(created, plan):
            await store.upsert_team_members(team.id, planned.members())

        result = {
            "teams": [
                {
                    **team.to_dict(),
                    "members": [
                        {
                            "slot": slot,
                            "player_id": planned.seats[slot].id,
                            "bucket": planned.buckets[slot],
                        }
                        for slot in sorted(planned.seats)
                    ],
                }
                for team, planned in zip(created, plan)
            ]
        }

    logger.info(f"[FORMATION SUCCESS] tournament={tournament_id} teams={len(plan)}")
    return result


async def reset_teams(db: AsyncSession, tournament_id: int) -> Dict[str, Any]:
    """Delete all members then all teams; pre-start SOLO tournaments only."""
    async with locked_transaction(db, tournament_id):
        store = RosterStore(db)
        tournament = await store.get_tournament(tournament_id, lock=True)
        _ensure_solo(tournament)
        TournamentLifecycleStateMachine.ensure_draft(tournament, "Team reset")
        deleted = await store.delete_teams(tournament_id)

    logger.info(f"[FORMATION RESET] tournament={tournament_id} deleted_teams={deleted}")
    return {"deleted_teams": deleted}


async def set_seed(
    db: AsyncSession,
    player_id: int,
    seed_team_index: Optional[int],
    seed_slot: Optional[int] = None
) -> Dict[str, Any]:
    """
    Seed a player into team 1..8, or clear the seed with None.

    seed_slot defaults to 1 when seeding and is cleared together with the seed.
    """
    if seed_team_index is not None and not 1 <= seed_team_index <= TEAM_COUNT:
        raise ValidationFailedError(
            f"seed_team_index must be between 1 and {TEAM_COUNT}",
            ErrorCode.INVALID_SEED,
            {"seed_team_index": seed_team_index}
        )
    if seed_slot is not None and seed_slot not in SLOTS:
        raise ValidationFailedError(
            "seed_slot must be between 1 and 3",
            ErrorCode.INVALID_SEED,
            {"seed_slot": seed_slot}
        )

    tournament_id = await RosterStore(db).tournament_id_for_player(player_id)

    async with locked_transaction(db, tournament_id):
        store = RosterStore(db)
        tournament = await store.get_tournament(tournament_id, lock=True)
        _ensure_solo(tournament)
        TournamentLifecycleStateMachine.ensure_draft(tournament, "Seeding")
        player = await store.get_player(player_id)

        if seed_team_index is None:
            player.seed_team_index = None
            player.seed_slot = None
        else:
            others = [p for p in await store.list_seeded_players(tournament_id) if p.id != player.id]
            if len(others) >= MAX_SEEDS:
                raise PreconditionError(
                    f"At most {MAX_SEEDS} players may be seeded",
                    ErrorCode.TOO_MANY_SEEDS,
                    {"seeded": len(others), "max": MAX_SEEDS}
                )
            taken = next((p for p in others if p.seed_team_index == seed_team_index), None)
            if taken is not None:
                raise PreconditionError(
                    f"Team {seed_team_index} is already seeded by player {taken.id}",
                    ErrorCode.DUPLICATE_SEED,
                    {"seed_team_index": seed_team_index, "player_id": taken.id}
                )
            player.seed_team_index = seed_team_index
            player.seed_slot = seed_slot or 1

        await db.flush()
        result = player.to_dict()

    logger.info(
        f"[SEED] tournament={tournament_id} player={player_id} "
        f"team={result['seed_team_index']} slot={result['seed_slot']}"
    )
    return result


async def set_strength(db: AsyncSession, player_id: int, value: int) -> Dict[str, Any]:
    if isinstance(value, bool) or not isinstance(value, int) or not MIN_STRENGTH <= value <= MAX_STRENGTH:
        raise ValidationFailedError(
            f"strength must be an integer between {MIN_STRENGTH} and {MAX_STRENGTH}",
            ErrorCode.INVALID_STRENGTH,
            {"strength": value}
        )

    tournament_id = await RosterStore(db).tournament_id_for_player(player_id)

    async with locked_transaction(db, tournament_id):
        store = RosterStore(db)
        tournament = await store.get_tournament(tournament_id, lock=True)
        TournamentLifecycleStateMachine.ensure_draft(tournament, "Strength edits")
        player = await store.get_player(player_id)
        player.strength = value
        await db.flush()
        result = player.to_dict()

    return result
