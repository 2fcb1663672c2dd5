"""
Roster Store

All reads and writes the ladder engine makes go through RosterStore. One
instance wraps one AsyncSession; the store flushes but never commits, so the
calling service owns the transaction boundary.

Reads use populate_existing so rows loaded earlier in the same session are
refreshed with what the database holds now.
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.exceptions import NotFoundError
from ladder.orm.tournament import Tournament, PointsOverride, TournamentStatus, RegistrationMode
from ladder.orm.registration import Registration, RegistrationPayment, RegistrationStatus
from ladder.orm.team import Player, Team, TeamMember, TeamState
from ladder.orm.stage import Stage, Game
from ladder.services.bucket_sorter import DEFAULT_STRENGTH

logger = logging.getLogger(__name__)

SOLO_PAYMENT_SLOTS = (1,)
TEAM_PAYMENT_SLOTS = (1, 2, 3)


def required_payment_slots(mode: str) -> Tuple[int, ...]:
    if mode == RegistrationMode.TEAM.value:
        return TEAM_PAYMENT_SLOTS
    return SOLO_PAYMENT_SLOTS


class RosterStore:
    """Thin persistence layer for tournaments, rosters and ladder state."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _fetch_all(self, query) -> list:
        result = await self.db.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def _fetch_one(self, query):
        result = await self.db.execute(query.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Tournament
    # ------------------------------------------------------------------

    async def get_tournament(self, tournament_id: int, lock: bool = False) -> Tournament:
        query = select(Tournament).where(Tournament.id == tournament_id)
        if lock:
            query = query.with_for_update()
        tournament = await self._fetch_one(query)
        if tournament is None:
            raise NotFoundError("Tournament", tournament_id)
        return tournament

    async def read_tournament_lifecycle(self, tournament_id: int) -> TournamentStatus:
        tournament = await self.get_tournament(tournament_id)
        return tournament.lifecycle

    async def update_lifecycle(self, tournament: Tournament, status: TournamentStatus) -> None:
        logger.info(f"[LIFECYCLE] tournament={tournament.id} {tournament.status} → {status.value}")
        tournament.status = status.value
        await self.db.flush()

    # ------------------------------------------------------------------
    # Lookups by child id (used to find which tournament lock to take)
    # ------------------------------------------------------------------

    async def tournament_id_for_player(self, player_id: int) -> int:
        result = await self.db.execute(select(Player.tournament_id).where(Player.id == player_id))
        tournament_id = result.scalar_one_or_none()
        if tournament_id is None:
            raise NotFoundError("Player", player_id)
        return tournament_id

    async def tournament_id_for_game(self, game_id: int) -> int:
        result = await self.db.execute(select(Game.tournament_id).where(Game.id == game_id))
        tournament_id = result.scalar_one_or_none()
        if tournament_id is None:
            raise NotFoundError("Game", game_id)
        return tournament_id

    async def tournament_id_for_registration(self, registration_id: int) -> int:
        result = await self.db.execute(
            select(Registration.tournament_id).where(Registration.id == registration_id)
        )
        tournament_id = result.scalar_one_or_none()
        if tournament_id is None:
            raise NotFoundError("Registration", registration_id)
        return tournament_id

    # ------------------------------------------------------------------
    # Players and payments
    # ------------------------------------------------------------------

    async def get_player(self, player_id: int) -> Player:
        player = await self._fetch_one(select(Player).where(Player.id == player_id))
        if player is None:
            raise NotFoundError("Player", player_id)
        return player

    async def list_accepted_players(self, tournament_id: int) -> List[Player]:
        return await self._fetch_all(
            select(Player).where(Player.tournament_id == tournament_id).order_by(Player.id)
        )

    async def list_seeded_players(self, tournament_id: int) -> List[Player]:
        return await self._fetch_all(
            select(Player).where(
                Player.tournament_id == tournament_id,
                Player.seed_team_index.is_not(None),
            ).order_by(Player.seed_team_index)
        )

    async def all_accepted_paid(self, tournament_id: int) -> bool:
        """
        True iff every accepted registration has all of its payment slots paid.

        SOLO registrations pay slot 1, TEAM registrations pay slots 1-3.
        Vacuously true when nothing is accepted.
        """
        registrations = await self._fetch_all(
            select(Registration).where(
                Registration.tournament_id == tournament_id,
                Registration.status == RegistrationStatus.ACCEPTED.value,
            )
        )
        if not registrations:
            return True

        result = await self.db.execute(
            select(RegistrationPayment.registration_id, RegistrationPayment.slot).where(
                RegistrationPayment.tournament_id == tournament_id,
                RegistrationPayment.paid.is_(True),
            )
        )
        paid = {(row.registration_id, row.slot) for row in result.all()}

        for registration in registrations:
            for slot in required_payment_slots(registration.mode):
                if (registration.id, slot) not in paid:
                    return False
        return True

    async def cancel_open_registrations(self, tournament_id: int) -> int:
        registrations = await self._fetch_all(
            select(Registration).where(
                Registration.tournament_id == tournament_id,
                Registration.status.in_([
                    RegistrationStatus.PENDING.value,
                    RegistrationStatus.ACCEPTED.value,
                ]),
            )
        )
        for registration in registrations:
            registration.status = RegistrationStatus.CANCELED.value
        await self.db.flush()
        return len(registrations)

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    async def count_teams(self, tournament_id: int) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Team).where(Team.tournament_id == tournament_id)
        )
        return result.scalar() or 0

    async def list_teams(self, tournament_id: int) -> List[Team]:
        return await self._fetch_all(
            select(Team).where(Team.tournament_id == tournament_id).order_by(Team.team_index)
        )

    async def get_team(self, team_id: int) -> Team:
        team = await self._fetch_one(select(Team).where(Team.id == team_id))
        if team is None:
            raise NotFoundError("Team", team_id)
        return team

    async def create_teams(
        self,
        tournament_id: int,
        teams: Iterable[Tuple[int, str, Optional[int]]]
    ) -> List[Team]:
        """Insert teams from (team_index, name, registration_id) tuples."""
        created = [
            Team(
                tournament_id=tournament_id,
                team_index=team_index,
                name=name,
                registration_id=registration_id,
                points=0,
            )
            for team_index, name, registration_id in teams
        ]
        self.db.add_all(created)
        await self.db.flush()
        return created

    async def delete_teams(self, tournament_id: int, team_ids: Optional[Sequence[int]] = None) -> int:
        """Delete members, ladder state and teams; all teams of the tournament by default."""
        team_query = select(Team.id).where(Team.tournament_id == tournament_id)
        if team_ids is not None:
            team_query = team_query.where(Team.id.in_(list(team_ids)))
        result = await self.db.execute(team_query)
        ids = list(result.scalars().all())
        if not ids:
            return 0

        await self.db.execute(
            delete(TeamMember).where(TeamMember.team_id.in_(ids))
            .execution_options(synchronize_session="fetch")
        )
        await self.db.execute(
            delete(TeamState).where(TeamState.team_id.in_(ids))
            .execution_options(synchronize_session="fetch")
        )
        await self.db.execute(
            delete(Team).where(Team.id.in_(ids))
            .execution_options(synchronize_session="fetch")
        )
        await self.db.flush()
        return len(ids)

    async def upsert_team_members(self, team_id: int, members: Iterable[Tuple[int, int]]) -> None:
        """Write (slot, player_id) seats of one team."""
        existing = {
            m.slot: m for m in await self._fetch_all(
                select(TeamMember).where(TeamMember.team_id == team_id)
            )
        }
        for slot, player_id in members:
            member = existing.get(slot)
            if member is None:
                self.db.add(TeamMember(team_id=team_id, slot=slot, player_id=player_id))
            else:
                member.player_id = player_id
        await self.db.flush()

    async def list_team_members(self, tournament_id: int) -> List[TeamMember]:
        return await self._fetch_all(
            select(TeamMember)
            .join(Team, Team.id == TeamMember.team_id)
            .where(Team.tournament_id == tournament_id)
            .order_by(Team.team_index, TeamMember.slot)
        )

    async def team_strengths(self, tournament: Tournament) -> Dict[int, int]:
        """
        Strength of each team for first-stage pairing.

        TEAM mode: the registration's declared strength.
        SOLO mode: sum of the members' player strengths.
        """
        if tournament.mode == RegistrationMode.TEAM:
            result = await self.db.execute(
                select(Team.id, Registration.strength)
                .outerjoin(Registration, Registration.id == Team.registration_id)
                .where(Team.tournament_id == tournament.id)
            )
            return {
                team_id: strength if strength is not None else DEFAULT_STRENGTH
                for team_id, strength in result.all()
            }

        result = await self.db.execute(
            select(TeamMember.team_id, func.sum(Player.strength))
            .join(Team, Team.id == TeamMember.team_id)
            .join(Player, Player.id == TeamMember.player_id)
            .where(Team.tournament_id == tournament.id)
            .group_by(TeamMember.team_id)
        )
        strengths = {team_id: int(total or 0) for team_id, total in result.all()}
        for team in await self.list_teams(tournament.id):
            strengths.setdefault(team.id, 0)
        return strengths

    async def increment_team_points(self, team_id: int, delta: int) -> Team:
        team = await self.get_team(team_id)
        team.points = (team.points or 0) + delta
        await self.db.flush()
        return team

    # ------------------------------------------------------------------
    # Ladder state
    # ------------------------------------------------------------------

    async def read_team_state(self, tournament_id: int) -> Dict[int, int]:
        rows = await self._fetch_all(
            select(TeamState).where(TeamState.tournament_id == tournament_id)
        )
        return {row.team_id: row.current_court for row in rows}

    async def write_team_state(self, tournament_id: int, courts: Dict[int, int]) -> None:
        """Upsert current_court for the given teams."""
        rows = {
            row.team_id: row for row in await self._fetch_all(
                select(TeamState).where(
                    TeamState.tournament_id == tournament_id,
                    TeamState.team_id.in_(list(courts)),
                )
            )
        }
        for team_id, court in courts.items():
            row = rows.get(team_id)
            if row is None:
                self.db.add(TeamState(tournament_id=tournament_id, team_id=team_id, current_court=court))
            else:
                row.current_court = court
        await self.db.flush()

    # ------------------------------------------------------------------
    # Stages and games
    # ------------------------------------------------------------------

    async def count_stages(self, tournament_id: int) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Stage).where(Stage.tournament_id == tournament_id)
        )
        return result.scalar() or 0

    async def latest_stage(self, tournament_id: int) -> Optional[Stage]:
        return await self._fetch_one(
            select(Stage)
            .where(Stage.tournament_id == tournament_id)
            .order_by(Stage.number.desc())
            .limit(1)
        )

    async def get_stage(self, stage_id: int) -> Stage:
        stage = await self._fetch_one(select(Stage).where(Stage.id == stage_id))
        if stage is None:
            raise NotFoundError("Stage", stage_id)
        return stage

    async def get_stage_by_number(self, tournament_id: int, number: int) -> Optional[Stage]:
        return await self._fetch_one(
            select(Stage).where(Stage.tournament_id == tournament_id, Stage.number == number)
        )

    async def create_stage(self, tournament_id: int, number: int) -> Stage:
        stage = Stage(tournament_id=tournament_id, number=number)
        self.db.add(stage)
        await self.db.flush()
        return stage

    async def create_games(
        self,
        tournament_id: int,
        stage_id: int,
        pairings: Dict[int, Tuple[int, int]]
    ) -> List[Game]:
        games = [
            Game(
                tournament_id=tournament_id,
                stage_id=stage_id,
                court=court,
                team_a_id=team_a_id,
                team_b_id=team_b_id,
                is_final=False,
            )
            for court, (team_a_id, team_b_id) in sorted(pairings.items())
        ]
        self.db.add_all(games)
        await self.db.flush()
        return games

    async def get_game(self, game_id: int) -> Game:
        game = await self._fetch_one(select(Game).where(Game.id == game_id))
        if game is None:
            raise NotFoundError("Game", game_id)
        return game

    async def read_games_by_stage(self, stage_id: int) -> List[Game]:
        return await self._fetch_all(
            select(Game).where(Game.stage_id == stage_id).order_by(Game.court)
        )

    async def update_game(
        self,
        game: Game,
        winner_team_id: int,
        score_text: Optional[str],
        points_awarded: int
    ) -> Game:
        game.winner_team_id = winner_team_id
        game.score_text = score_text
        game.points_awarded = points_awarded
        await self.db.flush()
        return game

    async def mark_games_final(self, stage_id: int) -> List[Game]:
        games = await self.read_games_by_stage(stage_id)
        for game in games:
            game.is_final = True
        await self.db.flush()
        return games

    # ------------------------------------------------------------------
    # Points overrides
    # ------------------------------------------------------------------

    async def read_points_overrides(self, tournament_id: int) -> List[PointsOverride]:
        return await self._fetch_all(
            select(PointsOverride)
            .where(PointsOverride.tournament_id == tournament_id)
            .order_by(PointsOverride.stage_number)
        )

    async def get_points_override(self, tournament_id: int, stage_number: int) -> Optional[PointsOverride]:
        return await self._fetch_one(
            select(PointsOverride).where(
                PointsOverride.tournament_id == tournament_id,
                PointsOverride.stage_number == stage_number,
            )
        )

    async def replace_points_overrides(self, tournament_id: int, rows: Iterable[Dict[str, int]]) -> List[PointsOverride]:
        """Full replace: delete every override of the tournament, insert rows."""
        await self.db.execute(
            delete(PointsOverride).where(PointsOverride.tournament_id == tournament_id)
            .execution_options(synchronize_session="fetch")
        )
        created = [
            PointsOverride(
                tournament_id=tournament_id,
                stage_number=row["stage_number"],
                points_c1=row["points_c1"],
                points_c2=row["points_c2"],
                points_c3=row["points_c3"],
                points_c4=row["points_c4"],
            )
            for row in rows
        ]
        self.db.add_all(created)
        await self.db.flush()
        return sorted(created, key=lambda o: o.stage_number)
