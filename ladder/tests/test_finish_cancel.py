"""
Finish and cancel tests
"""
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.errors import ErrorCode
from ladder.exceptions import PreconditionError
from ladder.orm import Registration
from ladder.services import ladder_service, points_service, registration_service, team_formation_service
from ladder.services.roster_store import RosterStore

from conftest import create_solo_tournament, create_team_tournament, latest_games, play_stage


async def registration_statuses(db: AsyncSession, tournament_id: int):
    result = await db.execute(
        select(Registration.status).where(Registration.tournament_id == tournament_id).order_by(Registration.id)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
class TestFinish:
    async def test_finish_freezes_latest_stage(self, db: AsyncSession):
        tournament_id, _ = await create_team_tournament(db)
        await ladder_service.start_next_stage(db, tournament_id)
        await play_stage(db, tournament_id)
        await ladder_service.start_next_stage(db, tournament_id)
        await play_stage(db, tournament_id)

        result = await ladder_service.finish(db, tournament_id)

        assert result == {"status": "finished", "final_stage_number": 2}
        games = await latest_games(db, tournament_id)
        assert all(g.is_final for g in games)

        store = RosterStore(db)
        first = await store.get_stage_by_number(tournament_id, 1)
        assert not any(g.is_final for g in await store.read_games_by_stage(first.id))

    async def test_finish_without_stages(self, db: AsyncSession):
        tournament_id, _ = await create_team_tournament(db)
        with pytest.raises(PreconditionError) as exc_info:
            await ladder_service.finish(db, tournament_id)
        assert exc_info.value.code == ErrorCode.NO_STAGES

    async def test_finish_with_open_games(self, db: AsyncSession):
        tournament_id, _ = await create_team_tournament(db)
        await ladder_service.start_next_stage(db, tournament_id)
        game = (await latest_games(db, tournament_id))[0]
        await ladder_service.record_result(db, game.id, game.team_a_id)

        with pytest.raises(PreconditionError) as exc_info:
            await ladder_service.finish(db, tournament_id)
        assert exc_info.value.code == ErrorCode.PREVIOUS_STAGE_INCOMPLETE
        assert (await RosterStore(db).get_tournament(tournament_id)).status == "live"

    async def test_finish_twice(self, db: AsyncSession):
        tournament_id, _ = await create_team_tournament(db)
        await ladder_service.start_next_stage(db, tournament_id)
        await play_stage(db, tournament_id)
        await ladder_service.finish(db, tournament_id)

        with pytest.raises(PreconditionError) as exc_info:
            await ladder_service.finish(db, tournament_id)
        assert exc_info.value.code == ErrorCode.TOURNAMENT_FINISHED

    async def test_finished_tournament_is_frozen(self, db: AsyncSession):
        tournament_id, _ = await create_team_tournament(db)
        await ladder_service.start_next_stage(db, tournament_id)
        await play_stage(db, tournament_id)
        await ladder_service.finish(db, tournament_id)

        with pytest.raises(PreconditionError) as exc_info:
            await ladder_service.start_next_stage(db, tournament_id)
        assert exc_info.value.code == ErrorCode.TOURNAMENT_FINISHED

        with pytest.raises(PreconditionError) as exc_info:
            await points_service.save_overrides(db, tournament_id, [])
        assert exc_info.value.code == ErrorCode.TOURNAMENT_FINISHED

        assert await RosterStore(db).count_stages(tournament_id) == 1


@pytest.mark.asyncio
class TestCancel:
    async def test_cancel_draft_cancels_open_registrations(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        pending = await registration_service.create_registration(db, tournament_id, {
            "solo_first_name": "Ann", "solo_last_name": "Lee", "phone": "+1555",
        })
        rejected = await registration_service.create_registration(db, tournament_id, {
            "solo_first_name": "Bo", "solo_last_name": "Kim", "phone": "+1556",
        })
        await registration_service.review_registration(db, rejected["registration_id"], "reject")

        result = await ladder_service.cancel(db, tournament_id)

        assert result == {"status": "canceled", "changed": True, "registrations_canceled": 1}
        assert await registration_statuses(db, tournament_id) == ["canceled", "rejected"]
        assert pending["registration_id"] < rejected["registration_id"]

    async def test_cancel_live(self, db: AsyncSession):
        tournament_id, _ = await create_team_tournament(db)
        await ladder_service.start_next_stage(db, tournament_id)

        result = await ladder_service.cancel(db, tournament_id)
        assert result["status"] == "canceled"
        assert result["registrations_canceled"] == 8

    async def test_cancel_is_idempotent(self, db: AsyncSession):
        tournament_id, _ = await create_team_tournament(db)
        await ladder_service.cancel(db, tournament_id)

        result = await ladder_service.cancel(db, tournament_id)
        assert result == {"status": "canceled", "changed": False, "registrations_canceled": 0}

    async def test_cancel_after_finish_refused(self, db: AsyncSession):
        tournament_id, _ = await create_team_tournament(db)
        await ladder_service.start_next_stage(db, tournament_id)
        await play_stage(db, tournament_id)
        await ladder_service.finish(db, tournament_id)

        with pytest.raises(PreconditionError) as exc_info:
            await ladder_service.cancel(db, tournament_id)
        assert exc_info.value.code == ErrorCode.TOURNAMENT_FINISHED
        assert (await RosterStore(db).get_tournament(tournament_id)).status == "finished"

    async def test_canceled_tournament_refuses_mutations(self, db: AsyncSession):
        tournament_id, player_ids = await create_solo_tournament(db)
        await ladder_service.cancel(db, tournament_id)

        with pytest.raises(PreconditionError) as exc_info:
            await team_formation_service.form_teams(db, tournament_id)
        assert exc_info.value.code == ErrorCode.TOURNAMENT_CANCELED

        with pytest.raises(PreconditionError) as exc_info:
            await team_formation_service.set_seed(db, player_ids[0], 1)
        assert exc_info.value.code == ErrorCode.TOURNAMENT_CANCELED

        with pytest.raises(PreconditionError) as exc_info:
            await ladder_service.start_next_stage(db, tournament_id)
        assert exc_info.value.code == ErrorCode.TOURNAMENT_CANCELED

        with pytest.raises(PreconditionError) as exc_info:
            await ladder_service.finish(db, tournament_id)
        assert exc_info.value.code == ErrorCode.TOURNAMENT_CANCELED

    async def test_results_refused_after_cancel(self, db: AsyncSession):
        tournament_id, _ = await create_team_tournament(db)
        await ladder_service.start_next_stage(db, tournament_id)
        game = (await latest_games(db, tournament_id))[0]
        game_id, winner = game.id, game.team_a_id
        await ladder_service.cancel(db, tournament_id)

        with pytest.raises(PreconditionError) as exc_info:
            await ladder_service.record_result(db, game_id, winner)
        assert exc_info.value.code == ErrorCode.TOURNAMENT_CANCELED
        assert (await RosterStore(db).get_game(game_id)).winner_team_id is None
