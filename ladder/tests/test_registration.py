"""
Registration tests

Tests for intake, admin review, payments and withdrawal:
- SOLO and TEAM application validation
- Accept creates roster rows, unaccept/reject/withdraw remove them
- Payment slots per mode
- Everything closed once the tournament leaves draft
"""
import random

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.errors import ErrorCode
from ladder.exceptions import NotFoundError, PreconditionError, ValidationFailedError
from ladder.orm import Player, RegistrationMode
from ladder.services import ladder_service, registration_service, team_formation_service, tournament_service
from ladder.services.registration_service import CONFIRMATION_ALPHABET, validate_application
from ladder.services.roster_store import RosterStore

from conftest import create_solo_tournament, create_team_tournament


SOLO_APPLICATION = {"solo_first_name": "Anna", "solo_last_name": "Ivanova", "phone": "+79990001122", "strength": 4}
TEAM_APPLICATION = {
    "team_player1": "Anna",
    "team_player2": "Boris",
    "team_player3": "Chen",
    "phone": "+15550001",
    "strength": 2,
}


async def create_empty_team_tournament(db: AsyncSession) -> int:
    tournament = await tournament_service.create_tournament(db, name="Teams", registration_mode="TEAM")
    return tournament["id"]


async def accepted_solo(db: AsyncSession, tournament_id: int, application=None) -> int:
    created = await registration_service.create_registration(db, tournament_id, application or SOLO_APPLICATION)
    await registration_service.review_registration(db, created["registration_id"], "accept")
    return created["registration_id"]


async def players_of(db: AsyncSession, registration_id: int):
    result = await db.execute(
        select(Player).where(Player.registration_id == registration_id)
        .order_by(Player.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


# ============================================================================
# Application validation
# ============================================================================

class TestValidateApplication:
    def test_solo_player_name_is_last_first(self):
        fields = validate_application(RegistrationMode.SOLO, SOLO_APPLICATION)
        assert fields["solo_player"] == "Ivanova Anna"
        assert fields["strength"] == 4

    def test_strength_defaults_to_three(self):
        fields = validate_application(RegistrationMode.SOLO, {**SOLO_APPLICATION, "strength": None})
        assert fields["strength"] == 3

    def test_names_are_trimmed(self):
        fields = validate_application(RegistrationMode.TEAM, {**TEAM_APPLICATION, "team_player2": "  Boris "})
        assert fields["team_player2"] == "Boris"

    @pytest.mark.parametrize("missing", ["solo_first_name", "solo_last_name"])
    def test_solo_names_required(self, missing):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_application(RegistrationMode.SOLO, {**SOLO_APPLICATION, missing: "  "})
        assert exc_info.value.code == ErrorCode.MISSING_FIELD

    def test_team_needs_three_names(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_application(RegistrationMode.TEAM, {**TEAM_APPLICATION, "team_player3": None})
        assert exc_info.value.code == ErrorCode.MISSING_FIELD

    @pytest.mark.parametrize("phone", ["79990001122", "", None])
    def test_phone_must_be_international(self, phone):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_application(RegistrationMode.SOLO, {**SOLO_APPLICATION, "phone": phone})
        assert exc_info.value.code == ErrorCode.INVALID_PHONE

    @pytest.mark.parametrize("strength", [0, 6, "3"])
    def test_strength_range(self, strength):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_application(RegistrationMode.SOLO, {**SOLO_APPLICATION, "strength": strength})
        assert exc_info.value.code == ErrorCode.INVALID_STRENGTH


# ============================================================================
# Intake
# ============================================================================

@pytest.mark.asyncio
class TestCreateRegistration:
    async def test_returns_confirmation_code(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        created = await registration_service.create_registration(db, tournament_id, SOLO_APPLICATION)

        code = created["confirmation_code"]
        assert len(code) == 10
        assert set(code) <= set(CONFIRMATION_ALPHABET)

        listing = await registration_service.list_registrations(db, tournament_id)
        assert [r["status"] for r in listing["registrations"]] == ["pending"]
        assert listing["registrations"][0]["solo_player"] == "Ivanova Anna"
        assert listing["all_accepted_paid"] is True

    async def test_codes_are_unique(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        codes = set()
        for _ in range(10):
            created = await registration_service.create_registration(db, tournament_id, SOLO_APPLICATION)
            codes.add(created["confirmation_code"])
        assert len(codes) == 10

    async def test_closed_once_live(self, db: AsyncSession):
        tournament_id, _ = await create_team_tournament(db)
        await ladder_service.start_next_stage(db, tournament_id)

        with pytest.raises(PreconditionError) as exc_info:
            await registration_service.create_registration(db, tournament_id, TEAM_APPLICATION)
        assert exc_info.value.code == ErrorCode.REGISTRATION_CLOSED

    async def test_unknown_tournament(self, db: AsyncSession):
        with pytest.raises(NotFoundError):
            await registration_service.create_registration(db, 555, SOLO_APPLICATION)


# ============================================================================
# Review
# ============================================================================

@pytest.mark.asyncio
class TestReview:
    async def test_accept_solo_creates_player(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        registration_id = await accepted_solo(db, tournament_id)

        players = await players_of(db, registration_id)
        assert [(p.full_name, p.strength) for p in players] == [("Ivanova Anna", 4)]

    async def test_accept_team_creates_team_and_members(self, db: AsyncSession):
        tournament_id = await create_empty_team_tournament(db)
        created = await registration_service.create_registration(db, tournament_id, TEAM_APPLICATION)

        registration = await registration_service.review_registration(db, created["registration_id"], "accept")
        assert registration["status"] == "accepted"

        teams = await RosterStore(db).list_teams(tournament_id)
        assert [(t.team_index, t.name) for t in teams] == [(1, "Anna / Boris / Chen")]
        members = await RosterStore(db).list_team_members(tournament_id)
        assert [(m.slot, m.player.full_name, m.player.strength) for m in members] == [
            (1, "Anna", 2), (2, "Boris", 2), (3, "Chen", 2)
        ]

    async def test_team_index_reused_after_unaccept(self, db: AsyncSession):
        tournament_id = await create_empty_team_tournament(db)
        first = await registration_service.create_registration(db, tournament_id, TEAM_APPLICATION)
        second = await registration_service.create_registration(db, tournament_id, TEAM_APPLICATION)
        await registration_service.review_registration(db, first["registration_id"], "accept")
        await registration_service.review_registration(db, second["registration_id"], "accept")

        await registration_service.review_registration(db, first["registration_id"], "unaccept")
        third = await registration_service.create_registration(db, tournament_id, TEAM_APPLICATION)
        await registration_service.review_registration(db, third["registration_id"], "accept")

        teams = await RosterStore(db).list_teams(tournament_id)
        assert [(t.team_index, t.registration_id) for t in teams] == [
            (1, third["registration_id"]),
            (2, second["registration_id"]),
        ]

    async def test_ninth_team_refused(self, db: AsyncSession):
        tournament_id, _ = await create_team_tournament(db)
        created = await registration_service.create_registration(db, tournament_id, TEAM_APPLICATION)

        with pytest.raises(PreconditionError) as exc_info:
            await registration_service.review_registration(db, created["registration_id"], "accept")
        assert exc_info.value.code == ErrorCode.TEAM_COUNT_INVALID
        assert await RosterStore(db).count_teams(tournament_id) == 8
        assert await players_of(db, created["registration_id"]) == []

    async def test_accept_twice_refused(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        registration_id = await accepted_solo(db, tournament_id)

        with pytest.raises(PreconditionError) as exc_info:
            await registration_service.review_registration(db, registration_id, "accept")
        assert exc_info.value.code == ErrorCode.INVALID_REGISTRATION_STATE
        assert len(await players_of(db, registration_id)) == 1

    async def test_unaccept_removes_player(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        registration_id = await accepted_solo(db, tournament_id)

        registration = await registration_service.review_registration(db, registration_id, "unaccept")
        assert registration["status"] == "pending"
        assert await players_of(db, registration_id) == []

    async def test_unaccept_pending_refused(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        created = await registration_service.create_registration(db, tournament_id, SOLO_APPLICATION)

        with pytest.raises(PreconditionError) as exc_info:
            await registration_service.review_registration(db, created["registration_id"], "unaccept")
        assert exc_info.value.code == ErrorCode.INVALID_REGISTRATION_STATE

    async def test_reject_accepted_rolls_back_and_clears_payment(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        registration_id = await accepted_solo(db, tournament_id)
        await registration_service.set_payment(db, registration_id, 1, True)

        registration = await registration_service.review_registration(db, registration_id, "reject")

        assert registration["status"] == "rejected"
        assert await players_of(db, registration_id) == []
        listing = await registration_service.list_registrations(db, tournament_id)
        assert [p["paid"] for p in listing["payments"]] == [False]

    async def test_rejected_can_be_accepted_again(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        created = await registration_service.create_registration(db, tournament_id, SOLO_APPLICATION)
        await registration_service.review_registration(db, created["registration_id"], "reject")

        registration = await registration_service.review_registration(db, created["registration_id"], "accept")
        assert registration["status"] == "accepted"

    async def test_unaccept_after_formation_refused(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[3] * 23)
        registration_id = await accepted_solo(db, tournament_id)
        await registration_service.set_payment(db, registration_id, 1, True)
        await team_formation_service.form_teams(db, tournament_id, rng=random.Random(5))

        with pytest.raises(PreconditionError) as exc_info:
            await registration_service.review_registration(db, registration_id, "unaccept")
        assert exc_info.value.code == ErrorCode.TEAMS_ALREADY_EXIST
        assert len(await players_of(db, registration_id)) == 1

    async def test_invalid_action(self, db: AsyncSession):
        with pytest.raises(ValidationFailedError) as exc_info:
            await registration_service.review_registration(db, 1, "approve")
        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    async def test_unknown_registration(self, db: AsyncSession):
        with pytest.raises(NotFoundError):
            await registration_service.review_registration(db, 999, "accept")

    async def test_registration_strength(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        created = await registration_service.create_registration(db, tournament_id, SOLO_APPLICATION)

        registration = await registration_service.set_registration_strength(db, created["registration_id"], 1)
        assert registration["strength"] == 1

        with pytest.raises(ValidationFailedError) as exc_info:
            await registration_service.set_registration_strength(db, created["registration_id"], 9)
        assert exc_info.value.code == ErrorCode.INVALID_STRENGTH


# ============================================================================
# Payments
# ============================================================================

@pytest.mark.asyncio
class TestPayments:
    async def test_solo_payment_completes_roster(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        registration_id = await accepted_solo(db, tournament_id)
        assert await RosterStore(db).all_accepted_paid(tournament_id) is False

        payment = await registration_service.set_payment(db, registration_id, 1, True)
        assert payment["paid"] is True
        assert payment["paid_at"] is not None
        assert await RosterStore(db).all_accepted_paid(tournament_id) is True

        payment = await registration_service.set_payment(db, registration_id, 1, False)
        assert payment["paid_at"] is None
        assert await RosterStore(db).all_accepted_paid(tournament_id) is False

    async def test_team_needs_all_three_slots(self, db: AsyncSession):
        tournament_id = await create_empty_team_tournament(db)
        created = await registration_service.create_registration(db, tournament_id, TEAM_APPLICATION)
        registration_id = created["registration_id"]
        await registration_service.review_registration(db, registration_id, "accept")

        for slot in (1, 2):
            await registration_service.set_payment(db, registration_id, slot, True)
        assert await RosterStore(db).all_accepted_paid(tournament_id) is False

        await registration_service.set_payment(db, registration_id, 3, True)
        assert await RosterStore(db).all_accepted_paid(tournament_id) is True

    async def test_solo_has_only_slot_one(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        registration_id = await accepted_solo(db, tournament_id)

        with pytest.raises(ValidationFailedError) as exc_info:
            await registration_service.set_payment(db, registration_id, 2, True)
        assert exc_info.value.code == ErrorCode.INVALID_SLOT

    async def test_slot_range(self, db: AsyncSession):
        with pytest.raises(ValidationFailedError) as exc_info:
            await registration_service.set_payment(db, 1, 4, True)
        assert exc_info.value.code == ErrorCode.INVALID_SLOT

    async def test_pending_registration_cannot_pay(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        created = await registration_service.create_registration(db, tournament_id, SOLO_APPLICATION)

        with pytest.raises(PreconditionError) as exc_info:
            await registration_service.set_payment(db, created["registration_id"], 1, True)
        assert exc_info.value.code == ErrorCode.INVALID_REGISTRATION_STATE


# ============================================================================
# Withdraw
# ============================================================================

@pytest.mark.asyncio
class TestWithdraw:
    async def test_withdraw_by_code_is_case_insensitive(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        created = await registration_service.create_registration(db, tournament_id, SOLO_APPLICATION)

        result = await registration_service.withdraw(db, tournament_id, created["confirmation_code"].lower())
        assert result == {"registration_id": created["registration_id"], "status": "withdrawn", "changed": True}

    async def test_withdraw_is_idempotent(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        created = await registration_service.create_registration(db, tournament_id, SOLO_APPLICATION)
        await registration_service.withdraw(db, tournament_id, created["confirmation_code"])

        result = await registration_service.withdraw(db, tournament_id, created["confirmation_code"])
        assert result["changed"] is False
        assert result["status"] == "withdrawn"

    async def test_withdraw_accepted_removes_player(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        created = await registration_service.create_registration(db, tournament_id, SOLO_APPLICATION)
        await registration_service.review_registration(db, created["registration_id"], "accept")

        await registration_service.withdraw(db, tournament_id, created["confirmation_code"])
        assert await players_of(db, created["registration_id"]) == []

    async def test_unknown_code(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        with pytest.raises(NotFoundError):
            await registration_service.withdraw(db, tournament_id, "NOPE000000")

    async def test_code_from_other_tournament(self, db: AsyncSession):
        first_id, _ = await create_solo_tournament(db, strengths=[])
        second_id, _ = await create_solo_tournament(db, strengths=[], name="Saturday Ladder")
        created = await registration_service.create_registration(db, first_id, SOLO_APPLICATION)

        with pytest.raises(NotFoundError):
            await registration_service.withdraw(db, second_id, created["confirmation_code"])

    async def test_empty_code(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        with pytest.raises(ValidationFailedError) as exc_info:
            await registration_service.withdraw(db, tournament_id, "  ")
        assert exc_info.value.code == ErrorCode.MISSING_FIELD

    async def test_closed_once_canceled(self, db: AsyncSession):
        tournament_id, _ = await create_solo_tournament(db, strengths=[])
        created = await registration_service.create_registration(db, tournament_id, SOLO_APPLICATION)
        await ladder_service.cancel(db, tournament_id)

        with pytest.raises(PreconditionError) as exc_info:
            await registration_service.withdraw(db, tournament_id, created["confirmation_code"])
        assert exc_info.value.code == ErrorCode.REGISTRATION_CLOSED
