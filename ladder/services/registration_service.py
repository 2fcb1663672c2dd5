"""
Registration Service

Intake of SOLO and TEAM applications, admin review, payments and withdrawal.

Accepting a registration creates the roster rows the engine works with:
    SOLO → 1 Player
    TEAM → 3 Players + 1 Team (next free team_index) + 3 TeamMembers
Unaccept, withdraw and reject roll those rows back.

Everything here is allowed only while the tournament is in draft.
"""
import logging
import secrets
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.errors import ErrorCode
from ladder.exceptions import NotFoundError, PreconditionError, ValidationFailedError
from ladder.orm.registration import Registration, RegistrationPayment, RegistrationStatus
from ladder.orm.team import Player, Team, TeamMember
from ladder.orm.tournament import RegistrationMode, Tournament, TournamentStatus
from ladder.services.bucket_sorter import DEFAULT_STRENGTH, MAX_STRENGTH, MIN_STRENGTH
from ladder.services.roster_store import RosterStore, required_payment_slots
from ladder.services.team_formation_service import TEAM_COUNT, TEAM_NAME_SEPARATOR
from ladder.services.tournament_locks import locked_transaction
from ladder.state_machines.tournament_lifecycle import TournamentLifecycleStateMachine

logger = logging.getLogger(__name__)

CONFIRMATION_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CONFIRMATION_CODE_LENGTH = 10
CODE_ATTEMPTS = 5

REVIEW_ACTIONS = ("accept", "reject", "unaccept")


def make_confirmation_code(length: int = CONFIRMATION_CODE_LENGTH) -> str:
    return "".join(secrets.choice(CONFIRMATION_ALPHABET) for _ in range(length))


def _clean(value: Any) -> str:
    return str(value if value is not None else "").strip()


def validate_application(mode: RegistrationMode, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize an application payload for the tournament's mode.

    SOLO needs first and last name, TEAM needs three player names; the phone
    number must start with "+".
    """
    phone = _clean(data.get("phone"))
    strength = data.get("strength")
    if strength is None:
        strength = DEFAULT_STRENGTH
    if isinstance(strength, bool) or not isinstance(strength, int) or not MIN_STRENGTH <= strength <= MAX_STRENGTH:
        raise ValidationFailedError(
            f"strength must be an integer between {MIN_STRENGTH} and {MAX_STRENGTH}",
            ErrorCode.INVALID_STRENGTH,
            {"strength": strength}
        )

    if mode == RegistrationMode.SOLO:
        first = _clean(data.get("solo_first_name"))
        last = _clean(data.get("solo_last_name"))
        if not first or not last:
            raise ValidationFailedError(
                "Last and first name required",
                ErrorCode.MISSING_FIELD,
                {"fields": ["solo_first_name", "solo_last_name"]}
            )
        fields = {
            "solo_first_name": first,
            "solo_last_name": last,
            "solo_player": f"{last} {first}",
        }
    else:
        names = [_clean(data.get(f"team_player{i}")) for i in (1, 2, 3)]
        if not all(names):
            raise ValidationFailedError(
                "A team application needs 3 player names",
                ErrorCode.MISSING_FIELD,
                {"fields": ["team_player1", "team_player2", "team_player3"]}
            )
        fields = {f"team_player{i}": name for i, name in enumerate(names, start=1)}

    if not phone.startswith("+"):
        raise ValidationFailedError(
            "Phone must start with +",
            ErrorCode.INVALID_PHONE,
            {"phone": phone}
        )

    fields.update({"phone": phone, "strength": strength})
    return fields


def _ensure_registration_open(tournament: Tournament) -> None:
    if tournament.lifecycle != TournamentStatus.DRAFT:
        raise PreconditionError(
            f"Registration for tournament {tournament.id} is closed ({tournament.status})",
            ErrorCode.REGISTRATION_CLOSED,
            {"status": tournament.status}
        )


async def _get_registration(db: AsyncSession, registration_id: int) -> Registration:
    result = await db.execute(
        select(Registration).where(Registration.id == registration_id)
        .execution_options(populate_existing=True)
    )
    registration = result.scalar_one_or_none()
    if registration is None:
        raise NotFoundError("Registration", registration_id)
    return registration


async def _unique_code(db: AsyncSession) -> str:
    for _ in range(CODE_ATTEMPTS):
        code = make_confirmation_code()
        result = await db.execute(
            select(Registration.id).where(Registration.confirmation_code == code)
        )
        if result.scalar_one_or_none() is None:
            return code
    raise RuntimeError("Could not generate a unique confirmation code")


# ============================================================================
# Intake
# ============================================================================

async def create_registration(db: AsyncSession, tournament_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    """Public apply and admin create share this path."""
    async with locked_transaction(db, tournament_id):
        store = RosterStore(db)
        tournament = await store.get_tournament(tournament_id, lock=True)
        _ensure_registration_open(tournament)

        fields = validate_application(tournament.mode, data)
        registration = Registration(
            tournament_id=tournament_id,
            mode=tournament.registration_mode,
            status=RegistrationStatus.PENDING.value,
            confirmation_code=await _unique_code(db),
            **fields
        )
        db.add(registration)
        await db.flush()
        result = {
            "registration_id": registration.id,
            "confirmation_code": registration.confirmation_code,
        }

    logger.info(f"[REGISTRATION] tournament={tournament_id} registration={result['registration_id']}")
    return result


async def list_registrations(db: AsyncSession, tournament_id: int) -> Dict[str, Any]:
    store = RosterStore(db)
    tournament = await store.get_tournament(tournament_id)

    regs = await db.execute(
        select(Registration).where(Registration.tournament_id == tournament_id)
        .order_by(*Registration.arrival_order())
        .execution_options(populate_existing=True)
    )
    pays = await db.execute(
        select(RegistrationPayment).where(RegistrationPayment.tournament_id == tournament_id)
        .order_by(RegistrationPayment.registration_id, RegistrationPayment.slot)
        .execution_options(populate_existing=True)
    )
    return {
        "tournament": tournament.to_dict(),
        "registrations": [r.to_dict() for r in regs.scalars().all()],
        "payments": [p.to_dict() for p in pays.scalars().all()],
        "all_accepted_paid": await store.all_accepted_paid(tournament_id),
    }


# ============================================================================
# Review
# ============================================================================

async def _next_team_index(store: RosterStore, tournament_id: int) -> int:
    used = {t.team_index for t in await store.list_teams(tournament_id)}
    for index in range(1, TEAM_COUNT + 1):
        if index not in used:
            return index
    raise PreconditionError(
        f"Tournament {tournament_id} already has {TEAM_COUNT} teams",
        ErrorCode.TEAM_COUNT_INVALID,
        {"count": len(used), "max": TEAM_COUNT}
    )


async def _accept(db: AsyncSession, store: RosterStore, registration: Registration) -> None:
    tournament_id = registration.tournament_id

    if registration.mode == RegistrationMode.SOLO.value:
        db.add(Player(
            tournament_id=tournament_id,
            registration_id=registration.id,
            full_name=registration.solo_player,
            strength=registration.strength or DEFAULT_STRENGTH,
        ))
        await db.flush()
        return

    names = registration.team_names()
    if len(names) != 3:
        raise ValidationFailedError(
            "A team registration needs 3 player names",
            ErrorCode.MISSING_FIELD,
            {"registration_id": registration.id}
        )

    team_index = await _next_team_index(store, tournament_id)
    players = [
        Player(
            tournament_id=tournament_id,
            registration_id=registration.id,
            full_name=name,
            strength=registration.strength or DEFAULT_STRENGTH,
        )
        for name in names
    ]
    db.add_all(players)
    await db.flush()

    team, = await store.create_teams(
        tournament_id,
        [(team_index, TEAM_NAME_SEPARATOR.join(names), registration.id)]
    )
    await store.upsert_team_members(
        team.id,
        [(slot, player.id) for slot, player in enumerate(players, start=1)]
    )


async def _rollback_accepted(db: AsyncSession, store: RosterStore, registration: Registration) -> None:
    """Delete the team, members and players created when the registration was accepted."""
    result = await db.execute(select(Team.id).where(Team.registration_id == registration.id))
    team_ids = list(result.scalars().all())
    if team_ids:
        await store.delete_teams(registration.tournament_id, team_ids)

    result = await db.execute(select(Player.id).where(Player.registration_id == registration.id))
    player_ids = list(result.scalars().all())
    if not player_ids:
        return

    result = await db.execute(
        select(TeamMember.team_id).where(TeamMember.player_id.in_(player_ids))
    )
    if result.first() is not None:
        raise PreconditionError(
            "Players of this registration already belong to a formed team; reset teams first",
            ErrorCode.TEAMS_ALREADY_EXIST,
            {"registration_id": registration.id}
        )

    await db.execute(
        delete(Player).where(Player.id.in_(player_ids))
        .execution_options(synchronize_session="fetch")
    )
    await db.flush()


async def _clear_payments(db: AsyncSession, registration_id: int) -> None:
    result = await db.execute(
        select(RegistrationPayment).where(RegistrationPayment.registration_id == registration_id)
        .execution_options(populate_existing=True)
    )
    for payment in result.scalars().all():
        payment.paid = False
        payment.paid_at = None
    await db.flush()


async def review_registration(db: AsyncSession, registration_id: int, action: str) -> Dict[str, Any]:
    """
    Apply an admin review action.

    accept:   pending/rejected → accepted, creates roster rows
    reject:   clears payments, rolls back an accepted registration → rejected
    unaccept: accepted → pending, rolls back roster rows
    """
    if action not in REVIEW_ACTIONS:
        raise ValidationFailedError(
            f"Invalid action. Must be one of: {', '.join(REVIEW_ACTIONS)}",
            ErrorCode.INVALID_INPUT,
            {"action": action, "allowed": list(REVIEW_ACTIONS)}
        )

    tournament_id = await RosterStore(db).tournament_id_for_registration(registration_id)

    async with locked_transaction(db, tournament_id):
        store = RosterStore(db)
        tournament = await store.get_tournament(tournament_id, lock=True)
        TournamentLifecycleStateMachine.ensure_draft(tournament, "Registration review")
        registration = await _get_registration(db, registration_id)
        previous = registration.status

        if action == "accept":
            if previous not in (RegistrationStatus.PENDING.value, RegistrationStatus.REJECTED.value):
                raise PreconditionError(
                    f"Registration {registration_id} is {previous} and cannot be accepted",
                    ErrorCode.INVALID_REGISTRATION_STATE,
                    {"status": previous}
                )
            await _accept(db, store, registration)
            registration.status = RegistrationStatus.ACCEPTED.value

        elif action == "reject":
            if previous == RegistrationStatus.ACCEPTED.value:
                await _rollback_accepted(db, store, registration)
            await _clear_payments(db, registration.id)
            registration.status = RegistrationStatus.REJECTED.value

        else:
            if previous != RegistrationStatus.ACCEPTED.value:
                raise PreconditionError(
                    f"Registration {registration_id} is {previous}, not accepted",
                    ErrorCode.INVALID_REGISTRATION_STATE,
                    {"status": previous}
                )
            await _rollback_accepted(db, store, registration)
            registration.status = RegistrationStatus.PENDING.value

        await db.flush()
        result = registration.to_dict()

    logger.info(f"[REVIEW] registration={registration_id} {action}: {previous} → {result['status']}")
    return result


async def set_registration_strength(db: AsyncSession, registration_id: int, value: int) -> Dict[str, Any]:
    if isinstance(value, bool) or not isinstance(value, int) or not MIN_STRENGTH <= value <= MAX_STRENGTH:
        raise ValidationFailedError(
            f"strength must be an integer between {MIN_STRENGTH} and {MAX_STRENGTH}",
            ErrorCode.INVALID_STRENGTH,
            {"strength": value}
        )

    tournament_id = await RosterStore(db).tournament_id_for_registration(registration_id)

    async with locked_transaction(db, tournament_id):
        store = RosterStore(db)
        tournament = await store.get_tournament(tournament_id, lock=True)
        TournamentLifecycleStateMachine.ensure_draft(tournament, "Strength edits")
        registration = await _get_registration(db, registration_id)
        registration.strength = value
        await db.flush()
        result = registration.to_dict()

    return result


async def set_payment(db: AsyncSession, registration_id: int, slot: int, paid: bool) -> Dict[str, Any]:
    """Upsert the payment flag of one slot of an accepted registration."""
    if isinstance(slot, bool) or not isinstance(slot, int) or not 1 <= slot <= 3:
        raise ValidationFailedError(
            "slot must be between 1 and 3",
            ErrorCode.INVALID_SLOT,
            {"slot": slot}
        )

    tournament_id = await RosterStore(db).tournament_id_for_registration(registration_id)

    async with locked_transaction(db, tournament_id):
        store = RosterStore(db)
        tournament = await store.get_tournament(tournament_id, lock=True)
        TournamentLifecycleStateMachine.ensure_draft(tournament, "Payment changes")
        registration = await _get_registration(db, registration_id)

        if registration.status != RegistrationStatus.ACCEPTED.value:
            raise PreconditionError(
                "Payment allowed only for accepted registrations",
                ErrorCode.INVALID_REGISTRATION_STATE,
                {"status": registration.status}
            )
        if slot not in required_payment_slots(registration.mode):
            raise ValidationFailedError(
                f"{registration.mode} registrations support slots {list(required_payment_slots(registration.mode))}",
                ErrorCode.INVALID_SLOT,
                {"slot": slot, "mode": registration.mode}
            )

        result = await db.execute(
            select(RegistrationPayment).where(
                RegistrationPayment.registration_id == registration_id,
                RegistrationPayment.slot == slot,
            ).execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if payment is None:
            payment = RegistrationPayment(
                tournament_id=tournament_id,
                registration_id=registration_id,
                slot=slot,
            )
            db.add(payment)
        payment.paid = bool(paid)
        payment.paid_at = datetime.utcnow() if paid else None
        await db.flush()
        response = payment.to_dict()

    return response


async def withdraw(db: AsyncSession, tournament_id: int, confirmation_code: str) -> Dict[str, Any]:
    """Withdraw by confirmation code; idempotent for already withdrawn registrations."""
    code = _clean(confirmation_code).upper()
    if not code:
        raise ValidationFailedError(
            "confirmation_code required",
            ErrorCode.MISSING_FIELD,
            {"fields": ["confirmation_code"]}
        )

    async with locked_transaction(db, tournament_id):
        store = RosterStore(db)
        tournament = await store.get_tournament(tournament_id, lock=True)
        _ensure_registration_open(tournament)

        result = await db.execute(
            select(Registration).where(
                Registration.tournament_id == tournament_id,
                Registration.confirmation_code == code,
            ).execution_options(populate_existing=True)
        )
        registration = result.scalar_one_or_none()
        if registration is None:
            raise NotFoundError("Registration", code)

        changed = registration.status != RegistrationStatus.WITHDRAWN.value
        if changed:
            if registration.status == RegistrationStatus.ACCEPTED.value:
                await _rollback_accepted(db, store, registration)
            registration.status = RegistrationStatus.WITHDRAWN.value
            await db.flush()
        response = {"registration_id": registration.id, "status": registration.status, "changed": changed}

    if changed:
        logger.info(f"[WITHDRAW] tournament={tournament_id} registration={response['registration_id']}")
    return response

