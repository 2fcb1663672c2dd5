"""
Shared fixtures: a fresh file-backed SQLite database per test, sessions bound
to it, and an HTTP client wired to the app through ASGITransport.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["ENVIRONMENT"] = "test"
os.environ["FEATURE_RATE_LIMIT"] = "false"

import random
from typing import List, Optional, Sequence, Tuple

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ladder.database import get_db, init_db
from ladder.main import app
from ladder.orm import Player, Registration, RegistrationPayment, Team
from ladder.services import ladder_service, team_formation_service, tournament_service
from ladder.services.roster_store import RosterStore
from ladder.services.tournament_locks import reset_tournament_locks


DEFAULT_STRENGTHS = [(i % 5) + 1 for i in range(24)]


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ladder_test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    """Create database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def fresh_locks():
    reset_tournament_locks()
    yield
    reset_tournament_locks()


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


# ============================================================================
# Helper Functions
# ============================================================================

async def create_solo_tournament(
    db: AsyncSession,
    strengths: Optional[Sequence[int]] = None,
    name: str = "Friday Ladder"
) -> Tuple[int, List[int]]:
    """Draft SOLO tournament with one player per strength (24 by default)."""
    tournament = await tournament_service.create_tournament(db, name=name, date="2026-10-23", start_time="19:00")
    strengths = DEFAULT_STRENGTHS if strengths is None else strengths

    players = [
        Player(tournament_id=tournament["id"], full_name=f"Player {i + 1:02d}", strength=strength)
        for i, strength in enumerate(strengths)
    ]
    db.add_all(players)
    await db.commit()
    return tournament["id"], [p.id for p in players]


async def create_formed_solo_tournament(db: AsyncSession, seed: int = 7) -> Tuple[int, List[int]]:
    """SOLO tournament with its 8 teams formed; returns team ids by team_index."""
    tournament_id, _ = await create_solo_tournament(db)
    result = await team_formation_service.form_teams(db, tournament_id, rng=random.Random(seed))
    return tournament_id, [team["id"] for team in result["teams"]]


async def create_team_tournament(
    db: AsyncSession,
    strengths: Sequence[int] = (5, 5, 4, 4, 3, 3, 2, 1),
    overrides=None,
    points=None
) -> Tuple[int, List[int]]:
    """
    Draft TEAM tournament with 8 accepted, fully paid team registrations.

    Returns the tournament id and team ids ordered by team_index.
    """
    tournament = await tournament_service.create_tournament(
        db,
        name="Team Ladder",
        registration_mode="TEAM",
        date="2026-10-24",
        points=points,
        overrides=overrides,
    )
    tournament_id = tournament["id"]

    teams = []
    for i, strength in enumerate(strengths):
        registration = Registration(
            tournament_id=tournament_id,
            mode="TEAM",
            status="accepted",
            team_player1=f"A{i}",
            team_player2=f"B{i}",
            team_player3=f"C{i}",
            phone="+10000000000",
            strength=strength,
            confirmation_code=f"T{tournament_id:03d}CODE{i:02d}",
        )
        db.add(registration)
        await db.flush()
        db.add_all([
            RegistrationPayment(tournament_id=tournament_id, registration_id=registration.id, slot=slot, paid=True)
            for slot in (1, 2, 3)
        ])
        team = Team(
            tournament_id=tournament_id,
            registration_id=registration.id,
            team_index=i + 1,
            name=f"A{i} / B{i} / C{i}",
            points=0,
        )
        db.add(team)
        teams.append(team)

    await db.commit()
    return tournament_id, [t.id for t in teams]


async def latest_games(db: AsyncSession, tournament_id: int):
    store = RosterStore(db)
    stage = await store.latest_stage(tournament_id)
    return await store.read_games_by_stage(stage.id)


async def play_stage(db: AsyncSession, tournament_id: int, pick=None) -> None:
    """Record a result on every court of the latest stage; team A wins unless pick says otherwise."""
    for game in await latest_games(db, tournament_id):
        game_id, team_a, team_b = game.id, game.team_a_id, game.team_b_id
        winner = pick(game) if pick else team_a
        assert winner in (team_a, team_b)
        await ladder_service.record_result(db, game_id, winner, "6:4")
