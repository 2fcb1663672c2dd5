"""
Pydantic Schemas for the ladder API

Request models only carry shape; range checks live in the services so the
same error codes come back from the API and from direct service calls.
"""
from typing import Any, Dict, Optional, List, Literal
from pydantic import BaseModel, Field


# ============================================================================
# Tournament Schemas
# ============================================================================

class PointsOverrideRow(BaseModel):
    """Points for one stage number, replacing the tournament defaults."""
    stage_number: int = Field(..., description="Stage the override applies to (>= 1)")
    points_c1: int
    points_c2: int
    points_c3: int
    points_c4: int


class PointsOverridesUpdate(BaseModel):
    """Full replacement of a tournament's overrides."""
    rows: List[PointsOverrideRow] = Field(default_factory=list)


class TournamentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    date: Optional[str] = Field(None, description="YYYY-MM-DD")
    start_time: Optional[str] = Field(None, description="HH:MM")
    registration_mode: Literal["SOLO", "TEAM"] = "SOLO"
    points_c1: Optional[int] = None
    points_c2: Optional[int] = None
    points_c3: Optional[int] = None
    points_c4: Optional[int] = None
    overrides: List[PointsOverrideRow] = Field(default_factory=list)


class TournamentResponse(BaseModel):
    id: int
    name: str
    date: Optional[str] = None
    start_time: Optional[str] = None
    registration_mode: str
    status: str
    points_c1: int
    points_c2: int
    points_c3: int
    points_c4: int

    class Config:
        from_attributes = True


# ============================================================================
# Registration Schemas
# ============================================================================

class RegistrationCreate(BaseModel):
    """SOLO uses the solo_* names, TEAM uses team_player1..3."""
    solo_first_name: Optional[str] = None
    solo_last_name: Optional[str] = None
    team_player1: Optional[str] = None
    team_player2: Optional[str] = None
    team_player3: Optional[str] = None
    phone: str = Field(..., description="International format, starting with +")
    strength: Optional[int] = Field(None, description="1-5, defaults to 3")


class RegistrationReview(BaseModel):
    action: Literal["accept", "reject", "unaccept"]


class WithdrawRequest(BaseModel):
    confirmation_code: str = Field(..., min_length=1)


class PaymentUpdate(BaseModel):
    slot: int = Field(1, description="1 for SOLO, 1-3 for TEAM")
    paid: bool


# ============================================================================
# Roster Schemas
# ============================================================================

class StrengthUpdate(BaseModel):
    strength: int


class SeedUpdate(BaseModel):
    """seed_team_index null clears the seed."""
    seed_team_index: Optional[int] = None
    seed_slot: Optional[int] = None


# ============================================================================
# Ladder Schemas
# ============================================================================

class GameResultCreate(BaseModel):
    winner_team_id: int
    score_text: Optional[str] = Field(None, max_length=100)


class GameResultResponse(BaseModel):
    stage_complete: bool
    points_awarded: int
    winner_court: int
    loser_court: int


class StageResponse(BaseModel):
    stage_number: int
    stage_id: int
    games: List[Dict[str, Any]] = Field(default_factory=list)
