"""
Stage and game models.

A stage is one round of the ladder: exactly one game per court. Game results
are write-once.
"""
from typing import Any, Dict, Optional

from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import relationship

from ladder.orm.base import BaseModel


class Stage(BaseModel):
    __tablename__ = "stages"

    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    number = Column(Integer, nullable=False)

    games = relationship(
        "Game",
        back_populates="stage",
        cascade="all, delete-orphan",
        order_by="Game.court",
    )

    __table_args__ = (
        UniqueConstraint("tournament_id", "number", name="uq_stage_tournament_number"),
        CheckConstraint("number >= 1", name="ck_stage_number_positive"),
    )

    def to_dict(self):
        return {"id": self.id, "number": self.number}


class Game(BaseModel):
    __tablename__ = "games"

    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    stage_id = Column(
        Integer,
        ForeignKey("stages.id", ondelete="CASCADE"),
        nullable=False
    )
    court = Column(Integer, nullable=False)
    team_a_id = Column(Integer, ForeignKey("teams.id", ondelete="RESTRICT"), nullable=False)
    team_b_id = Column(Integer, ForeignKey("teams.id", ondelete="RESTRICT"), nullable=False)
    winner_team_id = Column(Integer, ForeignKey("teams.id", ondelete="RESTRICT"), nullable=True)
    score_text = Column(String(100), nullable=True)
    points_awarded = Column(Integer, nullable=True)
    is_final = Column(Boolean, nullable=False, default=False)

    stage = relationship("Stage", back_populates="games")

    __table_args__ = (
        UniqueConstraint("stage_id", "court", name="uq_game_stage_court"),
        CheckConstraint("court BETWEEN 1 AND 4", name="ck_game_court_range"),
        CheckConstraint("team_a_id != team_b_id", name="ck_game_distinct_teams"),
        Index("idx_games_stage", "stage_id"),
    )

    @property
    def is_scored(self) -> bool:
        return self.winner_team_id is not None

    def loser_of(self, winner_team_id: int) -> Optional[int]:
        if winner_team_id == self.team_a_id:
            return self.team_b_id
        if winner_team_id == self.team_b_id:
            return self.team_a_id
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "stage_id": self.stage_id,
            "court": self.court,
            "team_a_id": self.team_a_id,
            "team_b_id": self.team_b_id,
            "winner_team_id": self.winner_team_id,
            "score_text": self.score_text,
            "points_awarded": self.points_awarded,
            "is_final": bool(self.is_final),
        }
