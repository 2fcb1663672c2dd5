"""
Tournament ORM models.

A tournament owns its lifecycle status, its default per-court point schedule
and the optional per-stage point overrides.
"""
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, ForeignKey, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import relationship

from ladder.orm.base import BaseModel


class TournamentStatus(str, Enum):
    """Tournament lifecycle status state machine."""
    DRAFT = "draft"
    LIVE = "live"
    FINISHED = "finished"
    CANCELED = "canceled"


class RegistrationMode(str, Enum):
    """How entrants register: one player at a time, or as a ready team of 3."""
    SOLO = "SOLO"
    TEAM = "TEAM"


COURTS = (1, 2, 3, 4)


class Tournament(BaseModel):
    """
    One ladder tournament.

    Attributes:
        name: Display name
        date, start_time: Free-form schedule strings
        registration_mode: SOLO or TEAM
        status: Lifecycle status (see TournamentLifecycleStateMachine)
        points_c1..points_c4: Default points for a win on each court
    """
    __tablename__ = "tournaments"

    name = Column(String(255), nullable=False)
    date = Column(String(20), nullable=True)
    start_time = Column(String(20), nullable=True)
    registration_mode = Column(String(10), nullable=False, default=RegistrationMode.SOLO.value)
    status = Column(String(20), nullable=False, default=TournamentStatus.DRAFT.value)

    points_c1 = Column(Integer, nullable=False, default=5)
    points_c2 = Column(Integer, nullable=False, default=4)
    points_c3 = Column(Integer, nullable=False, default=3)
    points_c4 = Column(Integer, nullable=False, default=2)

    points_overrides = relationship(
        "PointsOverride",
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by="PointsOverride.stage_number",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'live', 'finished', 'canceled')",
            name="ck_tournament_status_valid"
        ),
        CheckConstraint(
            "registration_mode IN ('SOLO', 'TEAM')",
            name="ck_tournament_mode_valid"
        ),
        Index("idx_tournament_status", "status"),
    )

    @property
    def lifecycle(self) -> TournamentStatus:
        return TournamentStatus(self.status)

    @property
    def mode(self) -> RegistrationMode:
        return RegistrationMode(self.registration_mode)

    def default_points(self) -> dict:
        """Default points keyed by court number."""
        return {
            1: self.points_c1,
            2: self.points_c2,
            3: self.points_c3,
            4: self.points_c4,
        }

    def __repr__(self):
        return f"<Tournament(id={self.id}, name='{self.name}', status={self.status})>"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "date": self.date,
            "start_time": self.start_time,
            "registration_mode": self.registration_mode,
            "status": self.status,
            "points_c1": self.points_c1,
            "points_c2": self.points_c2,
            "points_c3": self.points_c3,
            "points_c4": self.points_c4,
        }


class PointsOverride(BaseModel):
    """
    Per-stage replacement for the tournament's default court points.

    Resolved at scoring time, never baked into games at stage creation.
    """
    __tablename__ = "tournament_points_overrides"

    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    stage_number = Column(Integer, nullable=False)
    points_c1 = Column(Integer, nullable=False)
    points_c2 = Column(Integer, nullable=False)
    points_c3 = Column(Integer, nullable=False)
    points_c4 = Column(Integer, nullable=False)

    tournament = relationship("Tournament", back_populates="points_overrides")

    __table_args__ = (
        UniqueConstraint("tournament_id", "stage_number", name="uq_override_tournament_stage"),
        CheckConstraint("stage_number >= 1", name="ck_override_stage_positive"),
    )

    def points(self) -> dict:
        return {
            1: self.points_c1,
            2: self.points_c2,
            3: self.points_c3,
            4: self.points_c4,
        }

    def to_dict(self):
        return {
            "stage_number": self.stage_number,
            "points_c1": self.points_c1,
            "points_c2": self.points_c2,
            "points_c3": self.points_c3,
            "points_c4": self.points_c4,
        }
