"""
ladder/orm/team.py
Players, teams, team membership and live ladder position.
"""
from sqlalchemy import (
    Column, Integer, String, ForeignKey, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship

from ladder.orm.base import BaseModel


class Player(BaseModel):
    """
    A player accepted into a tournament.

    Created on registration acceptance, deleted on registration rollback.
    seed_team_index/seed_slot carry an optional manual placement used by
    team formation in SOLO tournaments.
    """
    __tablename__ = "players"

    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    registration_id = Column(
        Integer,
        ForeignKey("registrations.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    full_name = Column(String(255), nullable=False)
    strength = Column(Integer, nullable=False, default=3)
    seed_team_index = Column(Integer, nullable=True)
    seed_slot = Column(Integer, nullable=True)

    __table_args__ = (
        # NULLs are distinct, so only real seeds collide
        UniqueConstraint("tournament_id", "seed_team_index", name="uq_player_seed_team"),
        CheckConstraint("strength BETWEEN 1 AND 5", name="ck_player_strength_range"),
        CheckConstraint(
            "seed_team_index IS NULL OR seed_team_index BETWEEN 1 AND 8",
            name="ck_player_seed_team_range"
        ),
        CheckConstraint(
            "seed_slot IS NULL OR seed_slot BETWEEN 1 AND 3",
            name="ck_player_seed_slot_range"
        ),
    )

    def __repr__(self):
        return f"<Player(id={self.id}, name='{self.full_name}', strength={self.strength})>"

    def to_dict(self):
        return {
            "id": self.id,
            "full_name": self.full_name,
            "strength": self.strength,
            "seed_team_index": self.seed_team_index,
            "seed_slot": self.seed_slot,
        }


class Team(BaseModel):
    """
    Team of three players.

    team_index is the explicit 1..8 ordinal assigned at creation time; it is
    the target of player seeds and the stable display order.
    """
    __tablename__ = "teams"

    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    registration_id = Column(
        Integer,
        ForeignKey("registrations.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    team_index = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False, default="TBD")
    points = Column(Integer, nullable=False, default=0)

    members = relationship(
        "TeamMember",
        back_populates="team",
        cascade="all, delete-orphan",
        order_by="TeamMember.slot",
    )

    __table_args__ = (
        UniqueConstraint("tournament_id", "team_index", name="uq_team_tournament_index"),
        CheckConstraint("points >= 0", name="ck_team_points_non_negative"),
    )

    def __repr__(self):
        return f"<Team(id={self.id}, index={self.team_index}, name='{self.name}', points={self.points})>"

    def to_dict(self):
        return {
            "id": self.id,
            "team_index": self.team_index,
            "name": self.name,
            "points": self.points,
        }


class TeamMember(BaseModel):
    __tablename__ = "team_members"

    team_id = Column(
        Integer,
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    player_id = Column(
        Integer,
        ForeignKey("players.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )
    slot = Column(Integer, nullable=False)

    team = relationship("Team", back_populates="members")
    player = relationship("Player", lazy="joined")

    __table_args__ = (
        UniqueConstraint("team_id", "slot", name="uq_member_team_slot"),
        CheckConstraint("slot BETWEEN 1 AND 3", name="ck_member_slot_range"),
    )


class TeamState(BaseModel):
    """Live ladder position of a team: the court it plays on next."""
    __tablename__ = "team_state"

    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    team_id = Column(
        Integer,
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False
    )
    current_court = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("tournament_id", "team_id", name="uq_team_state_team"),
        CheckConstraint("current_court BETWEEN 1 AND 4", name="ck_team_state_court_range"),
    )
