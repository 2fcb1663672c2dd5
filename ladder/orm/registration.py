"""
Registration intake models.

A registration is one application to a tournament, either a single player
(SOLO) or a ready-made team of three (TEAM). Payments are tracked per slot:
SOLO uses slot 1 only, TEAM uses slots 1-3 (one per player).
"""
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, Index
)

from ladder.orm.base import BaseModel


class RegistrationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    CANCELED = "canceled"


class Registration(BaseModel):
    __tablename__ = "registrations"

    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    mode = Column(String(10), nullable=False)
    status = Column(String(20), nullable=False, default=RegistrationStatus.PENDING.value)

    # SOLO
    solo_first_name = Column(String(120), nullable=True)
    solo_last_name = Column(String(120), nullable=True)
    solo_player = Column(String(255), nullable=True)

    # TEAM
    team_player1 = Column(String(255), nullable=True)
    team_player2 = Column(String(255), nullable=True)
    team_player3 = Column(String(255), nullable=True)

    phone = Column(String(50), nullable=False)
    strength = Column(Integer, nullable=False, default=3)
    confirmation_code = Column(String(16), nullable=False, unique=True, index=True)

    __table_args__ = (
        CheckConstraint("strength BETWEEN 1 AND 5", name="ck_registration_strength_range"),
        Index("idx_registration_tournament_status", "tournament_id", "status"),
    )

    def team_names(self) -> list:
        return [n for n in (self.team_player1, self.team_player2, self.team_player3) if n]

    def to_dict(self):
        return {
            "id": self.id,
            "tournament_id": self.tournament_id,
            "mode": self.mode,
            "status": self.status,
            "solo_first_name": self.solo_first_name,
            "solo_last_name": self.solo_last_name,
            "solo_player": self.solo_player,
            "team_player1": self.team_player1,
            "team_player2": self.team_player2,
            "team_player3": self.team_player3,
            "phone": self.phone,
            "strength": self.strength,
            "confirmation_code": self.confirmation_code,
        }


class RegistrationPayment(BaseModel):
    __tablename__ = "registration_payments"

    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    registration_id = Column(
        Integer,
        ForeignKey("registrations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    slot = Column(Integer, nullable=False)
    paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("registration_id", "slot", name="uq_payment_registration_slot"),
        CheckConstraint("slot BETWEEN 1 AND 3", name="ck_payment_slot_range"),
    )

    def to_dict(self):
        return {
            "registration_id": self.registration_id,
            "slot": self.slot,
            "paid": bool(self.paid),
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
        }
