"""
ladder/orm/base.py
Declarative base for the ladder tables.

Every row carries an integer id and created/updated timestamps. Registrations
are served first come, first served, so created_at doubles as the intake
order; ties within one flush fall back to id.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class BaseModel(Base):
    """Abstract base: id plus created/updated timestamps."""
    __abstract__ = True

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        index=True
    )

    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
        comment="Row creation time; arrival order for registrations"
    )

    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
        comment="Last write to the row"
    )

    @classmethod
    def arrival_order(cls):
        """ORDER BY clause for oldest-first listings."""
        return (cls.created_at, cls.id)

    def __repr__(self):
        return f"<{type(self).__name__}(id={self.id})>"
