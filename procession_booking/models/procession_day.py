"""
Procession day model.
"""

import datetime
from typing import Optional

from sqlalchemy import Date, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ProcessionDay(Base):
    """A single procession date; seat availability is configured per day."""

    __tablename__ = "procession_days"

    date: Mapped[datetime.date] = mapped_column(Date, nullable=False, unique=True)
    event_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ProcessionDay(id={self.id}, date={self.date})>"
