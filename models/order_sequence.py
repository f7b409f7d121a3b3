from datetime import date

from sqlalchemy import Date, Integer
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base


class OrderSequence(Base):
    """Last order-number sequence handed out for a calendar day (UTC)."""

    __tablename__ = "order_sequences"

    day: Mapped[date] = mapped_column(Date, primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, default=0)
