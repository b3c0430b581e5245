"""User model - the minimal slice of the account the chat engine needs."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from lucidchat.db.database import Base

MAX_ENERGY = 100


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(50), unique=True)
    nickname: Mapped[str] = mapped_column(String(50), default="Master")

    # Action points spent per message, regenerated by a background loop
    energy: Mapped[int] = mapped_column(Integer, default=MAX_ENERGY)

    # Secret mode unlocks every location/outfit regardless of tier
    is_secret_mode: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    def consume_energy(self, amount: int) -> bool:
        """Debit energy, never below zero. Returns False if it was insufficient."""
        current = self.energy or 0
        self.energy = max(0, current - amount)
        return current >= amount
