"""Energy service - per-message energy debit and periodic regeneration."""

import asyncio
import logging

from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lucidchat.config import settings
from lucidchat.core.exceptions import InsufficientEnergyError
from lucidchat.models.enums import ChatMode
from lucidchat.models.user import User

logger = logging.getLogger(__name__)


def energy_cost(mode: ChatMode) -> int:
    if mode == ChatMode.STORY:
        return settings.ENERGY_COST_STORY
    return settings.ENERGY_COST_SANDBOX


def charge(user: User, mode: ChatMode, hard_limit: bool = settings.ENERGY_HARD_LIMIT) -> int:
    """Debit the mode's cost and return the remaining energy.

    With ``hard_limit`` off an overdraft only logs a warning and the balance
    stops at zero.
    """
    cost = energy_cost(mode)
    if hard_limit and (user.energy or 0) < cost:
        raise InsufficientEnergyError("Not enough energy. Please wait for it to recharge.")
    if not user.consume_energy(cost):
        logger.warning("User %s is out of energy (cost %d), charging anyway", user.id, cost)
    return user.energy


async def regen_all(db: AsyncSession, amount: int, maximum: int) -> None:
    await db.execute(
        update(User)
        .where(User.energy < maximum)
        .values(energy=case((User.energy + amount > maximum, maximum), else_=User.energy + amount))
    )


async def run_regen_loop(
    session_factory: async_sessionmaker[AsyncSession],
    interval: int = settings.ENERGY_REGEN_INTERVAL,
    amount: int = settings.ENERGY_REGEN_AMOUNT,
    maximum: int = settings.ENERGY_MAX,
) -> None:
    """Regenerate energy for every user until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            async with session_factory() as db:
                await regen_all(db, amount, maximum)
                await db.commit()
        except Exception:
            logger.exception("Energy regeneration tick failed")
