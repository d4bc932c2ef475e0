"""Side effects of a status transition.

`decide_side_effects` is pure: given the prior and new status it returns the
effects to apply. `apply_side_effects` executes them inside the caller's unit of
work, so a storage failure rolls them back together with the transaction row.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.payments.status import TransactionStatus, is_completion
from app.db.models.project import Project
from app.db.models.reward import Reward
from app.utils.exceptions import PersistenceException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AddProjectFunds:
    project_id: int
    amount: Decimal


@dataclass(frozen=True)
class AllocateReward:
    reward_id: int


SideEffect = Union[AddProjectFunds, AllocateReward]


@dataclass
class AppliedEffects:
    funded_project_id: Optional[int] = None
    allocated_reward_id: Optional[int] = None
    # Set when a reward could not be allocated; the transaction keeps no reward.
    released_reward_id: Optional[int] = None


def decide_side_effects(
    prior: Optional[TransactionStatus],
    new: TransactionStatus,
    *,
    project_id: int,
    amount: Decimal,
    reward_id: Optional[int],
) -> list[SideEffect]:
    if not is_completion(prior, new):
        return []

    effects: list[SideEffect] = [AddProjectFunds(project_id=project_id, amount=amount)]
    if reward_id:
        effects.append(AllocateReward(reward_id=reward_id))
    return effects


async def apply_side_effects(session: AsyncSession, effects: list[SideEffect]) -> AppliedEffects:
    applied = AppliedEffects()
    for effect in effects:
        if isinstance(effect, AddProjectFunds):
            result = await session.execute(
                update(Project)
                .where(Project.id == effect.project_id)
                .values(funded=Project.funded + effect.amount)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise PersistenceException(
                    "Project funding update affected no rows",
                    details={"project_id": effect.project_id},
                )
            applied.funded_project_id = effect.project_id
        elif isinstance(effect, AllocateReward):
            # Conditional increment: a sold-out or unpublished reward is left untouched.
            result = await session.execute(
                update(Reward)
                .where(
                    Reward.id == effect.reward_id,
                    Reward.published.is_(True),
                    or_(Reward.quantity.is_(None), Reward.distributed < Reward.quantity),
                )
                .values(distributed=Reward.distributed + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                applied.allocated_reward_id = effect.reward_id
            else:
                logger.warning(
                    "event=reconcile.reward_unavailable reward_id=%s",
                    effect.reward_id,
                )
                applied.released_reward_id = effect.reward_id
        else:
            raise TypeError(f"Unknown side effect: {effect!r}")
    return applied
