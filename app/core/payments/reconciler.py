from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.config import settings
from app.core.payments.effects import apply_side_effects, decide_side_effects
from app.core.payments.status import TransactionStatus, can_transition
from app.db.models.project import Project
from app.db.models.reward import Reward
from app.db.models.transaction import Transaction
from app.schemas.notification import TransactionCandidate
from app.utils.exceptions import PersistenceException
from app.utils.metrics import RECONCILE_EVENTS_TOTAL

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, Enum):
    COMPLETED = "completed"
    # Persisted with a non-completed status; nothing further to do.
    RECORDED = "recorded"
    # Already completed: redelivery of a processed notification.
    DUPLICATE = "duplicate"
    # Prior terminal status does not allow the requested transition.
    REJECTED = "rejected"


@dataclass
class ReconcileResult:
    outcome: ReconcileOutcome
    prior_status: Optional[TransactionStatus] = None
    # Only set on the transition into completed.
    transaction: Optional[Transaction] = None
    project: Optional[Project] = None
    reward: Optional[Reward] = None
    reward_released: bool = False


class TransactionReconciler:
    """Idempotently merges a candidate into the transactions table.

    The read-modify-write runs as one unit of work: row lock (where the backend
    supports it), upsert, gated side effects, commit. The unique txn_id and the
    row version are the backstop when two deliveries still interleave; the loser
    rolls back and re-runs the unit, then sees the winner's state.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

        # IMPORTANT: retry must repeat the *entire* unit-of-work (reads/checks/writes + commit),
        # not only `session.commit()`, because a rollback discards all changes.
        self._retry_attempts = settings.COMMIT_RETRY_ATTEMPTS
        self._retry_base_delay_s = settings.COMMIT_RETRY_BASE_DELAY_MS / 1000.0
        self._retry_max_delay_s = settings.COMMIT_RETRY_MAX_DELAY_MS / 1000.0

    def _is_postgres(self) -> bool:
        bind = getattr(self.session, "bind", None)
        dialect = getattr(getattr(bind, "dialect", None), "name", None)
        return dialect in {"postgresql", "postgres"}

    def _is_retryable_db_error(self, exc: BaseException) -> bool:
        if not isinstance(exc, DBAPIError) or not self._is_postgres():
            return False
        orig = getattr(exc, "orig", None)
        # asyncpg uses `sqlstate`, psycopg2 uses `pgcode`.
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        # 40P01: deadlock_detected, 40001: serialization_failure
        return sqlstate in {"40P01", "40001"}

    def _backoff_delay(self, attempt: int) -> float:
        base = max(0.0, self._retry_base_delay_s)
        cap = max(base, self._retry_max_delay_s)
        delay = min(cap, base * (2 ** (attempt - 1)))
        # Small jitter (0..25%) to avoid thundering herd.
        return delay * (1.0 + 0.25 * random.random())

    async def reconcile(self, candidate: TransactionCandidate) -> ReconcileResult:
        attempt = 0
        while True:
            try:
                result = await self._reconcile_once(candidate)
                await self.session.commit()
            except (IntegrityError, StaleDataError) as exc:
                await self.session.rollback()
                attempt += 1
                if attempt >= self._retry_attempts:
                    RECONCILE_EVENTS_TOTAL.labels(result="persistence_error").inc()
                    raise PersistenceException(
                        "Transaction update kept conflicting",
                        details={"txn_id": candidate.txn_id},
                    ) from exc
                logger.info(
                    "event=reconcile.lost_race txn_id=%s attempt=%s/%s error_type=%s",
                    candidate.txn_id,
                    attempt,
                    self._retry_attempts,
                    type(exc).__name__,
                )
                continue
            except PersistenceException:
                await self.session.rollback()
                RECONCILE_EVENTS_TOTAL.labels(result="persistence_error").inc()
                raise
            except SQLAlchemyError as exc:
                await self.session.rollback()
                attempt += 1
                if self._is_retryable_db_error(exc) and attempt < self._retry_attempts:
                    delay = self._backoff_delay(attempt)
                    logger.warning(
                        "event=reconcile.uow_retry txn_id=%s attempt=%s/%s delay_s=%.3f",
                        candidate.txn_id,
                        attempt,
                        self._retry_attempts,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                RECONCILE_EVENTS_TOTAL.labels(result="persistence_error").inc()
                logger.error(
                    "event=reconcile.persistence_error txn_id=%s error=%s",
                    candidate.txn_id,
                    str(exc),
                )
                raise PersistenceException(
                    "Failed to store transaction",
                    details={"txn_id": candidate.txn_id},
                ) from exc

            RECONCILE_EVENTS_TOTAL.labels(result=result.outcome.value).inc()
            return result

    async def _load_existing(self, txn_id: str) -> Transaction | None:
        # FOR UPDATE is a no-op on SQLite; the unique txn_id and row version cover it there.
        return (
            await self.session.execute(
                select(Transaction)
                .where(Transaction.txn_id == txn_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()

    async def _reconcile_once(self, candidate: TransactionCandidate) -> ReconcileResult:
        existing = await self._load_existing(candidate.txn_id)
        prior = TransactionStatus(existing.txn_status) if existing is not None else None
        new = candidate.txn_status

        if prior is TransactionStatus.COMPLETED:
            logger.info("event=reconcile.duplicate txn_id=%s", candidate.txn_id)
            return ReconcileResult(outcome=ReconcileOutcome.DUPLICATE, prior_status=prior)

        if not can_transition(prior, new):
            logger.warning(
                "event=reconcile.transition_rejected txn_id=%s prior=%s new=%s",
                candidate.txn_id,
                prior.value if prior else None,
                new.value,
            )
            return ReconcileResult(outcome=ReconcileOutcome.REJECTED, prior_status=prior)

        fields = {
            "investor_id": candidate.investor_id,
            "project_id": candidate.project_id,
            "reward_id": candidate.reward_id,
            "receiver_id": candidate.receiver_id,
            "txn_amount": candidate.txn_amount,
            "txn_currency": candidate.txn_currency,
            "txn_status": new.value,
            "txn_date": candidate.txn_date,
            "service_provider": candidate.service_provider,
            "service_alias": candidate.service_alias,
            "extra_data": candidate.extra_data,
        }

        if existing is None:
            txn = Transaction(txn_id=candidate.txn_id, **fields)
            self.session.add(txn)
        else:
            txn = existing
            for key, value in fields.items():
                setattr(txn, key, value)
        # Raises IntegrityError (concurrent insert) or StaleDataError (concurrent update).
        await self.session.flush()

        effects = decide_side_effects(
            prior,
            new,
            project_id=candidate.project_id,
            amount=candidate.txn_amount,
            reward_id=candidate.reward_id,
        )
        if not effects:
            logger.info(
                "event=reconcile.recorded txn_id=%s prior=%s status=%s",
                candidate.txn_id,
                prior.value if prior else None,
                new.value,
            )
            return ReconcileResult(outcome=ReconcileOutcome.RECORDED, prior_status=prior)

        applied = await apply_side_effects(self.session, effects)
        if applied.released_reward_id is not None:
            txn.reward_id = None
            await self.session.flush()

        await self.session.refresh(txn)
        project = await self.session.get(Project, candidate.project_id, populate_existing=True)
        reward = None
        if applied.allocated_reward_id is not None:
            reward = await self.session.get(Reward, applied.allocated_reward_id, populate_existing=True)

        logger.info(
            "event=reconcile.completed txn_id=%s project_id=%s amount=%s reward_id=%s",
            candidate.txn_id,
            candidate.project_id,
            candidate.txn_amount,
            txn.reward_id,
        )
        return ReconcileResult(
            outcome=ReconcileOutcome.COMPLETED,
            prior_status=prior,
            transaction=txn,
            project=project,
            reward=reward,
            reward_released=applied.released_reward_id is not None,
        )
