"""Exactly-once batch claims over pending items.

The claim is a single conditional UPDATE: the rank-ordered subquery picks
candidates and the outer WHERE re-checks ``status = pending``, so rows another
claimer took in the meantime are skipped rather than stolen. Each claim stamps
a fresh token; only the holder of that token can later write a result.
"""

from __future__ import annotations

import logging
import math
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from news_digest.engine.models import ItemStatus, ItemView
from news_digest.engine.repository import TaskRepository, item_view_from_row
from news_digest.storage.common import to_db_datetime, utc_now
from news_digest.storage.tables import TaskItem

logger = logging.getLogger(__name__)

MAX_CLAIM_ROUNDS = 5


def batch_size_for_budget(
    *,
    call_budget: int,
    calls_per_item: int,
    safety_margin: float = 1.0,
) -> int:
    """Largest batch whose worst-case outbound calls fit the per-tick budget."""

    if calls_per_item <= 0:
        raise ValueError("calls_per_item must be > 0")
    if not 0 < safety_margin <= 1:
        raise ValueError("safety_margin must be in (0, 1]")
    return max(0, math.floor(call_budget * safety_margin / calls_per_item))


class BatchClaimer:
    """Moves up to ``limit`` pending items of a task to in-flight."""

    def __init__(self, repository: TaskRepository) -> None:
        self.repository = repository

    def claim(self, task_date: str, limit: int) -> list[ItemView]:
        """Claim pending items in rank order; returns the claimed items.

        Store errors propagate: a tick that cannot claim must not do anything
        else.
        """

        if limit <= 0:
            return []

        claim_token = str(uuid4())
        claimed_total = 0
        with Session(self.repository.engine) as session:
            for _ in range(MAX_CLAIM_ROUNDS):
                wanted = limit - claimed_total
                now = to_db_datetime(utc_now())
                candidates = (
                    select(TaskItem.id)
                    .where(
                        TaskItem.task_date == task_date,
                        TaskItem.status == ItemStatus.PENDING.value,
                    )
                    .order_by(col(TaskItem.rank).asc(), col(TaskItem.id).asc())
                    .limit(wanted)
                )
                result = session.exec(
                    sa_update(TaskItem)
                    .where(
                        col(TaskItem.id).in_(candidates),
                        col(TaskItem.status) == ItemStatus.PENDING.value,
                    )
                    .values(
                        status=ItemStatus.IN_FLIGHT.value,
                        claim_token=claim_token,
                        claimed_at=now,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False),
                )
                claimed_total += result.rowcount
                if claimed_total >= limit or result.rowcount == wanted:
                    break
                remaining = session.exec(
                    select(func.count())
                    .select_from(TaskItem)
                    .where(
                        TaskItem.task_date == task_date,
                        TaskItem.status == ItemStatus.PENDING.value,
                    ),
                ).one()
                if remaining == 0:
                    break

            rows = session.exec(
                select(TaskItem)
                .where(
                    TaskItem.claim_token == claim_token,
                    TaskItem.status == ItemStatus.IN_FLIGHT.value,
                )
                .order_by(col(TaskItem.rank).asc()),
            ).all()
            claimed = [item_view_from_row(row) for row in rows]
            session.commit()

        if claimed:
            logger.info(
                "Claimed %d items for %s (token=%s)",
                len(claimed),
                task_date,
                claim_token,
            )
        return claimed
