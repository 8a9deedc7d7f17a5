"""
NPU telemetry persistence.

Occupancy queries only consider ``npu_processes`` rows in the ``running``
state and are always scoped to one node, since pids are only unique per
host.
"""

from typing import Dict, Iterable, List, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from monitor_api.models.metrics import NPU_PROCESS_RUNNING, NPUMetric, NPUProcess


def _node_clause(column, node_id: Optional[str]):
    # Rows from collectors that omit node tagging share the NULL node
    if node_id is None:
        return column.is_(None)
    return column == node_id


class MetricsRepository:
    """Read access to ``npu_processes`` and ``npu_metrics``."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_npu_cards_by_pids(
        self,
        node_id: Optional[str],
        pids: Iterable[int],
    ) -> Dict[int, List[int]]:
        """
        Map each pid to the NPU cards it currently occupies.

        Returns:
            ``{pid: sorted unique npu_ids}``; pids without running rows are absent
        """
        pid_list = sorted(set(pids))
        if not pid_list:
            return {}

        result = await self.db.execute(
            select(NPUProcess.pid, NPUProcess.npu_id)
            .where(
                _node_clause(NPUProcess.node_id, node_id),
                NPUProcess.pid.in_(pid_list),
                NPUProcess.status == NPU_PROCESS_RUNNING,
                NPUProcess.npu_id.is_not(None),
            )
            .distinct()
        )

        cards: Dict[int, set] = {}
        for pid, npu_id in result.all():
            cards.setdefault(pid, set()).add(npu_id)
        return {pid: sorted(npu_ids) for pid, npu_ids in cards.items()}

    async def find_npu_processes_by_pids(
        self,
        node_id: Optional[str],
        pids: Iterable[int],
    ) -> List[NPUProcess]:
        """Running occupancy rows of the given pids."""
        pid_list = sorted(set(pids))
        if not pid_list:
            return []

        result = await self.db.execute(
            select(NPUProcess)
            .where(
                _node_clause(NPUProcess.node_id, node_id),
                NPUProcess.pid.in_(pid_list),
                NPUProcess.status == NPU_PROCESS_RUNNING,
            )
            .order_by(NPUProcess.npu_id, NPUProcess.pid)
        )
        return list(result.scalars().all())

    async def find_latest_npu_metrics(
        self,
        node_id: Optional[str],
        npu_ids: Iterable[int],
    ) -> List[NPUMetric]:
        """
        Latest sample of every chip on the given cards.

        A card may expose several chips, told apart by ``bus_id``; one row is
        returned per ``(npu_id, bus_id)``.
        """
        npu_list = sorted(set(npu_ids))
        if not npu_list:
            return []

        latest = (
            select(
                NPUMetric.npu_id.label("npu_id"),
                NPUMetric.bus_id.label("bus_id"),
                func.max(NPUMetric.timestamp).label("ts"),
            )
            .where(
                _node_clause(NPUMetric.node_id, node_id),
                NPUMetric.npu_id.in_(npu_list),
            )
            .group_by(NPUMetric.npu_id, NPUMetric.bus_id)
            .subquery()
        )

        result = await self.db.execute(
            select(NPUMetric)
            .join(
                latest,
                and_(
                    NPUMetric.npu_id == latest.c.npu_id,
                    NPUMetric.timestamp == latest.c.ts,
                    or_(
                        NPUMetric.bus_id == latest.c.bus_id,
                        and_(NPUMetric.bus_id.is_(None), latest.c.bus_id.is_(None)),
                    ),
                ),
            )
            .where(_node_clause(NPUMetric.node_id, node_id))
            .order_by(NPUMetric.npu_id, NPUMetric.bus_id, NPUMetric.id.desc())
        )

        # Equal timestamps can match twice; keep the newest row per chip
        seen = set()
        metrics: List[NPUMetric] = []
        for metric in result.scalars().all():
            key = (metric.npu_id, metric.bus_id)
            if key in seen:
                continue
            seen.add(key)
            metrics.append(metric)
        return metrics
