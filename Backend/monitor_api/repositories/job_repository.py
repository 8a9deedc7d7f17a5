"""
Job persistence: filtered listing, counting and partial updates.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from monitor_api.models.job import Job

# Accepted sort keys, snake_case and the camelCase spelling the UI sends
SORT_COLUMNS = {
    "start_time": Job.start_time,
    "startTime": Job.start_time,
    "end_time": Job.end_time,
    "endTime": Job.end_time,
    "updated_at": Job.updated_at,
    "updatedAt": Job.updated_at,
}
DEFAULT_SORT_COLUMN = "start_time"
DEFAULT_SORT_ORDER = "desc"


@dataclass
class JobFilters:
    """Job query filters; an empty list places no restriction on its dimension."""

    node_id: Optional[str] = None
    statuses: List[str] = field(default_factory=list)
    job_types: List[str] = field(default_factory=list)
    frameworks: List[str] = field(default_factory=list)


@dataclass
class JobSort:
    """Sort key and direction; unknown values fall back to ``start_time desc``."""

    sort_by: Optional[str] = None
    sort_order: Optional[str] = None

    @property
    def column(self):
        return SORT_COLUMNS.get(self.sort_by or "", SORT_COLUMNS[DEFAULT_SORT_COLUMN])

    @property
    def descending(self) -> bool:
        order = (self.sort_order or "").lower()
        if order not in ("asc", "desc"):
            order = DEFAULT_SORT_ORDER
        return order == "desc"


class JobRepository:
    """Read access to the ``jobs`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _apply_filters(self, query: Select, filters: JobFilters) -> Select:
        if filters.node_id:
            query = query.where(Job.node_id == filters.node_id)
        if filters.statuses:
            query = query.where(Job.status.in_(filters.statuses))
        if filters.job_types:
            query = query.where(Job.job_type.in_(filters.job_types))
        if filters.frameworks:
            query = query.where(Job.framework.in_(filters.frameworks))
        return query

    def _apply_sort(self, query: Select, sort: JobSort) -> Select:
        column = sort.column
        primary = column.desc() if sort.descending else column.asc()
        # job_id breaks ties so pages never overlap
        return query.order_by(primary, Job.job_id.desc())

    async def find_by_id(self, job_id: str) -> Optional[Job]:
        result = await self.db.execute(select(Job).where(Job.job_id == job_id))
        return result.scalar_one_or_none()

    async def count(self, filters: JobFilters) -> int:
        query = self._apply_filters(select(func.count()).select_from(Job), filters)
        return int(await self.db.scalar(query) or 0)

    async def find(
        self,
        filters: JobFilters,
        sort: JobSort,
        limit: int,
        offset: int,
    ) -> List[Job]:
        query = self._apply_sort(self._apply_filters(select(Job), filters), sort)
        result = await self.db.execute(query.limit(limit).offset(offset))
        return list(result.scalars().all())

    async def find_filtered(self, filters: JobFilters, sort: Optional[JobSort] = None) -> List[Job]:
        """Every matching job, ordered, without a limit."""
        query = self._apply_sort(self._apply_filters(select(Job), filters), sort or JobSort())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update_fields(self, job_id: str, fields: Dict[str, Any]) -> None:
        """Set the given columns on one job."""
        if not fields:
            return
        await self.db.execute(update(Job).where(Job.job_id == job_id).values(**fields))
        await self.db.flush()
