"""
Job Service Layer.

Business logic for job queries:
- Flat, filtered and paginated job listing
- Process-tree grouping with NPU card counts
- Job detail with held NPU cards and their latest samples
- Group-level statistics
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from monitor_api.core.exceptions import DatabaseError, NotFoundError
from monitor_api.models.job import Code, Job, JobStatus, Parameter
from monitor_api.models.metrics import NPUMetric
from monitor_api.repositories import (
    CodeRepository,
    JobFilters,
    JobRepository,
    JobSort,
    MetricsRepository,
    ParameterRepository,
)
from monitor_api.services.job_grouping import (
    JobGroup,
    annotate_card_counts,
    build_job_groups,
    distinct_card_counts,
    drop_launcher_groups,
    filter_by_card_counts,
    normalize_page,
    paginate,
)

logger = structlog.get_logger(__name__)


@dataclass
class NPUCard:
    """A card held by a job: peak per-process memory plus its chips' latest samples."""

    npu_id: int
    memory_usage_mb: float = 0.0
    metrics: List[NPUMetric] = field(default_factory=list)


@dataclass
class JobDetail:
    job: Job
    npu_cards: List[NPUCard] = field(default_factory=list)
    related_jobs: List[Job] = field(default_factory=list)


class JobService:
    """Service for job listing, grouping and detail views."""

    def __init__(self, db: AsyncSession):
        """
        Initialize job service.

        Args:
            db: Database session shared by the repositories
        """
        self.db = db
        self.jobs = JobRepository(db)
        self.parameters = ParameterRepository(db)
        self.code = CodeRepository(db)
        self.metrics = MetricsRepository(db)

    # =========================================================================
    # Plain job queries
    # =========================================================================

    async def get_job(self, job_id: str) -> Job:
        try:
            job = await self.jobs.find_by_id(job_id)
        except SQLAlchemyError as e:
            raise DatabaseError(str(e)) from e
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    async def list_jobs(
        self,
        filters: JobFilters,
        sort: JobSort,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Job], int]:
        """
        List jobs with filtering and pagination.

        Returns:
            Tuple of (jobs, total count)
        """
        page, page_size = normalize_page(page, page_size)
        try:
            total = await self.jobs.count(filters)
            jobs = await self.jobs.find(filters, sort, limit=page_size, offset=(page - 1) * page_size)
        except SQLAlchemyError as e:
            raise DatabaseError(str(e)) from e
        return jobs, total

    async def get_job_parameters(self, job_id: str) -> List[Parameter]:
        try:
            return await self.parameters.find_by_job_id(job_id)
        except SQLAlchemyError as e:
            raise DatabaseError(str(e)) from e

    async def get_job_code(self, job_id: str) -> List[Code]:
        try:
            return await self.code.find_by_job_id(job_id)
        except SQLAlchemyError as e:
            raise DatabaseError(str(e)) from e

    async def update_job_fields(self, job_id: str, fields: Dict[str, Any]) -> None:
        try:
            await self.jobs.update_fields(job_id, fields)
        except SQLAlchemyError as e:
            raise DatabaseError(str(e)) from e

    # =========================================================================
    # Grouping
    # =========================================================================

    async def _card_lookup(self, node_id: Optional[str], pids: List[int]) -> Dict[int, List[int]]:
        try:
            return await self.metrics.find_npu_cards_by_pids(node_id, pids)
        except SQLAlchemyError as e:
            raise DatabaseError(f"find npu cards: {e}") from e

    async def _load_groups(self, filters: JobFilters, sort: Optional[JobSort] = None) -> List[JobGroup]:
        """Fetch matching jobs, group them, annotate card counts and drop launcher-only groups."""
        try:
            jobs = await self.jobs.find_filtered(filters, sort)
        except SQLAlchemyError as e:
            raise DatabaseError(f"find filtered: {e}") from e

        groups = build_job_groups(jobs)
        await annotate_card_counts(groups, self._card_lookup)
        groups = drop_launcher_groups(groups)

        logger.debug("Job groups built", jobs=len(jobs), groups=len(groups), node_id=filters.node_id)
        return groups

    async def get_grouped_jobs(
        self,
        filters: JobFilters,
        sort: JobSort,
        card_counts: Sequence[int] = (),
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[JobGroup], int]:
        """
        List job groups with filtering and in-memory pagination.

        Returns:
            Tuple of (groups on the page, total matching groups)
        """
        groups = await self._load_groups(filters, sort)
        groups = filter_by_card_counts(groups, card_counts)
        return paginate(groups, page, page_size)

    async def get_distinct_card_counts(self) -> List[int]:
        return distinct_card_counts(await self._load_groups(JobFilters()))

    async def get_job_stats(self) -> Dict[str, int]:
        """Count groups by the status of their main job."""
        groups = await self._load_groups(JobFilters())
        by_status = {status.value: 0 for status in JobStatus}
        for group in groups:
            if group.main_job.status in by_status:
                by_status[group.main_job.status] += 1
        return {"total": len(groups), **by_status}

    # =========================================================================
    # Detail
    # =========================================================================

    async def _group_of(self, job: Job) -> JobGroup:
        """The process-tree group ``job`` belongs to, built from its node's jobs."""
        try:
            node_jobs = await self.jobs.find_filtered(JobFilters(node_id=job.node_id))
        except SQLAlchemyError as e:
            raise DatabaseError(f"find filtered: {e}") from e

        node_jobs = [candidate for candidate in node_jobs if candidate.node_id == job.node_id]
        for group in build_job_groups(node_jobs):
            if any(member.job_id == job.job_id for member in group.members):
                return group
        return JobGroup(main_job=job)

    async def get_job_detail(self, job_id: str) -> JobDetail:
        """
        Get a job with the NPU cards it holds and the group members that hold cards.

        When the job's own pid holds no card (a launcher whose workers do the
        NPU work), the cards of the rest of its group are reported instead.
        """
        job = await self.get_job(job_id)
        detail = JobDetail(job=job)
        if job.pid is None:
            return detail

        group = await self._group_of(job)
        other_pids = [pid for pid in group.pids if pid != job.pid]

        try:
            processes = await self.metrics.find_npu_processes_by_pids(job.node_id, [job.pid])
            if not processes and other_pids:
                processes = await self.metrics.find_npu_processes_by_pids(job.node_id, other_pids)

            # One entry per card, keeping the largest per-process memory
            card_memory: Dict[int, float] = {}
            for process in processes:
                if process.npu_id is None:
                    continue
                memory = process.memory_usage_mb or 0.0
                card_memory[process.npu_id] = max(card_memory.get(process.npu_id, memory), memory)

            npu_ids = sorted(card_memory)
            samples = await self.metrics.find_latest_npu_metrics(job.node_id, npu_ids)
            occupancy = await self.metrics.find_npu_cards_by_pids(job.node_id, other_pids)
        except SQLAlchemyError as e:
            raise DatabaseError(f"find npu cards: {e}") from e

        samples_by_card: Dict[int, List[NPUMetric]] = {}
        for sample in samples:
            samples_by_card.setdefault(sample.npu_id, []).append(sample)

        detail.npu_cards = [
            NPUCard(npu_id=npu_id, memory_usage_mb=card_memory[npu_id], metrics=samples_by_card.get(npu_id, []))
            for npu_id in npu_ids
        ]
        detail.related_jobs = [
            member for member in group.members
            if member.job_id != job.job_id and member.pid in occupancy
        ]
        return detail
