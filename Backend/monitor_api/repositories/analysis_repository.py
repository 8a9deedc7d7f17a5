"""
Cached LLM analyses, one row per job.
"""

from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from monitor_api.models.job import JobAnalysis

ANALYSIS_COMPLETED = "completed"


class JobAnalysisRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_job_id(self, job_id: str) -> Optional[JobAnalysis]:
        result = await self.db.execute(select(JobAnalysis).where(JobAnalysis.job_id == job_id))
        return result.scalar_one_or_none()

    async def find_by_job_ids(self, job_ids: Sequence[str]) -> List[JobAnalysis]:
        if not job_ids:
            return []
        result = await self.db.execute(
            select(JobAnalysis).where(JobAnalysis.job_id.in_(list(job_ids)))
        )
        return list(result.scalars().all())

    async def upsert(self, job_id: str, result: str, status: str = ANALYSIS_COMPLETED) -> JobAnalysis:
        """Insert the analysis or replace the existing row for ``job_id``."""
        analysis = await self.find_by_job_id(job_id)
        if analysis is None:
            analysis = JobAnalysis(job_id=job_id, status=status, result=result)
            self.db.add(analysis)
        else:
            analysis.status = status
            analysis.result = result
        await self.db.flush()
        return analysis
