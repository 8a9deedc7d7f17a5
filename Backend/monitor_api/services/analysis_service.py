"""
Job analysis orchestration.

Gathers a job's detail, parameters and code, renders the prompt, asks the
LLM for a diagnosis and stores it. Stored analyses are served back without
calling the LLM again.
"""

from typing import Dict, Optional, Sequence

import structlog
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from monitor_api.core.exceptions import DatabaseError, LLMDisabledError
from monitor_api.models.job import Job, JobAnalysis
from monitor_api.repositories import JobAnalysisRepository
from monitor_api.schemas.analysis import JobAnalysisResult, TaskCategory
from monitor_api.services.job_service import JobService
from monitor_api.services.llm_client import LLMClient
from monitor_api.services.prompt_builder import PromptBuilder

logger = structlog.get_logger(__name__)


def decode_stored(analysis: JobAnalysis) -> Optional[JobAnalysisResult]:
    """Decode a stored result; rows that no longer match the schema yield None."""
    if not analysis.result:
        return None
    try:
        return JobAnalysisResult.model_validate_json(analysis.result)
    except ValidationError as e:
        logger.warning("Stored analysis is unreadable", job_id=analysis.job_id, error=str(e))
        return None


class AnalysisService:
    """Service for LLM job analysis."""

    def __init__(
        self,
        db: AsyncSession,
        llm: LLMClient,
        prompt_builder: Optional[PromptBuilder] = None,
    ):
        self.db = db
        self.llm = llm
        self.jobs = JobService(db)
        self.analyses = JobAnalysisRepository(db)
        self.prompt_builder = prompt_builder or PromptBuilder()

    async def build_prompt(self, job_id: str) -> str:
        detail = await self.jobs.get_job_detail(job_id)
        parameters = await self.jobs.get_job_parameters(job_id)
        code = await self.jobs.get_job_code(job_id)
        return self.prompt_builder.build(detail, parameters, code)

    async def analyze_job(self, job_id: str) -> JobAnalysisResult:
        """
        Analyze a job with the LLM and store the result.

        The stored row and the job backfill are best effort: their failures
        are logged and the analysis is still returned.

        Raises:
            LLMDisabledError: LLM analysis is switched off; no request is made
            NotFoundError: Job does not exist
            LLMError: Transport, upstream or schema failure
        """
        config = await self.llm.config_store.snapshot()
        if not config.enabled:
            raise LLMDisabledError()

        prompt = await self.build_prompt(job_id)
        logger.info("Analyzing job", job_id=job_id, prompt_chars=len(prompt), model=config.model)

        result = await self.llm.analyze(prompt)

        await self._save(job_id, result)
        await self._backfill(job_id, result)

        logger.info(
            "Job analyzed",
            job_id=job_id,
            category=result.task_type.category.value,
            issues=len(result.issues),
        )
        return result

    async def _save(self, job_id: str, result: JobAnalysisResult) -> None:
        try:
            await self.analyses.upsert(job_id, result.model_dump_json(by_alias=True))
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to save analysis", job_id=job_id, error=str(e))

    async def _backfill(self, job_id: str, result: JobAnalysisResult) -> None:
        """Fill ``job_type`` and ``framework`` from the analysis where the job leaves them empty."""
        try:
            job: Job = await self.jobs.get_job(job_id)
        except DatabaseError as e:
            logger.warning("Failed to load job for backfill", job_id=job_id, error=e.message)
            return

        updates = {}
        category = result.task_type.category
        if not job.job_type and category != TaskCategory.UNKNOWN:
            updates["job_type"] = category.value

        framework = result.task_type.inference_framework
        if not job.framework and framework:
            updates["framework"] = framework

        if not updates:
            return
        try:
            await self.jobs.update_job_fields(job_id, updates)
        except DatabaseError as e:
            await self.db.rollback()
            logger.warning("Failed to backfill job fields", job_id=job_id, fields=sorted(updates), error=str(e))
            return
        logger.info("Job fields backfilled", job_id=job_id, **updates)

    async def get_analysis(self, job_id: str) -> Optional[JobAnalysisResult]:
        """Stored analysis of a job, or None."""
        try:
            analysis = await self.analyses.find_by_job_id(job_id)
        except SQLAlchemyError as e:
            raise DatabaseError(str(e)) from e
        if analysis is None:
            return None
        return decode_stored(analysis)

    async def get_batch_analyses(self, job_ids: Sequence[str]) -> Dict[str, JobAnalysisResult]:
        """Stored analyses keyed by job id; jobs without one are absent."""
        try:
            analyses = await self.analyses.find_by_job_ids(job_ids)
        except SQLAlchemyError as e:
            raise DatabaseError(str(e)) from e

        results = {}
        for analysis in analyses:
            decoded = decode_stored(analysis)
            if decoded is not None:
                results[analysis.job_id] = decoded
        return results
