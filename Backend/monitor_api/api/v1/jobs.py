"""
Job API Endpoints.

Flat and grouped job listings, job details with NPU occupancy, captured
launch artifacts and LLM analysis.

Multi-valued filters accept the plural name (``statuses``, ``jobTypes``,
``frameworks``, ``cardCounts``) or the short repeated name (``status``,
``type``, ``framework``, ``cardCount``); comma lists are split.
"""

from typing import Annotated, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from monitor_api.api.v1.common import http_error, merge_values, parse_card_counts, parse_page
from monitor_api.core.dependencies import CurrentUserDep, DbSessionDep
from monitor_api.core.exceptions import APIError, LLMError, NotFoundError
from monitor_api.core.responses import paginated, success
from monitor_api.repositories import JobFilters, JobSort
from monitor_api.schemas.job import (
    CodeResponse,
    JobDetailResponse,
    JobGroupResponse,
    JobResponse,
    JobStatsResponse,
    ParameterResponse,
)
from monitor_api.services.analysis_service import AnalysisService
from monitor_api.services.job_service import JobService
from monitor_api.services.llm_client import LLMClient, get_llm_client

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])

JOB_NOT_FOUND = "Job not found"


# =============================================================================
# Dependencies
# =============================================================================

async def get_job_service(db: DbSessionDep) -> JobService:
    """Get JobService instance bound to the request session."""
    return JobService(db)


async def get_analysis_service(
    db: DbSessionDep,
    llm: LLMClient = Depends(get_llm_client),
) -> AnalysisService:
    """Get AnalysisService instance bound to the request session."""
    return AnalysisService(db, llm)


JobServiceDep = Annotated[JobService, Depends(get_job_service)]
AnalysisServiceDep = Annotated[AnalysisService, Depends(get_analysis_service)]


def job_filters(
    node_id: Optional[str] = Query(None, alias="nodeId"),
    statuses: Optional[List[str]] = Query(None),
    status: Optional[List[str]] = Query(None),
    job_types: Optional[List[str]] = Query(None, alias="jobTypes"),
    job_type: Optional[List[str]] = Query(None, alias="type"),
    frameworks: Optional[List[str]] = Query(None),
    framework: Optional[List[str]] = Query(None),
) -> JobFilters:
    """Collect the shared job filters from the query string."""
    return JobFilters(
        node_id=node_id or None,
        statuses=merge_values(statuses, status),
        job_types=merge_values(job_types, job_type),
        frameworks=merge_values(frameworks, framework),
    )


def job_sort(
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
) -> JobSort:
    return JobSort(sort_by=sort_by, sort_order=sort_order)


JobFiltersDep = Annotated[JobFilters, Depends(job_filters)]
JobSortDep = Annotated[JobSort, Depends(job_sort)]


# =============================================================================
# Listings
# =============================================================================

@router.get("")
async def list_jobs(
    service: JobServiceDep,
    current_user: CurrentUserDep,
    filters: JobFiltersDep,
    sort: JobSortDep,
    page: Optional[str] = Query(None),
    page_size: Optional[str] = Query(None, alias="pageSize"),
):
    """
    List jobs with filtering, sorting and pagination.

    - **nodeId**: Only jobs of this node
    - **statuses** / **jobTypes** / **frameworks**: Any of the given values
    - **sortBy**: startTime (default), endTime or updatedAt
    - **pageSize**: At most 100
    """
    page_number, size = parse_page(page, page_size)
    try:
        jobs, total = await service.list_jobs(filters, sort, page_number, size)
    except APIError as e:
        raise http_error(e)
    return paginated([JobResponse.model_validate(job) for job in jobs], total, page_number, size)


@router.get("/grouped")
async def list_grouped_jobs(
    service: JobServiceDep,
    current_user: CurrentUserDep,
    filters: JobFiltersDep,
    sort: JobSortDep,
    card_counts: Optional[List[str]] = Query(None, alias="cardCounts"),
    card_count: Optional[List[str]] = Query(None, alias="cardCount"),
    page: Optional[str] = Query(None),
    page_size: Optional[str] = Query(None, alias="pageSize"),
):
    """
    List process-tree job groups.

    - **cardCounts**: Only groups holding one of these card counts;
      ``unknown`` selects groups without known occupancy
    """
    page_number, size = parse_page(page, page_size)
    targets = parse_card_counts(merge_values(card_counts, card_count))
    try:
        groups, total = await service.get_grouped_jobs(filters, sort, targets, page_number, size)
    except APIError as e:
        raise http_error(e)
    return paginated([JobGroupResponse.model_validate(group) for group in groups], total, page_number, size)


@router.get("/distinct-card-counts")
async def get_distinct_card_counts(service: JobServiceDep, current_user: CurrentUserDep):
    """Ascending card counts present among visible job groups."""
    try:
        counts = await service.get_distinct_card_counts()
    except APIError as e:
        raise http_error(e)
    return success(counts)


@router.get("/stats")
async def get_job_stats(service: JobServiceDep, current_user: CurrentUserDep):
    try:
        stats = await service.get_job_stats()
    except APIError as e:
        raise http_error(e)
    return success(JobStatsResponse(**stats))


@router.get("/analyses")
async def get_batch_analyses(
    service: AnalysisServiceDep,
    current_user: CurrentUserDep,
    job_ids: Optional[List[str]] = Query(None, alias="jobIds"),
):
    """Stored analyses keyed by job id; jobs never analyzed are absent."""
    ids = merge_values(job_ids)
    if not ids:
        return success({})
    try:
        analyses = await service.get_batch_analyses(ids)
    except APIError as e:
        raise HTTPException(status_code=e.status_code, detail=f"failed to fetch analyses: {e.message}")
    return success(analyses)


# =============================================================================
# Single job
# =============================================================================

@router.get("/{job_id}")
async def get_job(job_id: str, service: JobServiceDep, current_user: CurrentUserDep):
    try:
        job = await service.get_job(job_id)
    except APIError as e:
        raise http_error(e, not_found=JOB_NOT_FOUND)
    return success(JobResponse.model_validate(job))


@router.get("/{job_id}/detail")
async def get_job_detail(job_id: str, service: JobServiceDep, current_user: CurrentUserDep):
    """Job with the NPU cards it holds (latest samples) and the related processes."""
    try:
        detail = await service.get_job_detail(job_id)
    except APIError as e:
        raise http_error(e, not_found=JOB_NOT_FOUND)
    return success(JobDetailResponse.model_validate(detail))


@router.get("/{job_id}/parameters")
async def get_job_parameters(job_id: str, service: JobServiceDep, current_user: CurrentUserDep):
    try:
        parameters = await service.get_job_parameters(job_id)
    except APIError as e:
        raise http_error(e)
    return success([ParameterResponse.model_validate(row) for row in parameters])


@router.get("/{job_id}/code")
async def get_job_code(job_id: str, service: JobServiceDep, current_user: CurrentUserDep):
    try:
        code = await service.get_job_code(job_id)
    except APIError as e:
        raise http_error(e)
    return success([CodeResponse.model_validate(row) for row in code])


# =============================================================================
# Analysis
# =============================================================================

@router.post("/{job_id}/analyze")
async def analyze_job(job_id: str, service: AnalysisServiceDep, current_user: CurrentUserDep):
    """
    Analyze a job with the configured LLM.

    The result is stored and replaces any earlier analysis of the job.
    """
    try:
        result = await service.analyze_job(job_id)
    except NotFoundError as e:
        raise http_error(e, not_found=JOB_NOT_FOUND)
    except LLMError as e:
        logger.warning("Job analysis failed", job_id=job_id, error=e.message)
        raise HTTPException(status_code=500, detail=f"AI analysis failed: {e.message}")
    except APIError as e:
        raise http_error(e)
    return success(result)


@router.get("/{job_id}/analysis")
async def get_job_analysis(job_id: str, service: AnalysisServiceDep, current_user: CurrentUserDep):
    """Stored analysis of a job; no ``data`` when the job was never analyzed."""
    try:
        result = await service.get_analysis(job_id)
    except APIError as e:
        raise http_error(e)
    return success(result)
