"""
Job schemas: rows, groups, details and aggregates.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from monitor_api.schemas.common import CamelModel


# =============================================================================
# Row Schemas
# =============================================================================

class JobResponse(CamelModel):
    """An observed process."""

    job_id: str
    node_id: Optional[str] = None
    host_id: Optional[str] = None
    job_name: Optional[str] = None
    job_type: Optional[str] = None
    pid: Optional[int] = None
    ppid: Optional[int] = None
    pgid: Optional[int] = None
    process_name: Optional[str] = None
    command_line: Optional[str] = None
    framework: Optional[str] = None
    model_format: Optional[str] = None
    status: Optional[str] = None
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    cwd: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ParameterResponse(CamelModel):
    id: int
    job_id: Optional[str] = None
    parameter_raw: Optional[str] = None
    parameter_data: Optional[str] = None
    parameter_source: Optional[str] = None
    config_file_path: Optional[str] = None
    config_file_content: Optional[str] = None
    env_vars: Optional[str] = None
    timestamp: Optional[datetime] = None


class CodeResponse(CamelModel):
    id: int
    job_id: Optional[str] = None
    script_path: Optional[str] = None
    script_content: Optional[str] = None
    imported_libraries: Optional[str] = None
    config_files: Optional[str] = None
    sh_script_path: Optional[str] = None
    sh_script_content: Optional[str] = None
    timestamp: Optional[datetime] = None


class NPUMetricResponse(CamelModel):
    """One chip sample."""

    id: Optional[int] = None
    node_id: Optional[str] = None
    npu_id: Optional[int] = None
    name: Optional[str] = None
    health: Optional[str] = None
    power_w: Optional[float] = None
    temp_c: Optional[float] = None
    aicore_usage_percent: Optional[float] = None
    memory_usage_mb: Optional[float] = None
    memory_total_mb: Optional[float] = None
    hbm_usage_mb: Optional[float] = None
    hbm_total_mb: Optional[float] = None
    bus_id: Optional[str] = None
    timestamp: Optional[datetime] = None


# =============================================================================
# Derived Schemas
# =============================================================================

class JobGroupResponse(CamelModel):
    """A process tree; ``card_count`` is ``None`` when occupancy is unknown."""

    main_job: JobResponse
    child_jobs: List[JobResponse] = Field(default_factory=list)
    card_count: Optional[int] = None


class NPUCardInfo(CamelModel):
    """An NPU card held by a job, with the card's latest chip samples."""

    npu_id: int
    memory_usage_mb: float = 0.0
    metrics: List[NPUMetricResponse] = Field(default_factory=list)


class JobDetailResponse(CamelModel):
    job: JobResponse
    npu_cards: List[NPUCardInfo] = Field(default_factory=list)
    related_jobs: List[JobResponse] = Field(default_factory=list)


class JobStatsResponse(CamelModel):
    """Job group counts by main-job status."""

    total: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    stopped: int = 0
    lost: int = 0
