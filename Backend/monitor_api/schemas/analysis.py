"""
LLM analysis result schema.

The model is asked to return exactly this document; decoding it through
these classes is what turns a free-form completion into a typed result.
"""

from enum import Enum
from typing import List, Optional

from monitor_api.schemas.common import CamelModel


class TaskCategory(str, Enum):
    TRAINING = "training"
    INFERENCE = "inference"
    UNKNOWN = "unknown"


class UtilizationLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    IDLE = "idle"


class HBMUtilizationLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class IssueSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class TaskType(CamelModel):
    category: TaskCategory
    sub_category: Optional[str] = None
    inference_framework: Optional[str] = None


class ModelInfo(CamelModel):
    model_name: Optional[str] = None
    model_size: Optional[str] = None
    precision: Optional[str] = None
    parallel_strategy: Optional[str] = None


class ResourceAssessment(CamelModel):
    npu_utilization: UtilizationLevel
    hbm_utilization: HBMUtilizationLevel
    description: str


class Issue(CamelModel):
    severity: IssueSeverity
    category: str
    description: str
    suggestion: str


class JobAnalysisResult(CamelModel):
    """Structured diagnosis of one job group."""

    summary: str
    task_type: TaskType
    model_info: Optional[ModelInfo] = None
    resource_assessment: ResourceAssessment
    issues: List[Issue]
    suggestions: List[str]
