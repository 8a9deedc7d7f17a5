# Database models
from monitor_api.models.job import (
    Code,
    Job,
    JobAnalysis,
    JobStatus,
    JobStatusHistory,
    Parameter,
)
from monitor_api.models.metrics import NPU_PROCESS_RUNNING, NPUMetric, NPUProcess, ProcessMetric
from monitor_api.models.node import Node, NodeStatus
from monitor_api.models.user import User

__all__ = [
    # Jobs
    "Job",
    "JobStatus",
    "Parameter",
    "Code",
    "JobStatusHistory",
    "JobAnalysis",
    # Telemetry
    "NPUMetric",
    "NPUProcess",
    "ProcessMetric",
    "NPU_PROCESS_RUNNING",
    # Inventory
    "Node",
    "NodeStatus",
    # Auth
    "User",
]
