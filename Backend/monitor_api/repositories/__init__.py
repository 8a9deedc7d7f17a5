# Persistence gateway
from monitor_api.repositories.analysis_repository import JobAnalysisRepository
from monitor_api.repositories.artifact_repository import CodeRepository, ParameterRepository
from monitor_api.repositories.job_repository import JobFilters, JobRepository, JobSort
from monitor_api.repositories.metrics_repository import MetricsRepository
from monitor_api.repositories.node_repository import NodeRepository
from monitor_api.repositories.user_repository import UserRepository

__all__ = [
    "JobRepository",
    "JobFilters",
    "JobSort",
    "NodeRepository",
    "ParameterRepository",
    "CodeRepository",
    "MetricsRepository",
    "JobAnalysisRepository",
    "UserRepository",
]
