"""
Telemetry models: NPU samples, NPU process occupancy and process metrics.
"""

from sqlalchemy import BigInteger, Column, DateTime, Float, Index, Integer, String
from sqlalchemy.sql import func

from monitor_api.core.database import Base
from monitor_api.models.job import BigIntPK

NPU_PROCESS_RUNNING = "running"


class NPUMetric(Base):
    """One sample of one NPU chip."""

    __tablename__ = "npu_metrics"
    __table_args__ = (
        Index("ix_npu_metrics_node_ts", "node_id", "timestamp"),
        Index("ix_npu_metrics_node_npu", "node_id", "npu_id"),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    node_id = Column(String(128))
    npu_id = Column(Integer)
    name = Column(String(128))
    health = Column(String(32))
    power_w = Column(Float)
    temp_c = Column(Float)
    aicore_usage_percent = Column(Float)
    memory_usage_mb = Column(Float)
    memory_total_mb = Column(Float)
    hbm_usage_mb = Column(Float)
    hbm_total_mb = Column(Float)
    bus_id = Column(String(64))
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class NPUProcess(Base):
    """Process to NPU card occupancy; only ``running`` rows describe current use."""

    __tablename__ = "npu_processes"
    __table_args__ = (
        Index("ix_npu_processes_node_pid", "node_id", "pid"),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    node_id = Column(String(128))
    npu_id = Column(Integer)
    pid = Column(BigInteger)
    process_name = Column(String(255))
    memory_usage_mb = Column(Float)
    status = Column(String(32))
    timestamp = Column(DateTime(timezone=True), server_default=func.now())


class ProcessMetric(Base):
    """Host-side resource usage of a job's process."""

    __tablename__ = "process_metrics"
    __table_args__ = (
        Index("ix_process_metrics_job_ts", "job_id", "timestamp"),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    job_id = Column(String(128))
    pid = Column(BigInteger)
    cpu_percent = Column(Float)
    memory_mb = Column(Float)
    thread_count = Column(Integer)
    open_files = Column(Integer)
    status = Column(String(32))
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
