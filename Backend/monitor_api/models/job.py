"""
Job database models.

This module contains the job-side tables populated by the collectors:
- Jobs (observed processes; parent/child links are by pid value, not FK)
- Parameters (launch arguments, config file, environment)
- Code (entry and shell scripts)
- Job status history
- Job analysis (cached LLM result, the only job table this service writes)
"""

import enum

from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.sql import func

from monitor_api.core.database import Base

# BIGINT autoincrement keys degrade to INTEGER on SQLite
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class JobStatus(str, enum.Enum):
    """Lifecycle status of an observed process."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"
    LOST = "lost"


class Job(Base):
    """An observed process, identified by an opaque collector-assigned id."""

    __tablename__ = "jobs"
    __table_args__ = (
        Index("ix_jobs_node_id", "node_id"),
        Index("ix_jobs_status", "status"),
        Index("ix_jobs_node_pid", "node_id", "pid"),
        Index("ix_jobs_start_time", "start_time"),
    )

    job_id = Column(String(128), primary_key=True)
    node_id = Column(String(128))
    host_id = Column(String(128))
    job_name = Column(String(255))
    job_type = Column(String(64))

    # Process identity; ppid may or may not name another job's pid
    pid = Column(BigInteger)
    ppid = Column(BigInteger)
    pgid = Column(BigInteger)
    process_name = Column(String(255))
    command_line = Column(Text)

    framework = Column(String(64))
    model_format = Column(String(64))
    status = Column(String(32))

    # Epoch seconds
    start_time = Column(BigInteger)
    end_time = Column(BigInteger)
    cwd = Column(Text)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Job(job_id={self.job_id}, node_id={self.node_id}, pid={self.pid}, status={self.status})>"


class Parameter(Base):
    """Launch parameters captured for a job."""

    __tablename__ = "parameters"
    __table_args__ = (
        Index("ix_parameters_job_ts", "job_id", "timestamp"),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    job_id = Column(String(128))
    parameter_raw = Column(Text)
    parameter_data = Column(Text)  # JSON document
    parameter_source = Column(String(64))
    config_file_path = Column(Text)
    config_file_content = Column(Text)
    env_vars = Column(Text)  # JSON object
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Code(Base):
    """Entry and shell launch scripts captured for a job."""

    __tablename__ = "code"
    __table_args__ = (
        Index("ix_code_job_ts", "job_id", "timestamp"),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    job_id = Column(String(128))
    script_path = Column(Text)
    script_content = Column(Text)
    imported_libraries = Column(Text)
    config_files = Column(Text)
    sh_script_path = Column(Text)
    sh_script_content = Column(Text)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class JobStatusHistory(Base):
    """Status transitions recorded by the collectors."""

    __tablename__ = "job_status_histories"
    __table_args__ = (
        Index("ix_job_status_histories_job", "job_id", "changed_at"),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    job_id = Column(String(128))
    old_status = Column(String(32))
    new_status = Column(String(32))
    reason = Column(Text)
    changed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class JobAnalysis(Base):
    """Most recent LLM analysis of a job, one row per job."""

    __tablename__ = "job_analysis"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    job_id = Column(String(128), unique=True, nullable=False)
    status = Column(String(32), default="completed", nullable=False)
    result = Column(Text)  # JSON document

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<JobAnalysis(job_id={self.job_id}, status={self.status})>"
