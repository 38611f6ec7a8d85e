"""Scan run and finding SQLAlchemy models"""
from sqlalchemy import Column, String, Integer, ForeignKey, DateTime, JSON, Text
from sqlalchemy.orm import relationship

from app.core.database import Base, utcnow
from app.core.scan_config import RunStatus


class Run(Base):
    """
    One attempt to scan one project.

    Lifecycle: pending -> running -> completed | failed. Webhook-created runs
    start pending; runs launched by the orchestrator start running. Terminal
    runs are only written by the finalize step that moved them there.
    """

    __tablename__ = "runs"

    id = Column(String(36), primary_key=True, nullable=False)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    repository_id = Column(
        String(36), ForeignKey("github_repositories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    trigger_type = Column(String(32), nullable=False)
    scan_type = Column(String(32), nullable=True)
    git_ref = Column(String(512), nullable=True)
    commit_sha = Column(String(64), nullable=True)
    pr_number = Column(Integer, nullable=True)
    status = Column(String(32), nullable=False, default=RunStatus.PENDING.value, index=True)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)
    tools_run = Column(JSON, nullable=True)
    findings_count = Column(Integer, nullable=True)
    severity_breakdown = Column(JSON, nullable=True)
    callback_token = Column(String(128), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    project = relationship("Project")


class Finding(Base):
    """One issue reported by the worker for a run. Append-only from ingestion."""

    __tablename__ = "findings"

    id = Column(String(36), primary_key=True, nullable=False)
    run_id = Column(String(36), ForeignKey("runs.id", ondelete="CASCADE"), nullable=False, index=True)
    category = Column(String(64), nullable=False)
    tool = Column(String(128), nullable=False)
    rule_id = Column(String(512), nullable=True)
    title = Column(Text, nullable=False)
    severity = Column(String(32), nullable=False)
    confidence = Column(String(32), nullable=False)
    file_path = Column(String(2048), nullable=True)
    line_number = Column(Integer, nullable=False, default=0)
    fingerprint = Column(String(255), nullable=False, index=True)
    evidence = Column(JSON, nullable=True)
    status = Column(String(32), nullable=False, default="open")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
