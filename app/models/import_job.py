# app/models/import_job.py
"""
Import jobs table — one row per batch-import invocation.
Lifecycle: pending → processing → completed (or failed when the worker
could not run it). The payload is stored as received and never modified.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from app.database import Base


class ImportJob(Base):
    __tablename__ = "import_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(100), unique=True, nullable=False, index=True)
    empresa_id = Column(String(64), nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    status = Column(String(20), default="pending", nullable=False, index=True)
    summary = Column(JSON)
    created_at = Column(DateTime, nullable=False)
    processed_at = Column(DateTime)

    def __repr__(self):
        return f"<ImportJob {self.job_id} status={self.status}>"
