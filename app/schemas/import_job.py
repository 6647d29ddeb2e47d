# app/schemas/import_job.py
from pydantic import BaseModel
from datetime import datetime
from typing import Any, Optional


class CommitImportIn(BaseModel):
    # Optional so missing fields produce a 400 with a message, not a 422
    empresaId: Optional[str] = None
    payload: Optional[dict[str, Any]] = None


class ImportJobOut(BaseModel):
    id: int
    job_id: str
    empresa_id: str
    status: str
    summary: Optional[dict[str, Any]]
    created_at: datetime
    processed_at: Optional[datetime]

    class Config:
        from_attributes = True


class FieldSourceAuditOut(BaseModel):
    id: int
    veiculo_id: int
    field_name: str
    previous_value: Optional[str]
    new_value: Optional[str]
    source: str
    import_job_id: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
