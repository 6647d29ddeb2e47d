# app/models/field_source_audit.py
"""
Append-only audit of every vehicle field overwritten by an import.
"""

from sqlalchemy import Column, Integer, String, DateTime, Text
from app.database import Base


class FieldSourceAudit(Base):
    __tablename__ = "veiculo_field_sources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    veiculo_id = Column(Integer, nullable=False, index=True)
    field_name = Column(String(60), nullable=False)
    previous_value = Column(Text)
    new_value = Column(Text)
    source = Column(String(50), nullable=False)
    import_job_id = Column(String(100), index=True)
    created_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<FieldSourceAudit veiculo={self.veiculo_id} field={self.field_name} job={self.import_job_id}>"
