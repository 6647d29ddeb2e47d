# app/models/company_import_settings.py
"""
Per-company import policy. Read-only from the reconciliation side;
edited by administrators elsewhere.
"""

from sqlalchemy import Column, Integer, String, Boolean, JSON
from app.database import Base


class CompanyImportSettings(Base):
    __tablename__ = "company_import_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    empresa_id = Column(String(64), unique=True, nullable=False, index=True)
    auto_fill_enabled = Column(Boolean, default=True, nullable=False)
    update_policy = Column(String(30), default="empty_only", nullable=False)  # empty_only | whitelist | block_conflicts
    allowed_fields = Column(JSON, default=list)      # used only under whitelist
    category_mapping = Column(JSON, default=dict)    # incoming category → stored category

    def __repr__(self):
        return f"<CompanyImportSettings {self.empresa_id} policy={self.update_policy}>"
