# app/models/fleet_responsible.py
"""
Responsible party per vehicle (frota_responsaveis).
Replaced wholesale by an approved "mudanca_responsavel" request.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from app.database import Base


class FleetResponsible(Base):
    __tablename__ = "frota_responsaveis"

    id = Column(Integer, primary_key=True, autoincrement=True)
    veiculo_id = Column(Integer, ForeignKey("frota_veiculos.id"), nullable=False, index=True)
    nome = Column(String(200), nullable=False)
    telefone = Column(String(40))
    email = Column(String(200))
    created_at = Column(DateTime)

    def __repr__(self):
        return f"<FleetResponsible {self.id} veiculo={self.veiculo_id} nome={self.nome}>"
