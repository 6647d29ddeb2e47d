# app/models/fleet_change_request.py
"""
Fleet change requests — proposed fleet mutations awaiting approval.
Status: aberto | em_triagem | aprovado | recusado | executado
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from app.database import Base


class FleetChangeRequest(Base):
    __tablename__ = "fleet_change_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    empresa_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(64))
    vehicle_id = Column(Integer, index=True)    # frota_veiculos.id, when resolved
    tipo = Column(String(40), nullable=False)
    placa = Column(String(20))
    chassi = Column(String(30))
    renavam = Column(String(20))
    status = Column(String(20), default="aberto", nullable=False, index=True)
    prioridade = Column(String(10), default="normal", nullable=False)
    payload = Column(JSON, default=dict)
    anexos = Column(JSON, default=list)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime)

    def __repr__(self):
        return f"<FleetChangeRequest {self.id} tipo={self.tipo} status={self.status}>"
