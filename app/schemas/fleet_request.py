# app/schemas/fleet_request.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Optional, Union


class ApprovalIn(BaseModel):
    requestId: Optional[Union[int, str]] = None   # non-numeric ids get a 400 from the service
    action: Optional[str] = None          # approve | reject
    comments: Optional[str] = None
    approvedBy: Optional[str] = None


class ApprovalOut(BaseModel):
    success: bool
    message: str
    newStatus: str


class Requester(BaseModel):
    nome: Optional[str] = None
    email: Optional[str] = None
    telefone: Optional[str] = None
    setor: Optional[str] = None


class InsuranceInfo(BaseModel):
    seguradora: Optional[str] = None
    numero_apolice: Optional[str] = None
    vigencia_inicio: Optional[str] = None
    vigencia_fim: Optional[str] = None
    cobertura: Optional[str] = None


class ResponsibleInfo(BaseModel):
    nome: Optional[str] = None
    telefone: Optional[str] = None
    email: Optional[str] = None


class Attachment(BaseModel):
    name: str
    url: str
    size: Optional[int] = None
    type: Optional[str] = None


class FleetRequestCreate(BaseModel):
    empresa_id: str
    user_id: Optional[str] = None
    tipo: str
    placa: Optional[str] = None
    chassi: Optional[str] = None
    renavam: Optional[str] = None
    motivo: Optional[str] = None
    solicitante: Optional[Requester] = None
    seguro: Optional[InsuranceInfo] = None
    responsavel: Optional[ResponsibleInfo] = None
    anexos: list[Attachment] = Field(default_factory=list)


class FleetRequestOut(BaseModel):
    id: int
    empresa_id: str
    user_id: Optional[str]
    vehicle_id: Optional[int]
    tipo: str
    placa: Optional[str]
    chassi: Optional[str]
    renavam: Optional[str]
    status: str
    prioridade: str
    payload: Optional[dict[str, Any]]
    anexos: Optional[list[dict[str, Any]]]
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True
