# app/schemas/vehicle.py
from pydantic import BaseModel
from datetime import datetime
from typing import Any, Optional


class FleetIntakeIn(BaseModel):
    empresaId: Optional[str] = None
    veiculos: Optional[Any] = None     # validated as a list by the intake service


class FleetVehicleOut(BaseModel):
    id: int
    empresa_id: str
    placa: Optional[str]
    chassi: Optional[str]
    renavam: Optional[str]
    codigo_interno: Optional[str]
    marca: Optional[str]
    modelo: Optional[str]
    ano_modelo: Optional[int]
    categoria: Optional[str]
    funcao: Optional[str]
    proprietario_nome: Optional[str]
    status_seguro: str
    status_veiculo: str
    localizacao: Optional[str]
    codigo_fipe: Optional[str]
    preco_fipe: Optional[str]
    observacoes: Optional[str]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True
