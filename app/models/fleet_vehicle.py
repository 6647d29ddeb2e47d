# app/models/fleet_vehicle.py
"""
Fleet vehicles table (frota_veiculos).
One row per vehicle tracked for a tenant company, keyed by (empresa_id, placa).
Created by manual entry, fleet intake or an approved inclusion request.
Never hard-deleted: exclusion sets status_veiculo = "inativo".
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Numeric, Date, UniqueConstraint
from app.database import Base


class FleetVehicle(Base):
    __tablename__ = "frota_veiculos"
    __table_args__ = (UniqueConstraint("empresa_id", "placa", name="uq_frota_empresa_placa"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    empresa_id = Column(String(64), nullable=False, index=True)

    # Identification
    placa = Column(String(20), index=True)
    chassi = Column(String(30), index=True)
    renavam = Column(String(20), index=True)
    codigo_interno = Column(String(120))
    marca = Column(String(120))
    modelo = Column(String(200))
    ano_modelo = Column(Integer)

    # Classification
    categoria = Column(String(50))
    funcao = Column(String(120))
    familia = Column(String(120))

    # Ownership
    proprietario_nome = Column(String(200))
    proprietario_doc = Column(String(20))
    proprietario_tipo = Column(String(2))        # pf | pj

    # Status
    status_seguro = Column(String(20), default="sem_seguro", nullable=False)  # segurado | sem_seguro | cotacao | vencido
    status_veiculo = Column(String(30), default="ativo", nullable=False)      # ativo | inativo | ...

    localizacao = Column(String(120))
    origem_planilha = Column(String(120))

    # Pricing / registration
    codigo_fipe = Column(String(20))
    preco_fipe = Column(String(40))              # formatted BRL as returned by FIPE
    combustivel = Column(String(40))
    uf_emplacamento = Column(String(2))
    preco_nf = Column(Numeric(14, 2))
    data_venc_emplacamento = Column(Date)
    modalidade_compra = Column(String(60))

    observacoes = Column(Text)
    created_by = Column(String(64))
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    def __repr__(self):
        return f"<FleetVehicle {self.id} placa={self.placa} empresa={self.empresa_id}>"
