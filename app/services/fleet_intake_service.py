# app/services/fleet_intake_service.py
"""
Fleet intake — bulk vehicle creation from the spreadsheet pipeline.

Records are mapped to frota_veiculos columns, deduplicated by plate within
the payload (later duplicates only fill gaps of the first one), and inserted
in batches. Plates that already exist for the company are left untouched.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.models.fleet_vehicle import FleetVehicle
from app.utils import vehicle_fields as vf
from app.utils.logger import get_logger

logger = get_logger(__name__)


class IntakeError(ValueError):
    """Payload cannot be processed at all (HTTP 400)."""


def _or_none(value: Any) -> Any:
    return None if vf.is_blank(value) else value


def _fallback_plate(record: dict, index: int) -> str:
    placa = str(record.get("placa") or "").strip()
    if placa:
        return placa.upper()
    chassi = str(record.get("chassi") or "").strip()
    if chassi:
        return f"CHASSI_{chassi[-8:]}"
    return f"SEM_PLACA_{index}"


def map_vehicle(record: dict, empresa_id: str, index: int) -> dict:
    """Map one pipeline record to FleetVehicle column values."""
    owner = _or_none(record.get("proprietario"))
    owner_type = vf.normalize_owner_type(record.get("proprietario_tipo")) or ("pj" if owner else None)
    family = _or_none(record.get("familia"))
    year = record.get("ano")

    return {
        "empresa_id": empresa_id,
        "placa": _fallback_plate(record, index),
        "marca": _or_none(record.get("marca")),
        "modelo": _or_none(record.get("modelo")),
        "categoria": vf.normalize_category(family or "Carros"),
        "funcao": _or_none(record.get("funcao")) or family,
        "familia": family,
        "ano_modelo": vf.parse_year(year) if not vf.is_blank(year) else None,
        "chassi": vf.upper_trim(record["chassi"]) if _or_none(record.get("chassi")) else None,
        "renavam": vf.digits_only(record["renavam"]) if _or_none(record.get("renavam")) else None,
        "codigo_interno": _or_none(record.get("codigo")),
        "codigo_fipe": _or_none(record.get("codigo_fipe")),
        "combustivel": _or_none(record.get("combustivel")),
        "uf_emplacamento": _or_none(record.get("uf_emplacamento")),
        "localizacao": _or_none(record.get("localizacao")),
        "proprietario_nome": owner,
        "proprietario_doc": _or_none(record.get("proprietario_doc")),
        "proprietario_tipo": owner_type,
        "status_veiculo": _or_none(record.get("status")) or "ativo",
        "status_seguro": vf.normalize_insurance_status(record.get("status_seguro")),
        "preco_nf": vf.brl_to_number(record.get("preco_nf")),
        "preco_fipe": str(record["preco_fipe"]) if _or_none(record.get("preco_fipe")) else None,
        "data_venc_emplacamento": vf.normalize_date(record.get("data_venc_emplacamento")),
        "modalidade_compra": _or_none(record.get("modalidade_compra")),
        "origem_planilha": _or_none(record.get("origem_planilha")) or "N8N",
        "observacoes": _or_none(record.get("observacoes")),
    }


def deduplicate(vehicles: list[dict]) -> tuple[list[dict], int]:
    """Keep the first row per plate, filling its empty fields from later duplicates."""
    unique: dict[str, dict] = {}
    duplicates = 0
    for v in vehicles:
        key = str(v.get("placa") or "").strip()
        if not key:
            continue
        existing = unique.get(key)
        if existing is None:
            unique[key] = dict(v)
            continue
        duplicates += 1
        for k, val in v.items():
            if vf.is_blank(val):
                continue
            if vf.is_blank(existing.get(k)):
                existing[k] = val
    return list(unique.values()), duplicates


def _existing_plates(db: Session, empresa_id: str, plates: list[str]) -> set[str]:
    if not plates:
        return set()
    rows = (
        db.query(FleetVehicle.placa)
        .filter(FleetVehicle.empresa_id == empresa_id, FleetVehicle.placa.in_(plates))
        .all()
    )
    return {r[0] for r in rows}


def ingest_fleet(db: Session, empresa_id: Optional[str], veiculos: Any) -> dict:
    if not isinstance(veiculos, list):
        raise IntakeError("Dados de veículos não encontrados ou inválidos")
    if not empresa_id:
        raise IntakeError("empresaId é obrigatório")

    logger.info(f"[INTAKE] {len(veiculos)} vehicles received for empresa={empresa_id}")
    mapped = [map_vehicle(r, empresa_id, i) for i, r in enumerate(veiculos) if isinstance(r, dict)]
    unique, duplicates = deduplicate(mapped)

    already = _existing_plates(db, empresa_id, [v["placa"] for v in unique])
    to_insert = [v for v in unique if v["placa"] not in already]

    inserted = 0
    failed = 0
    failures = []
    batch_size = settings.INTAKE_BATCH_SIZE
    total_batches = (len(to_insert) + batch_size - 1) // batch_size
    for n, start in enumerate(range(0, len(to_insert), batch_size), start=1):
        batch = to_insert[start:start + batch_size]
        now = datetime.utcnow()
        try:
            db.add_all(FleetVehicle(**v, created_at=now, updated_at=now) for v in batch)
            db.commit()
            inserted += len(batch)
            logger.info(f"[INTAKE] batch {n}/{total_batches} inserted ({len(batch)} vehicles)")
        except SQLAlchemyError as e:
            db.rollback()
            failed += len(batch)
            failures.append({"lote": n, "erro": str(e.__cause__ or e), "veiculos": [v["placa"] for v in batch]})
            logger.error(f"[INTAKE] batch {n}/{total_batches} failed: {e}")

    parts = [f"{inserted} veículos inseridos"]
    if already:
        parts.append(f"{len(already)} já existiam no banco")
    if duplicates:
        parts.append(f"{duplicates} duplicados na planilha")
    if failed:
        parts.append(f"{failed} erros")

    result = {
        "success": failed == 0,
        "message": "Processamento concluído: " + ", ".join(parts),
        "detalhes": {
            "total_recebidos": len(veiculos),
            "total_unicos": len(unique),
            "duplicados_planilha": duplicates,
            "ja_existiam_no_banco": len(already),
            "veiculos_inseridos": inserted,
            "erros_insercao": failed,
            "empresa_id": empresa_id,
        },
    }
    if failures:
        result["erros"] = failures
    logger.info(f"[INTAKE] {result['message']}")
    return result
