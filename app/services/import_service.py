# app/services/import_service.py
"""
Import reconciliation — merges vehicle records produced by the spreadsheet
pipeline (N8N) into existing fleet vehicles.

How it works:
  - Each incoming record is matched to a vehicle of the same company by
    plate, then RENAVAM, then chassis. Unmatched records are only counted.
  - Every mapped field is normalized, checked against the company's update
    policy, validated, and written on its own. Each write gets an audit row.
  - Failures are scoped to the field: they are counted and the loop moves on.
  - No vehicle is ever created here (see fleet_intake_service for that).
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.models.company_import_settings import CompanyImportSettings
from app.models.field_source_audit import FieldSourceAudit
from app.models.fleet_vehicle import FleetVehicle
from app.models.import_job import ImportJob
from app.utils import vehicle_fields as vf
from app.utils.logger import get_logger

logger = get_logger(__name__)


class UpdatePolicy(str, Enum):
    EMPTY_ONLY = "empty_only"
    WHITELIST = "whitelist"
    BLOCK_CONFLICTS = "block_conflicts"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["UpdatePolicy"]:
        """Unknown policy strings map to None, which never applies a field."""
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class FieldSpec:
    source: str                          # key in the incoming record
    column: str                          # FleetVehicle attribute
    normalize: Callable[[Any], Any]
    validate: Callable[[Any], bool]


FIELD_SPECS: tuple[FieldSpec, ...] = (
    FieldSpec("codigo", "codigo_interno", vf.trim, vf.valid_text),
    FieldSpec("placa", "placa", vf.upper_trim, vf.valid_plate),
    FieldSpec("modelo", "modelo", vf.trim, vf.valid_text),
    FieldSpec("chassi", "chassi", vf.upper_trim, vf.valid_chassis),
    FieldSpec("renavam", "renavam", vf.digits_only, vf.valid_renavam),
    FieldSpec("marca", "marca", vf.trim, vf.valid_text),
    FieldSpec("ano", "ano_modelo", vf.parse_year, vf.valid_year),
    FieldSpec("proprietario", "proprietario_nome", vf.trim, vf.valid_text),
    FieldSpec("localizacao", "localizacao", vf.trim, vf.valid_text),
    FieldSpec("familia", "familia", vf.trim, vf.valid_text),
    FieldSpec("status", "status_veiculo", vf.trim, vf.valid_text),
    FieldSpec("origem_planilha", "origem_planilha", vf.trim, vf.valid_text),
    FieldSpec("categoria", "categoria", vf.trim, vf.valid_text),
)


@dataclass
class ImportConfig:
    auto_fill_enabled: bool = True
    update_policy: Optional[UpdatePolicy] = UpdatePolicy.EMPTY_ONLY
    allowed_fields: list[str] = field(default_factory=list)
    category_mapping: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Optional[CompanyImportSettings]) -> "ImportConfig":
        if row is None:
            return cls()
        return cls(
            auto_fill_enabled=bool(row.auto_fill_enabled),
            update_policy=UpdatePolicy.parse(row.update_policy),
            allowed_fields=list(row.allowed_fields or []),
            category_mapping=dict(row.category_mapping or {}),
        )


@dataclass
class ImportStats:
    processed: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    noMatch: int = 0

    def as_dict(self) -> dict:
        return {
            "processed": self.processed,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
            "noMatch": self.noMatch,
        }


# ── Update policies ──────────────────────────────────────────────────────────

def _empty_only(config: ImportConfig, column: str, current: Any, new: Any) -> bool:
    return vf.is_blank(current)


def _whitelist(config: ImportConfig, column: str, current: Any, new: Any) -> bool:
    return column in config.allowed_fields


def _block_conflicts(config: ImportConfig, column: str, current: Any, new: Any) -> bool:
    return vf.is_blank(current) or str(current) == str(new)


POLICY_RULES: dict[UpdatePolicy, Callable[[ImportConfig, str, Any, Any], bool]] = {
    UpdatePolicy.EMPTY_ONLY: _empty_only,
    UpdatePolicy.WHITELIST: _whitelist,
    UpdatePolicy.BLOCK_CONFLICTS: _block_conflicts,
}


def should_apply_field(config: ImportConfig, column: str, current: Any, new: Any) -> bool:
    rule = POLICY_RULES.get(config.update_policy)
    if rule is None:
        return False
    return rule(config, column, current, new)


# ── Settings / matching ──────────────────────────────────────────────────────

def load_import_config(db: Session, empresa_id: str) -> ImportConfig:
    row = (
        db.query(CompanyImportSettings)
        .filter(CompanyImportSettings.empresa_id == empresa_id)
        .first()
    )
    return ImportConfig.from_row(row)


def find_vehicle(db: Session, empresa_id: str, record: dict) -> Optional[FleetVehicle]:
    """Plate first, then RENAVAM, then chassis. First hit wins."""
    lookups = (
        (FleetVehicle.placa, record.get("placa"), vf.upper_trim),
        (FleetVehicle.renavam, record.get("renavam"), vf.trim),
        (FleetVehicle.chassi, record.get("chassi"), vf.upper_trim),
    )
    for column, raw, prepare in lookups:
        if vf.is_blank(raw):
            continue
        vehicle = (
            db.query(FleetVehicle)
            .filter(FleetVehicle.empresa_id == empresa_id, column == prepare(raw))
            .first()
        )
        if vehicle:
            return vehicle
    return None


# ── Per-record merge ─────────────────────────────────────────────────────────

def _write_field(db: Session, vehicle_id: int, column: str, value: Any,
                 previous: Any, job_id: str) -> bool:
    """Update one column and append its audit row in one commit. False if either failed."""
    try:
        db.query(FleetVehicle).filter(FleetVehicle.id == vehicle_id).update(
            {column: value, "updated_at": datetime.utcnow()}, synchronize_session="fetch"
        )
        db.add(FieldSourceAudit(
            veiculo_id=vehicle_id,
            field_name=column,
            previous_value=str(previous if previous is not None else ""),
            new_value=str(value),
            source=settings.IMPORT_AUDIT_SOURCE,
            import_job_id=job_id,
            created_at=datetime.utcnow(),
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[IMPORT] job={job_id} vehicle={vehicle_id} failed to update {column}: {e}")
        return False
    return True


def merge_record(db: Session, vehicle: FleetVehicle, record: dict,
                 config: ImportConfig, job_id: str, stats: ImportStats) -> bool:
    """Apply every eligible field of one record. Returns True if anything was written."""
    written = False
    for spec in FIELD_SPECS:
        raw = record.get(spec.source)
        if not raw:
            continue

        new_value = spec.normalize(raw)
        current = getattr(vehicle, spec.column)

        if not should_apply_field(config, spec.column, current, new_value):
            continue

        if not spec.validate(new_value):
            logger.warning(f"[IMPORT] job={job_id} invalid value for {spec.column}: {raw!r}")
            continue

        if str(current if current is not None else "") == str(new_value):
            continue

        final_value = new_value
        if spec.column == "categoria" and new_value in config.category_mapping:
            final_value = config.category_mapping[new_value]

        if _write_field(db, vehicle.id, spec.column, final_value, current, job_id):
            written = True
        else:
            stats.errors += 1
    return written


def process_vehicle_data(db: Session, empresa_id: str, job_id: str,
                         payload: dict, config: ImportConfig) -> ImportStats:
    stats = ImportStats()
    for record in payload.get("veiculos") or []:
        stats.processed += 1
        try:
            if not isinstance(record, dict):
                raise ValueError(f"vehicle record must be an object, got {type(record).__name__}")

            vehicle = find_vehicle(db, empresa_id, record)
            if not vehicle:
                stats.noMatch += 1
                key = record.get("placa") or record.get("renavam") or record.get("chassi")
                logger.info(f"[IMPORT] job={job_id} no vehicle matches {key}")
                continue

            if merge_record(db, vehicle, record, config, job_id, stats):
                stats.updated += 1
            else:
                stats.skipped += 1
        except Exception as e:
            db.rollback()
            stats.errors += 1
            logger.error(f"[IMPORT] job={job_id} failed to process record: {e}", exc_info=True)
    return stats


# ── Jobs ─────────────────────────────────────────────────────────────────────

def _get_job(db: Session, job_id: str) -> Optional[ImportJob]:
    return db.query(ImportJob).filter(ImportJob.job_id == job_id).first()


def enqueue_import(db: Session, job_id: str, empresa_id: str, payload: dict) -> ImportJob:
    """Record a pending job for the auto-fill worker. Re-enqueueing an existing job is a no-op."""
    job = _get_job(db, job_id)
    if job:
        return job
    job = ImportJob(job_id=job_id, empresa_id=empresa_id, payload=payload,
                    status="pending", created_at=datetime.utcnow())
    db.add(job)
    db.commit()
    logger.info(f"[IMPORT] job={job_id} queued for empresa={empresa_id}")
    return job


def _finish_job(db: Session, job_id: str, status: str, summary: dict):
    job = _get_job(db, job_id)
    job.status = status
    job.summary = summary
    job.processed_at = datetime.utcnow()
    db.commit()


def commit_import(db: Session, job_id: str, empresa_id: str, payload: dict) -> dict:
    """
    Run the reconciliation for one job and return its summary.
    Returns {"skipped": True, "reason": "auto_fill_disabled"} when the company
    has auto-fill turned off; no vehicle is touched in that case.
    """
    logger.info(f"[IMPORT] job={job_id} processing for empresa={empresa_id}")

    job = _get_job(db, job_id)
    if job is None:
        job = ImportJob(job_id=job_id, created_at=datetime.utcnow())
        db.add(job)
    job.empresa_id = empresa_id
    job.payload = payload
    job.status = "processing"
    db.commit()

    config = load_import_config(db, empresa_id)

    if not config.auto_fill_enabled:
        logger.info(f"[IMPORT] job={job_id} auto-fill disabled for empresa={empresa_id}")
        result = {"skipped": True, "reason": "auto_fill_disabled"}
        _finish_job(db, job_id, "completed", result)
        return result

    result = process_vehicle_data(db, empresa_id, job_id, payload, config).as_dict()
    _finish_job(db, job_id, "completed", result)
    logger.info(f"[IMPORT] job={job_id} done: {result}")
    return result


def run_pending_imports(db: Session, limit: Optional[int] = None) -> dict:
    """Auto-fill worker: process the oldest pending jobs that were never run."""
    limit = limit or settings.AUTO_FILL_BATCH_SIZE
    pending = (
        db.query(ImportJob)
        .filter(ImportJob.status == "pending", ImportJob.processed_at.is_(None))
        .order_by(ImportJob.created_at.asc())
        .limit(limit)
        .all()
    )
    if not pending:
        logger.info("[WORKER] no pending import jobs")
        return {"processed": 0, "successful": 0, "failed": 0, "results": []}

    jobs = [(j.job_id, j.empresa_id, j.payload) for j in pending]
    results = []
    for job_id, empresa_id, payload in jobs:
        try:
            result = commit_import(db, job_id, empresa_id, payload)
            results.append({"job_id": job_id, "success": True, "result": result})
        except Exception as e:
            db.rollback()
            logger.error(f"[WORKER] job={job_id} failed: {e}", exc_info=True)
            _finish_job(db, job_id, "failed", {"error": str(e)})
            results.append({"job_id": job_id, "success": False, "error": str(e)})

    successful = sum(1 for r in results if r["success"])
    summary = {
        "processed": len(results),
        "successful": successful,
        "failed": len(results) - successful,
        "results": results,
    }
    logger.info(f"[WORKER] processed={summary['processed']} failed={summary['failed']}")
    return summary
