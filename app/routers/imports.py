# app/routers/imports.py
"""
Import reconciliation endpoints.
POST /imports/commit/{job_id}  — reconcile a batch now (called by the N8N pipeline).
POST /imports/jobs/{job_id}    — queue a batch for the auto-fill worker.
POST /imports/worker/run       — run the auto-fill worker once.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.field_source_audit import FieldSourceAudit
from app.models.import_job import ImportJob
from app.schemas.import_job import CommitImportIn, FieldSourceAuditOut, ImportJobOut
from app.services.import_service import commit_import, enqueue_import, run_pending_imports

router = APIRouter()


def _require_body(body: CommitImportIn):
    if not body.empresaId or body.payload is None:
        raise HTTPException(status_code=400, detail="empresaId e payload são obrigatórios")


@router.post("/imports/commit/{job_id}", summary="Reconcile an import batch into the fleet")
def commit_import_job(job_id: str, body: CommitImportIn, db: Session = Depends(get_db)):
    """Returns {processed, updated, skipped, errors, noMatch} or {skipped, reason}."""
    _require_body(body)
    return commit_import(db, job_id, body.empresaId, body.payload)


@router.post("/imports/jobs/{job_id}", response_model=ImportJobOut, status_code=202,
             summary="Queue an import batch for the auto-fill worker")
def queue_import_job(job_id: str, body: CommitImportIn, db: Session = Depends(get_db)):
    _require_body(body)
    return enqueue_import(db, job_id, body.empresaId, body.payload)


@router.post("/imports/worker/run", summary="Process pending import jobs")
def run_worker(limit: int = None, db: Session = Depends(get_db)):
    return run_pending_imports(db, limit)


@router.get("/imports/jobs", response_model=list[ImportJobOut], summary="List import jobs")
def list_jobs(empresa_id: str = None, status: str = None, limit: int = 50, db: Session = Depends(get_db)):
    q = db.query(ImportJob)
    if empresa_id:
        q = q.filter(ImportJob.empresa_id == empresa_id)
    if status:
        q = q.filter(ImportJob.status == status)
    return q.order_by(ImportJob.created_at.desc()).limit(limit).all()


@router.get("/imports/jobs/{job_id}", response_model=ImportJobOut, summary="Import job detail")
def get_job(job_id: str, db: Session = Depends(get_db)):
    job = db.query(ImportJob).filter(ImportJob.job_id == job_id).first()
    if not job:
        raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found")
    return job


@router.get("/imports/jobs/{job_id}/audit", response_model=list[FieldSourceAuditOut],
            summary="Fields overwritten by an import job")
def get_job_audit(job_id: str, db: Session = Depends(get_db)):
    return (
        db.query(FieldSourceAudit)
        .filter(FieldSourceAudit.import_job_id == job_id)
        .order_by(FieldSourceAudit.id.asc())
        .all()
    )
