# app/routers/fleet_requests.py
"""Fleet change requests: open, triage, approve/reject, retry execution."""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.fleet_change_request import FleetChangeRequest
from app.schemas.fleet_request import ApprovalIn, ApprovalOut, FleetRequestCreate, FleetRequestOut
from app.services import fleet_request_service as service
from app.services.errors import FleetRequestError
from app.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/fleet-requests/approval", response_model=ApprovalOut,
             summary="Approve or reject a fleet change request")
def approve_request(body: ApprovalIn, db: Session = Depends(get_db)):
    """
    Errors come back as {success: false, error} with 400 (bad input or status),
    404 (unknown request) or 500.
    """
    try:
        return service.process_approval(db, body.requestId, body.action, body.comments, body.approvedBy)
    except FleetRequestError as e:
        return JSONResponse(status_code=e.status_code, content={"success": False, "error": str(e)})
    except Exception as e:
        db.rollback()
        logger.error(f"Fleet request approval failed: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "error": str(e) or "Erro interno do servidor"})


@router.post("/fleet-requests", response_model=FleetRequestOut, status_code=201,
             summary="Open a fleet change request")
def create_request(body: FleetRequestCreate, db: Session = Depends(get_db)):
    try:
        return service.create_request(db, body)
    except FleetRequestError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/fleet-requests", response_model=list[FleetRequestOut], summary="List fleet change requests")
def list_requests(empresa_id: str = None, status: str = None, limit: int = 50, db: Session = Depends(get_db)):
    q = db.query(FleetChangeRequest)
    if empresa_id:
        q = q.filter(FleetChangeRequest.empresa_id == empresa_id)
    if status:
        q = q.filter(FleetChangeRequest.status == status)
    return q.order_by(FleetChangeRequest.created_at.desc()).limit(limit).all()


@router.get("/fleet-requests/{request_id}", response_model=FleetRequestOut)
def get_request(request_id: int, db: Session = Depends(get_db)):
    try:
        return service.get_request(db, request_id)
    except FleetRequestError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/fleet-requests/{request_id}/triage", summary="Send a request to the N8N triage webhook")
def triage_request(request_id: int, db: Session = Depends(get_db)):
    try:
        result = service.forward_to_triage(db, request_id)
    except FleetRequestError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return result if result["success"] else JSONResponse(status_code=502, content=result)


@router.post("/fleet-requests/{request_id}/execute", response_model=FleetRequestOut,
             summary="Retry the fleet change of an approved request")
def execute_request(request_id: int, db: Session = Depends(get_db)):
    """Use after an approval whose fleet change failed (status still 'aprovado')."""
    try:
        return service.execute_approved(db, request_id)
    except FleetRequestError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
