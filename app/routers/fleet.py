# app/routers/fleet.py
"""Fleet vehicles: bulk intake from the spreadsheet pipeline + read endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.fleet_vehicle import FleetVehicle
from app.schemas.vehicle import FleetIntakeIn, FleetVehicleOut
from app.services.fleet_intake_service import IntakeError, ingest_fleet

router = APIRouter()


@router.post("/fleet/intake", summary="Create vehicles from a spreadsheet payload")
def fleet_intake(body: FleetIntakeIn, db: Session = Depends(get_db)):
    """200 when every batch was inserted, 207 when some batches failed."""
    try:
        result = ingest_fleet(db, body.empresaId, body.veiculos)
    except IntakeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return JSONResponse(status_code=200 if result["success"] else 207, content=result)


@router.get("/fleet/vehicles", response_model=list[FleetVehicleOut], summary="List fleet vehicles")
def list_vehicles(empresa_id: str = None, status_veiculo: str = None, limit: int = 200,
                  db: Session = Depends(get_db)):
    q = db.query(FleetVehicle)
    if empresa_id:
        q = q.filter(FleetVehicle.empresa_id == empresa_id)
    if status_veiculo:
        q = q.filter(FleetVehicle.status_veiculo == status_veiculo)
    return q.order_by(FleetVehicle.id.asc()).limit(limit).all()


@router.get("/fleet/vehicles/{vehicle_id}", response_model=FleetVehicleOut)
def get_vehicle(vehicle_id: int, db: Session = Depends(get_db)):
    vehicle = db.query(FleetVehicle).filter(FleetVehicle.id == vehicle_id).first()
    if not vehicle:
        raise HTTPException(status_code=404, detail="Vehicle not found")
    return vehicle
