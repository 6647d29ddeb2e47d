# app/routers/fipe.py
"""FIPE price refresh endpoint."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.database import get_db
from app.schemas.fipe import FipeRefreshIn
from app.services.fipe_service import refresh_fipe_batch

router = APIRouter()


@router.post("/fipe/refresh", summary="Refresh FIPE prices for a batch of vehicles")
async def refresh_fipe(body: FipeRefreshIn, db: Session = Depends(get_db)):
    return await refresh_fipe_batch(db, body)
