# app/services/fipe_service.py
"""
FIPE price refresh — pulls current FIPE table prices for fleet vehicles.

Vehicles are split into pages; each page is drained by a fixed number of
asyncio workers sharing one cursor. Every call waits delay_ms first, and 5xx
answers are retried with a 200ms·3^attempt backoff. A failed vehicle is
recorded and the batch carries on.

Endpoint: GET {FIPE_API_URL}/{cars|motorcycles|trucks}/{fipeCode}/years/{yearId}
"""

import asyncio
import re
from datetime import datetime
from typing import Optional
from urllib.parse import quote

import httpx
from sqlalchemy.orm import Session

from app.config import settings
from app.models.fleet_vehicle import FleetVehicle
from app.schemas.fipe import FipeItem, FipeRefreshIn
from app.utils.vehicle_fields import brl_to_number, strip_accents
from app.utils.logger import get_logger

logger = get_logger(__name__)

_BACKOFF_BASE_MS = 200
_SAMPLE_SIZE = 5
_ERRORS_RETURNED = 10


class FipeError(Exception):
    pass


def map_category_to_vehicle_type(category: Optional[str]) -> str:
    if not category:
        return "cars"
    c = strip_accents(category.lower())
    if "caminh" in c:
        return "trucks"
    if "moto" in c:
        return "motorcycles"
    return "cars"


def to_year_id(year) -> Optional[str]:
    """2020 → "2020-0"; "2020-1" is kept; anything else is None."""
    if year is None or year == "":
        return None
    s = str(year).strip()
    if re.fullmatch(r"\d{4}", s):
        return f"{s}-0"
    if re.fullmatch(r"\d{4}-\d", s):
        return s
    return None


async def call_fipe(client: httpx.AsyncClient, vehicle_type: str, fipe_code: str,
                    year_id: str, reference: Optional[int] = None, max_retries: int = 2) -> dict:
    url = f"{settings.FIPE_API_URL}/{vehicle_type}/{quote(fipe_code, safe='')}/years/{quote(year_id, safe='')}"
    params = {"reference": reference} if reference is not None else None

    attempt = 0
    while True:
        resp = await client.get(url, params=params)
        if resp.status_code < 400:
            return resp.json()
        if resp.status_code >= 500 and attempt < max_retries:
            await asyncio.sleep(_BACKOFF_BASE_MS * (3 ** attempt) / 1000)
            attempt += 1
            logger.debug(f"[FIPE] {fipe_code} HTTP {resp.status_code}, retry {attempt}/{max_retries}")
            continue
        raise FipeError(f"FIPE {resp.status_code}: {resp.text}")


def select_items(db: Session, params: FipeRefreshIn) -> list[FipeItem]:
    if params.mode == "list":
        return [i for i in params.items if i.codigo_fipe]

    q = db.query(FleetVehicle).filter(
        FleetVehicle.codigo_fipe.isnot(None),
        FleetVehicle.ano_modelo.isnot(None),
    )
    if params.empresa_id:
        q = q.filter(FleetVehicle.empresa_id == params.empresa_id)
    if params.vehicle_ids:
        q = q.filter(FleetVehicle.id.in_(params.vehicle_ids))
    if params.missing_price_only:
        q = q.filter(FleetVehicle.preco_fipe.is_(None))
    rows = q.order_by(FleetVehicle.id.asc()).offset(params.offset).limit(params.limit).all()
    return [FipeItem(id=r.id, codigo_fipe=r.codigo_fipe, categoria=r.categoria, ano_modelo=r.ano_modelo)
            for r in rows]


def _client() -> httpx.AsyncClient:
    headers = {"accept": "application/json"}
    if settings.FIPE_TOKEN:
        headers["X-Subscription-Token"] = settings.FIPE_TOKEN
    return httpx.AsyncClient(headers=headers, timeout=settings.FIPE_TIMEOUT_SECONDS)


async def refresh_fipe_batch(db: Session, params: FipeRefreshIn,
                             client: Optional[httpx.AsyncClient] = None) -> dict:
    items = select_items(db, params)
    logger.info(f"[FIPE] {len(items)} vehicles to refresh (mode={params.mode}, dry_run={params.dry_run})")

    stats = {"total": len(items), "processed": 0, "success": 0, "fail": 0, "skipped": 0}
    errors: list[dict] = []
    sample: list[dict] = []

    own_client = client is None
    client = client or _client()
    try:
        for start in range(0, len(items), params.page_size):
            chunk = items[start:start + params.page_size]
            cursor = 0

            async def worker():
                nonlocal cursor
                while cursor < len(chunk):
                    item = chunk[cursor]
                    cursor += 1

                    year_id = to_year_id(item.ano_modelo)
                    if not year_id:
                        stats["skipped"] += 1
                        errors.append({"id": item.id, "reason": "Ano ausente/inválido"})
                        continue

                    try:
                        await asyncio.sleep(params.delay_ms / 1000)
                        body = await call_fipe(
                            client,
                            map_category_to_vehicle_type(item.categoria),
                            item.codigo_fipe,
                            year_id,
                            params.reference,
                            params.max_retries,
                        )
                        price = body.get("price")
                        if not params.dry_run:
                            _apply_price(db, item, body)
                        if len(sample) < _SAMPLE_SIZE:
                            sample.append({"id": item.id, "preco_fipe": price, "priceNumber": brl_to_number(price)})
                        stats["success"] += 1
                    except Exception as e:
                        stats["fail"] += 1
                        errors.append({"id": item.id, "reason": str(e)})
                        logger.error(f"[FIPE] vehicle {item.id} failed: {e}")
                    finally:
                        stats["processed"] += 1

            await asyncio.gather(*(worker() for _ in range(max(1, params.concurrency))))
    finally:
        if own_client:
            await client.aclose()

    logger.info(f"[FIPE] batch done: {stats}")
    return {
        "ok": True,
        "input": {
            "mode": params.mode, "offset": params.offset, "limit": params.limit,
            "reference": params.reference, "concurrency": params.concurrency,
            "pageSize": params.page_size, "dryRun": params.dry_run,
        },
        "stats": stats,
        "updatedSample": sample,
        "errors": errors[:_ERRORS_RETURNED],
    }


def _apply_price(db: Session, item: FipeItem, body: dict):
    vehicle = db.query(FleetVehicle).filter(FleetVehicle.id == item.id).first()
    if not vehicle:
        raise FipeError(f"vehicle {item.id} not found")
    vehicle.preco_fipe = body.get("price")
    vehicle.marca = body.get("brand")
    vehicle.modelo = body.get("model")
    vehicle.combustivel = body.get("fuel")
    vehicle.ano_modelo = body.get("modelYear") or item.ano_modelo
    vehicle.updated_at = datetime.utcnow()
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
