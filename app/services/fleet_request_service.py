# app/services/fleet_request_service.py
"""
Fleet change requests: creation, triage hand-off and approval.

Approval flow:
  - Only requests in "aberto" or "em_triagem" can be approved or rejected.
  - The decision (status + payload.approval) is committed first.
  - On approval the fleet mutation for the request's tipo and the move to
    "executado" are committed together. If the mutation fails the whole unit
    is rolled back and the request stays "aprovado" with
    payload.execution_error set, so execute_approved() can retry it later.
"""

import random
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Union

import requests
from sqlalchemy.orm import Session

from app.config import settings
from app.models.fleet_change_request import FleetChangeRequest
from app.models.fleet_responsible import FleetResponsible
from app.models.fleet_vehicle import FleetVehicle
from app.schemas.fleet_request import FleetRequestCreate
from app.services.errors import (
    FleetRequestNotFound,
    InvalidRequestData,
    InvalidTransition,
    SideEffectError,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)


class FleetRequestStatus(str, Enum):
    ABERTO = "aberto"
    EM_TRIAGEM = "em_triagem"
    APROVADO = "aprovado"
    RECUSADO = "recusado"
    EXECUTADO = "executado"


class FleetRequestType(str, Enum):
    INCLUSAO_VEICULO = "inclusao_veiculo"
    EXCLUSAO_VEICULO = "exclusao_veiculo"
    TIRAR_DO_SEGURO = "tirar_do_seguro"
    COLOCAR_NO_SEGURO = "colocar_no_seguro"
    ATUALIZACAO_DADOS = "atualizacao_dados"
    MUDANCA_RESPONSAVEL = "mudanca_responsavel"
    DOCUMENTACAO = "documentacao"


S = FleetRequestStatus
ALLOWED_TRANSITIONS: dict[FleetRequestStatus, frozenset] = {
    S.ABERTO: frozenset({S.EM_TRIAGEM, S.APROVADO, S.RECUSADO}),
    S.EM_TRIAGEM: frozenset({S.APROVADO, S.RECUSADO}),
    S.APROVADO: frozenset({S.EXECUTADO}),
    S.RECUSADO: frozenset(),
    S.EXECUTADO: frozenset(),
}
DECIDABLE = frozenset({S.ABERTO, S.EM_TRIAGEM})

ACTIONS = {"approve": S.APROVADO, "reject": S.RECUSADO}


def can_transition(current: str, target: FleetRequestStatus) -> bool:
    try:
        return target in ALLOWED_TRANSITIONS[FleetRequestStatus(current)]
    except ValueError:
        return False


def transition(request: FleetChangeRequest, target: FleetRequestStatus):
    """Move a request to target status in memory. Caller commits."""
    if not can_transition(request.status, target):
        raise InvalidTransition(request.status, target.value)
    request.status = target.value
    request.updated_at = datetime.utcnow()


# ── Side effects ─────────────────────────────────────────────────────────────

def _require_vehicle(db: Session, request: FleetChangeRequest) -> FleetVehicle:
    if not request.vehicle_id:
        raise SideEffectError(f"ID do veículo é necessário para {request.tipo}")
    vehicle = db.query(FleetVehicle).filter(FleetVehicle.id == request.vehicle_id).first()
    if not vehicle:
        raise SideEffectError(f"Veículo {request.vehicle_id} não encontrado")
    return vehicle


def _touch(vehicle: FleetVehicle, note: str):
    vehicle.observacoes = note
    vehicle.updated_at = datetime.utcnow()


def include_vehicle(db: Session, request: FleetChangeRequest):
    vehicle = FleetVehicle(
        empresa_id=request.empresa_id,
        placa=request.placa,
        chassi=request.chassi,
        renavam=request.renavam,
        status_seguro="sem_seguro",
        status_veiculo="ativo",
        observacoes=f"Incluído via solicitação {request.id}",
        created_by=request.user_id,
        created_at=datetime.utcnow(),
    )
    db.add(vehicle)
    db.flush()
    request.vehicle_id = vehicle.id
    logger.info(f"[FLEET] vehicle {vehicle.id} created by request {request.id}")


def exclude_vehicle(db: Session, request: FleetChangeRequest):
    vehicle = _require_vehicle(db, request)
    vehicle.status_veiculo = "inativo"
    _touch(vehicle, f"Excluído via solicitação {request.id}")
    logger.info(f"[FLEET] vehicle {vehicle.id} deactivated by request {request.id}")


def remove_from_insurance(db: Session, request: FleetChangeRequest):
    vehicle = _require_vehicle(db, request)
    vehicle.status_seguro = "sem_seguro"
    _touch(vehicle, f"Seguro removido via solicitação {request.id}")


def add_to_insurance(db: Session, request: FleetChangeRequest):
    vehicle = _require_vehicle(db, request)
    vehicle.status_seguro = "segurado"
    _touch(vehicle, f"Seguro adicionado via solicitação {request.id}")


def update_vehicle_data(db: Session, request: FleetChangeRequest):
    vehicle = _require_vehicle(db, request)
    for column in ("placa", "chassi", "renavam"):
        value = getattr(request, column)
        if value:
            setattr(vehicle, column, value)
    _touch(vehicle, f"Dados atualizados via solicitação {request.id}")


def change_responsible(db: Session, request: FleetChangeRequest):
    vehicle = _require_vehicle(db, request)
    responsible = (request.payload or {}).get("responsavel") or {}
    if not responsible.get("nome"):
        raise SideEffectError("Dados do novo responsável são necessários")

    db.query(FleetResponsible).filter(FleetResponsible.veiculo_id == vehicle.id).delete()
    db.add(FleetResponsible(
        veiculo_id=vehicle.id,
        nome=responsible["nome"],
        telefone=responsible.get("telefone"),
        email=responsible.get("email"),
        created_at=datetime.utcnow(),
    ))


def documentation_only(db: Session, request: FleetChangeRequest):
    logger.info(f"[FLEET] request {request.id} is documentation only, no fleet change")


SIDE_EFFECTS: dict[FleetRequestType, Callable[[Session, FleetChangeRequest], None]] = {
    FleetRequestType.INCLUSAO_VEICULO: include_vehicle,
    FleetRequestType.EXCLUSAO_VEICULO: exclude_vehicle,
    FleetRequestType.TIRAR_DO_SEGURO: remove_from_insurance,
    FleetRequestType.COLOCAR_NO_SEGURO: add_to_insurance,
    FleetRequestType.ATUALIZACAO_DADOS: update_vehicle_data,
    FleetRequestType.MUDANCA_RESPONSAVEL: change_responsible,
    FleetRequestType.DOCUMENTACAO: documentation_only,
}


def apply_side_effect(db: Session, request: FleetChangeRequest):
    try:
        handler = SIDE_EFFECTS[FleetRequestType(request.tipo)]
    except ValueError:
        logger.warning(f"[FLEET] unknown request type {request.tipo!r} on request {request.id}, nothing to do")
        return
    logger.info(f"[FLEET] applying {request.tipo} for request {request.id}")
    handler(db, request)


def _execute(db: Session, request_id: int) -> bool:
    """
    Apply the side effect and mark the request executado in one commit.
    On failure roll back, keep it aprovado and store the error.
    """
    request = get_request(db, request_id)
    try:
        apply_side_effect(db, request)
        transition(request, S.EXECUTADO)
        payload = dict(request.payload or {})
        payload.pop("execution_error", None)
        request.payload = payload
        db.commit()
        logger.info(f"[FLEET] request {request_id} executed")
        return True
    except Exception as e:
        db.rollback()
        logger.error(f"[FLEET] request {request_id} approved but not executed: {e}", exc_info=True)
        request = get_request(db, request_id)
        request.payload = {
            **(request.payload or {}),
            "execution_error": {"error": str(e), "failed_at": datetime.utcnow().isoformat()},
        }
        db.commit()
        return False


# ── Operations ───────────────────────────────────────────────────────────────

def get_request(db: Session, request_id: int) -> FleetChangeRequest:
    request = db.query(FleetChangeRequest).filter(FleetChangeRequest.id == request_id).first()
    if not request:
        raise FleetRequestNotFound(request_id)
    return request


def process_approval(db: Session, request_id: Union[int, str, None], action: Optional[str],
                     comments: Optional[str], approved_by: Optional[str]) -> dict:
    if not request_id or not action or not approved_by:
        raise InvalidRequestData("requestId, action e approvedBy são obrigatórios")
    try:
        request_id = int(request_id)
    except (TypeError, ValueError):
        raise InvalidRequestData(f"requestId inválido: {request_id}")
    if action not in ACTIONS:
        raise InvalidRequestData("action deve ser 'approve' ou 'reject'")

    request = get_request(db, request_id)
    if request.status not in {s.value for s in DECIDABLE}:
        raise InvalidRequestData("Solicitação não pode ser processada no status atual")

    new_status = ACTIONS[action]
    transition(request, new_status)
    request.payload = {
        **(request.payload or {}),
        "approval": {
            "action": action,
            "comments": comments,
            "approved_by": approved_by,
            "processed_at": datetime.utcnow().isoformat(),
        },
    }
    db.commit()
    logger.info(f"[FLEET] request {request_id} {new_status.value} by {approved_by}")

    if new_status is S.APROVADO:
        # The caller is told the approval succeeded either way
        _execute(db, request_id)

    return {
        "success": True,
        "message": f"Solicitação {'aprovada' if action == 'approve' else 'recusada'} com sucesso",
        "newStatus": new_status.value,
    }


def execute_approved(db: Session, request_id: int) -> FleetChangeRequest:
    """Operator retry for requests left at aprovado by a failed side effect."""
    request = get_request(db, request_id)
    if not can_transition(request.status, S.EXECUTADO):
        raise InvalidTransition(request.status, S.EXECUTADO.value)
    if not _execute(db, request_id):
        error = (get_request(db, request_id).payload or {}).get("execution_error", {})
        raise SideEffectError(error.get("error", "Falha ao executar a solicitação"))
    return get_request(db, request_id)


def generate_protocol_code() -> str:
    return f"SB-{datetime.utcnow().year}-{random.randint(0, 999999):06d}"


def _resolve_vehicle_id(db: Session, empresa_id: str, placa: Optional[str],
                        chassi: Optional[str]) -> Optional[int]:
    if not placa and not chassi:
        return None
    q = db.query(FleetVehicle).filter(FleetVehicle.empresa_id == empresa_id)
    if placa:
        q = q.filter(FleetVehicle.placa == placa)
    if chassi:
        q = q.filter(FleetVehicle.chassi == chassi)
    vehicle = q.first()
    return vehicle.id if vehicle else None


def create_request(db: Session, data: FleetRequestCreate) -> FleetChangeRequest:
    try:
        tipo = FleetRequestType(data.tipo)
    except ValueError:
        raise InvalidRequestData(f"Tipo de solicitação inválido: {data.tipo}")

    placa = data.placa.strip().upper() if data.placa else None
    chassi = data.chassi.strip().upper() if data.chassi else None

    payload = {
        "motivo": data.motivo,
        "solicitante": data.solicitante.model_dump() if data.solicitante else {},
        "protocol_code": generate_protocol_code(),
    }
    if tipo in (FleetRequestType.TIRAR_DO_SEGURO, FleetRequestType.COLOCAR_NO_SEGURO) and data.seguro:
        payload["seguro"] = data.seguro.model_dump()
    if tipo is FleetRequestType.MUDANCA_RESPONSAVEL and data.responsavel:
        payload["responsavel"] = data.responsavel.model_dump()

    now = datetime.utcnow()
    request = FleetChangeRequest(
        empresa_id=data.empresa_id,
        user_id=data.user_id,
        vehicle_id=_resolve_vehicle_id(db, data.empresa_id, placa, chassi),
        tipo=tipo.value,
        placa=placa,
        chassi=chassi,
        renavam=data.renavam or None,
        status=S.ABERTO.value,
        prioridade="normal",
        payload=payload,
        anexos=[a.model_dump() for a in data.anexos],
        created_at=now,
        updated_at=now,
    )
    db.add(request)
    db.commit()
    db.refresh(request)
    logger.info(f"[FLEET] request {request.id} ({tipo.value}) opened, protocol {payload['protocol_code']}")
    return request


def forward_to_triage(db: Session, request_id: int) -> dict:
    """Send the request to the N8N triage webhook and move it to em_triagem on success."""
    request = get_request(db, request_id)

    if not settings.TRIAGE_WEBHOOK_ENABLED:
        logger.info("[FLEET] triage webhook not configured, skipping")
        return {"success": True, "message": "Request processed (webhook not configured)"}

    body = {
        "request_id": request.id,
        "empresa_id": request.empresa_id,
        "user_id": request.user_id,
        "tipo": request.tipo,
        "identificacao": {"placa": request.placa, "chassi": request.chassi, "renavam": request.renavam},
        "payload": request.payload or {},
        "anexos": request.anexos or [],
        "created_at": request.created_at.isoformat() if request.created_at else None,
    }
    headers = {"Content-Type": "application/json"}
    if settings.N8N_FLEET_WEBHOOK_SECRET:
        headers["X-Webhook-Secret"] = settings.N8N_FLEET_WEBHOOK_SECRET

    try:
        resp = requests.post(settings.N8N_FLEET_WEBHOOK_URL, json=body, headers=headers,
                             timeout=settings.WEBHOOK_TIMEOUT_SECONDS)
    except requests.exceptions.RequestException as e:
        logger.error(f"[FLEET] triage webhook unreachable for request {request_id}: {e}")
        return {"success": False, "error": "Webhook call failed", "webhook_error": str(e)}
    logger.info(f"[FLEET] triage webhook for request {request_id} → HTTP {resp.status_code}")

    if not resp.ok:
        return {"success": False, "error": "Webhook call failed",
                "webhook_status": resp.status_code, "webhook_error": resp.text}

    if can_transition(request.status, S.EM_TRIAGEM):
        transition(request, S.EM_TRIAGEM)
        db.commit()
    else:
        logger.warning(f"[FLEET] request {request_id} is {request.status}, not moved to triage")
    return {"success": True, "message": "Request sent to N8N successfully",
            "webhook_status": resp.status_code}
