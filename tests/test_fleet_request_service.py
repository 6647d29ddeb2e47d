"""Unit tests for the fleet change request workflow."""

import pytest
from unittest.mock import MagicMock, patch
from app.models.fleet_responsible import FleetResponsible
from app.models.fleet_vehicle import FleetVehicle
from app.schemas.fleet_request import FleetRequestCreate
from app.services import fleet_request_service as service
from app.services.errors import FleetRequestNotFound, InvalidRequestData, InvalidTransition, SideEffectError


def approve(db, request_id, action="approve"):
    return service.process_approval(db, request_id, action, "ok", "admin@corp")


class TestApproval:
    def test_inclusion_creates_uninsured_vehicle_and_executes(self, db, make_request):
        request = make_request(tipo="inclusao_veiculo", placa="ABC1D23", chassi="9BWZZZ377VT004251")

        result = approve(db, request.id)

        assert result == {"success": True, "message": "Solicitação aprovada com sucesso", "newStatus": "aprovado"}
        vehicles = db.query(FleetVehicle).all()
        assert len(vehicles) == 1
        assert vehicles[0].status_seguro == "sem_seguro"
        assert vehicles[0].placa == "ABC1D23"
        db.refresh(request)
        assert request.status == "executado"
        assert request.vehicle_id == vehicles[0].id
        assert request.payload["approval"]["approved_by"] == "admin@corp"

    def test_reject_sets_recusado_without_side_effect(self, db, make_request):
        request = make_request(tipo="inclusao_veiculo", status="em_triagem", placa="ABC1234")

        with patch.object(service, "apply_side_effect") as side_effect:
            result = approve(db, request.id, action="reject")
            side_effect.assert_not_called()

        assert result["newStatus"] == "recusado"
        db.refresh(request)
        assert request.status == "recusado"
        assert request.payload["approval"]["action"] == "reject"
        assert db.query(FleetVehicle).count() == 0

    @pytest.mark.parametrize("status", ["aprovado", "recusado", "executado"])
    def test_non_pending_request_cannot_be_decided(self, db, make_request, status):
        request = make_request(status=status)

        with pytest.raises(InvalidRequestData):
            approve(db, request.id)

        db.refresh(request)
        assert request.status == status

    def test_missing_request_is_not_found(self, db):
        with pytest.raises(FleetRequestNotFound):
            approve(db, 999)

    def test_missing_fields_are_rejected(self, db):
        with pytest.raises(InvalidRequestData):
            service.process_approval(db, 1, "approve", None, None)

    def test_non_numeric_request_id_is_rejected(self, db):
        with pytest.raises(InvalidRequestData):
            service.process_approval(db, "3f2c6d1e-8b1a-4c2e-9d7f-0a1b2c3d4e5f", "approve", None, "admin")

    def test_numeric_string_request_id_is_accepted(self, db, make_request):
        request = make_request(tipo="documentacao")
        result = service.process_approval(db, str(request.id), "reject", None, "admin")
        assert result["newStatus"] == "recusado"

    def test_failed_side_effect_leaves_request_approved(self, db, make_request):
        # exclusion without vehicle_id cannot run
        request = make_request(tipo="exclusao_veiculo")

        result = approve(db, request.id)

        assert result["success"] is True
        db.refresh(request)
        assert request.status == "aprovado"
        assert "execution_error" in request.payload
        assert "approval" in request.payload

    def test_failed_side_effect_persists_no_partial_change(self, db, make_request, make_vehicle):
        vehicle = make_vehicle()
        request = make_request(tipo="exclusao_veiculo", vehicle_id=vehicle.id)

        # status_veiculo is already set when the note update blows up
        with patch.object(service, "_touch", side_effect=RuntimeError("db down")):
            approve(db, request.id)

        db.refresh(request)
        db.refresh(vehicle)
        assert request.status == "aprovado"
        assert request.payload["execution_error"]["error"] == "db down"
        assert vehicle.status_veiculo == "ativo"

    def test_responsible_change_requires_a_name(self, db, make_request, make_vehicle):
        vehicle = make_vehicle()
        db.add(FleetResponsible(veiculo_id=vehicle.id, nome="Maria"))
        db.commit()
        request = make_request(tipo="mudanca_responsavel", vehicle_id=vehicle.id,
                               payload={"responsavel": {"telefone": "71999990000"}})

        approve(db, request.id)

        db.refresh(request)
        assert request.status == "aprovado"
        assert [r.nome for r in db.query(FleetResponsible).all()] == ["Maria"]

    def test_unknown_type_is_a_noop(self, db, make_request):
        request = make_request(tipo="something_else")
        approve(db, request.id)
        db.refresh(request)
        assert request.status == "executado"


class TestSideEffects:
    def test_every_request_type_has_a_handler(self):
        assert set(service.SIDE_EFFECTS) == set(service.FleetRequestType)

    def test_exclusion_soft_deletes(self, db, make_request, make_vehicle):
        vehicle = make_vehicle()
        request = make_request(tipo="exclusao_veiculo", vehicle_id=vehicle.id)

        approve(db, request.id)

        db.refresh(vehicle)
        assert vehicle.status_veiculo == "inativo"
        assert db.query(FleetVehicle).count() == 1

    @pytest.mark.parametrize("tipo,expected", [
        ("tirar_do_seguro", "sem_seguro"),
        ("colocar_no_seguro", "segurado"),
    ])
    def test_insurance_toggle(self, db, make_request, make_vehicle, tipo, expected):
        vehicle = make_vehicle(status_seguro="cotacao")
        request = make_request(tipo=tipo, vehicle_id=vehicle.id)

        approve(db, request.id)

        db.refresh(vehicle)
        assert vehicle.status_seguro == expected

    def test_data_update_overwrites_only_given_fields(self, db, make_request, make_vehicle):
        vehicle = make_vehicle(placa="ABC1234", renavam="123456789")
        request = make_request(tipo="atualizacao_dados", vehicle_id=vehicle.id, placa="ABC1D23")

        approve(db, request.id)

        db.refresh(vehicle)
        assert vehicle.placa == "ABC1D23"
        assert vehicle.renavam == "123456789"

    def test_responsible_change_replaces_all_rows(self, db, make_request, make_vehicle):
        vehicle = make_vehicle()
        db.add_all([FleetResponsible(veiculo_id=vehicle.id, nome="Maria"),
                    FleetResponsible(veiculo_id=vehicle.id, nome="José")])
        db.commit()
        request = make_request(tipo="mudanca_responsavel", vehicle_id=vehicle.id,
                               payload={"responsavel": {"nome": "Ana", "telefone": "71988887777"}})

        approve(db, request.id)

        rows = db.query(FleetResponsible).filter(FleetResponsible.veiculo_id == vehicle.id).all()
        assert [(r.nome, r.telefone) for r in rows] == [("Ana", "71988887777")]

    def test_documentation_never_touches_fleet(self, db, make_request, make_vehicle):
        vehicle = make_vehicle(status_seguro="segurado")
        request = make_request(tipo="documentacao", vehicle_id=vehicle.id)

        approve(db, request.id)

        db.refresh(vehicle)
        db.refresh(request)
        assert vehicle.status_seguro == "segurado"
        assert vehicle.observacoes is None
        assert request.status == "executado"


class TestTransitions:
    def test_allowed_transitions(self):
        S = service.FleetRequestStatus
        assert service.can_transition("aberto", S.EM_TRIAGEM)
        assert service.can_transition("em_triagem", S.APROVADO)
        assert service.can_transition("aprovado", S.EXECUTADO)
        assert not service.can_transition("aberto", S.EXECUTADO)
        assert not service.can_transition("recusado", S.APROVADO)
        assert not service.can_transition("bogus", S.APROVADO)

    def test_execute_approved_retries_stuck_request(self, db, make_request, make_vehicle):
        request = make_request(tipo="colocar_no_seguro")
        approve(db, request.id)
        db.refresh(request)
        assert request.status == "aprovado"

        vehicle = make_vehicle()
        request.vehicle_id = vehicle.id
        db.commit()

        service.execute_approved(db, request.id)

        db.refresh(request)
        db.refresh(vehicle)
        assert request.status == "executado"
        assert vehicle.status_seguro == "segurado"
        assert "execution_error" not in request.payload

    def test_execute_approved_reports_failure(self, db, make_request):
        request = make_request(tipo="colocar_no_seguro", status="aprovado")
        with pytest.raises(SideEffectError):
            service.execute_approved(db, request.id)

    def test_execute_requires_approved_status(self, db, make_request):
        request = make_request(status="aberto")
        with pytest.raises(InvalidTransition):
            service.execute_approved(db, request.id)


class TestCreateAndTriage:
    def test_create_resolves_vehicle_and_builds_payload(self, db, make_vehicle):
        vehicle = make_vehicle(placa="ABC1234")
        data = FleetRequestCreate(
            empresa_id="emp-1", tipo="mudanca_responsavel", placa="abc1234", motivo="troca de motorista",
            responsavel={"nome": "Ana"}, seguro={"seguradora": "ignored"},
        )

        request = service.create_request(db, data)

        assert request.status == "aberto"
        assert request.prioridade == "normal"
        assert request.placa == "ABC1234"
        assert request.vehicle_id == vehicle.id
        assert request.payload["responsavel"]["nome"] == "Ana"
        assert "seguro" not in request.payload
        assert request.payload["protocol_code"].startswith("SB-")

    def test_create_rejects_unknown_type(self, db):
        with pytest.raises(InvalidRequestData):
            service.create_request(db, FleetRequestCreate(empresa_id="emp-1", tipo="nope"))

    def test_triage_without_webhook_is_a_noop(self, db, make_request):
        request = make_request()
        result = service.forward_to_triage(db, request.id)
        assert result["success"] is True
        db.refresh(request)
        assert request.status == "aberto"

    def test_triage_moves_request_on_success(self, db, make_request):
        request = make_request()
        resp = MagicMock(ok=True, status_code=200)

        with patch.object(service.settings, "N8N_FLEET_WEBHOOK_URL", "http://n8n.local/hook"), \
             patch.object(service.settings, "N8N_FLEET_WEBHOOK_SECRET", "s3cret"), \
             patch("app.services.fleet_request_service.requests.post", return_value=resp) as post:
            result = service.forward_to_triage(db, request.id)

        assert result["success"] is True
        assert post.call_args.kwargs["headers"]["X-Webhook-Secret"] == "s3cret"
        assert post.call_args.kwargs["json"]["tipo"] == "inclusao_veiculo"
        db.refresh(request)
        assert request.status == "em_triagem"

    def test_triage_failure_keeps_status(self, db, make_request):
        request = make_request()
        resp = MagicMock(ok=False, status_code=503, text="down")

        with patch.object(service.settings, "N8N_FLEET_WEBHOOK_URL", "http://n8n.local/hook"), \
             patch("app.services.fleet_request_service.requests.post", return_value=resp):
            result = service.forward_to_triage(db, request.id)

        assert result["success"] is False
        assert result["webhook_status"] == 503
        db.refresh(request)
        assert request.status == "aberto"
