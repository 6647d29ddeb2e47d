# app/services/errors.py
"""Domain errors raised by services and translated to HTTP by the routers."""


class FleetRequestError(Exception):
    """Base error for the fleet change request workflow."""

    status_code = 500


class InvalidRequestData(FleetRequestError):
    status_code = 400


class FleetRequestNotFound(FleetRequestError):
    status_code = 404

    def __init__(self, request_id):
        self.request_id = request_id
        super().__init__("Solicitação não encontrada")


class InvalidTransition(FleetRequestError):
    status_code = 400

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Solicitação não pode passar de '{current}' para '{target}'")


class SideEffectError(FleetRequestError):
    """A fleet mutation routine could not be applied."""

    status_code = 500
