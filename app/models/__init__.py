# Fleet import & approval — Database Models
# Import all models here for SQLAlchemy discovery

from app.models.fleet_vehicle import FleetVehicle                      # noqa
from app.models.fleet_responsible import FleetResponsible              # noqa
from app.models.import_job import ImportJob                            # noqa
from app.models.company_import_settings import CompanyImportSettings   # noqa
from app.models.field_source_audit import FieldSourceAudit             # noqa
from app.models.fleet_change_request import FleetChangeRequest         # noqa
