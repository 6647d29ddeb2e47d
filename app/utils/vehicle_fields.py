# app/utils/vehicle_fields.py
"""
Normalizers and shape checks for vehicle fields coming from spreadsheets.
Shared by the import reconciliation and the fleet intake.
"""

import re
import unicodedata
from datetime import date
from typing import Any, Optional

from app.config import settings

PLATE_PATTERNS = (
    re.compile(r"^[A-Z]{3}\d{4}$"),          # old format   ABC1234
    re.compile(r"^[A-Z]{3}\d[A-Z]\d{2}$"),   # Mercosul     ABC1D23
)
CHASSIS_LENGTH = 17
RENAVAM_DIGITS = (9, 11)
TEXT_LENGTH = (1, 120)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_BR_DATE = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})$")


def is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def strip_accents(value: str) -> str:
    return "".join(c for c in unicodedata.normalize("NFD", value) if unicodedata.category(c) != "Mn")


# ── Normalizers ──────────────────────────────────────────────────────────────

def upper_trim(value: Any) -> str:
    return str(value).upper().strip()


def digits_only(value: Any) -> str:
    return re.sub(r"\D", "", str(value))


def parse_year(value: Any) -> Optional[int]:
    """Leading integer of the value ("2020", "2020/2021", " 2019 "). None if there is none."""
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def trim(value: Any) -> str:
    return str(value).strip()


# ── Validators ───────────────────────────────────────────────────────────────

def valid_plate(value: Any) -> bool:
    return value is not None and any(p.match(str(value)) for p in PLATE_PATTERNS)


def valid_renavam(value: Any) -> bool:
    if value is None:
        return False
    low, high = RENAVAM_DIGITS
    return low <= len(digits_only(value)) <= high


def valid_chassis(value: Any) -> bool:
    return value is not None and len(str(value)) == CHASSIS_LENGTH


def valid_year(value: Any) -> bool:
    if not isinstance(value, int):
        return False
    return settings.IMPORT_MIN_YEAR <= value <= date.today().year + 1


def valid_text(value: Any) -> bool:
    if value is None:
        return False
    low, high = TEXT_LENGTH
    return low <= len(str(value)) <= high


# ── Intake-only normalizers ──────────────────────────────────────────────────

def normalize_category(family: Optional[str]) -> str:
    """Collapse a spreadsheet "família" into one of Moto / Caminhão / Carros."""
    cat = (family or "").lower().strip()
    if "moto" in cat or "bicicleta motor" in cat:
        return "Moto"
    if any(k in cat for k in ("caminhão", "caminhao", "rebocador", "reboque", "truck", "trator")):
        return "Caminhão"
    return "Carros"


def normalize_insurance_status(value: Optional[str]) -> str:
    if not value:
        return "sem_seguro"
    s = str(value).lower().strip()
    # "sem seguro" contains "segur" too
    if s in ("sem_seguro", "sem seguro"):
        return "sem_seguro"
    if "segur" in s:
        return "segurado"
    if "cota" in s:
        return "cotacao"
    return "sem_seguro"


def normalize_owner_type(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    t = strip_accents(str(value).lower().strip())
    if t in ("pj", "cnpj") or "juridica" in t:
        return "pj"
    if t in ("pf", "cpf") or "fisica" in t:
        return "pf"
    return None


def normalize_date(value: Any) -> Optional[date]:
    """ISO (YYYY-MM-DD...) or Brazilian (DD/MM/YYYY, DD-MM-YY) dates. Anything else is dropped."""
    if is_blank(value):
        return None
    if isinstance(value, date):
        return value
    v = str(value).strip()
    try:
        iso = _ISO_DATE.match(v)
        if iso:
            return date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
        br = _BR_DATE.match(v)
        if br:
            year = br.group(3)
            if len(year) == 2:
                year = f"20{year}"
            return date(int(year), int(br.group(2)), int(br.group(1)))
    except ValueError:
        return None
    return None


def brl_to_number(value: Any) -> Optional[float]:
    """'R$ 45.320,00' → 45320.0. Numbers pass through; anything unparseable is None."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = re.sub(r"[^\d,.-]", "", str(value)).replace(".", "").replace(",", ".")
    try:
        return float(cleaned)
    except ValueError:
        return None
