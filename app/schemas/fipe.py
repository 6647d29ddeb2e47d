# app/schemas/fipe.py
from pydantic import BaseModel, Field
from typing import Literal, Optional


class FipeItem(BaseModel):
    id: int
    codigo_fipe: str
    categoria: Optional[str] = None
    ano_modelo: Optional[int] = None


class FipeFilter(BaseModel):
    onlyMissingPrice: bool = False


class FipeRefreshIn(BaseModel):
    mode: Literal["query", "list"] = "query"
    offset: int = Field(0, ge=0)
    limit: int = Field(200, ge=1, le=5000)
    only_missing_price: bool = False
    filters: Optional[FipeFilter] = Field(None, alias="filter")   # pipeline sends {"filter": {"onlyMissingPrice": true}}
    items: list[FipeItem] = Field(default_factory=list, alias="list")
    reference: Optional[int] = None
    concurrency: int = Field(5, ge=1, le=20)
    page_size: int = Field(50, ge=1)
    max_retries: int = Field(2, ge=0, le=5)
    delay_ms: int = Field(200, ge=0)
    dry_run: bool = False
    empresa_id: Optional[str] = None
    vehicle_ids: Optional[list[int]] = None

    @property
    def missing_price_only(self) -> bool:
        return self.only_missing_price or bool(self.filters and self.filters.onlyMissingPrice)

    class Config:
        populate_by_name = True
