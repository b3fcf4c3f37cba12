from typing import Any, Dict, List

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class VisitResult(BaseModel):
    """Resultado de registrar una visita"""
    ip: str = Field(..., description="IP normalizada (o ID sintético) del visitante")
    is_new_visitor: bool = Field(..., description="True si es la primera visita registrada de esta IP")
    visit_count: int = Field(..., description="Visitas acumuladas de este visitante")
    total_unique_visitors: int = Field(..., description="Visitantes únicos totales")
    total_visits: int = Field(..., description="Visitas totales")
    environment: str
    platform: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class VisitorSummary(BaseModel):
    ip: str
    first_visit: str
    last_visit: str
    total_visits: int
    recent_visits: List[Dict[str, Any]]

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class Pagination(BaseModel):
    limit: int
    offset: int
    total: int
    has_more: bool

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class VisitorPage(BaseModel):
    visitors: List[VisitorSummary]
    pagination: Pagination

