from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

# Cabeceras que se guardan con cada visita
TRACKED_HEADERS = ("accept-language", "accept-encoding", "cache-control", "host", "origin")


class Visit(BaseModel):
    """
    Una petición registrada. Los timestamps son strings ISO-8601 (UTC, sufijo Z)
    para que el JSON persistido sea idéntico entre guardados.
    """
    ip: str
    timestamp: str
    path: str = "/"
    method: str = "GET"
    user_agent: str = "unknown"
    referer: str = "direct"
    headers: Dict[str, Optional[str]] = Field(default_factory=dict)
    environment: str = "development"
    platform: str = "local"

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class Visitor(BaseModel):
    """
    Visitante identificado por IP normalizada.
    Invariantes: total_visits == len(visits) y last_visit == timestamp de la última visita.
    """
    ip: str
    first_visit: str
    last_visit: str
    visits: List[Visit] = Field(default_factory=list)
    total_visits: int = 0

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    def add_visit(self, visit: Visit) -> None:
        self.visits.append(visit)
        self.last_visit = visit.timestamp
        self.total_visits = len(self.visits)


class VisitorStats(BaseModel):
    """Contadores globales que se persisten junto a los visitantes."""
    total_visits: int = 0
    unique_visitors: int = 0
    last_reset: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True
