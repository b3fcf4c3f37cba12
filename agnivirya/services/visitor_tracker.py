"""
Contador de visitantes por IP.

El tracker mantiene en memoria un mapa IP -> Visitor con todas sus visitas y
unos contadores globales. Las agregaciones (hoy / últimas 24h / total) se
recalculan en cada lectura recorriendo todas las visitas.

La persistencia se delega a una VisitorStorage inyectada. Cada cambio marca
los datos como modificados y, pasado un breve debounce, se arma un único
snapshot en el event loop; la escritura a disco corre en un thread aparte, de
modo que ninguna petición espera al disco.
"""
import asyncio
import ipaddress
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from ..models.visitor import TRACKED_HEADERS, Visit, Visitor, VisitorStats
from ..schemas.visitor_schema import Pagination, VisitorPage, VisitorSummary, VisitResult
from ..utils import now_utc, parse_iso, random_suffix, to_iso
from .visitor_storage import VisitorStorage

logger = logging.getLogger(__name__)

# Orden de prioridad de cabeceras de proxy
CLIENT_IP_HEADERS = (
    "x-forwarded-for",
    "x-real-ip",
    "x-client-ip",
    "cf-connecting-ip",  # Cloudflare
    "x-forwarded",
)

RECENT_VISITS_LIMIT = 5
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def synthetic_visitor_id() -> str:
    return f"local_{int(time.time() * 1000)}_{random_suffix()}"


def _is_unresolvable(ip: str) -> bool:
    if not ip or ip.lower() in ("unknown", "localhost"):
        return True
    try:
        return ipaddress.ip_address(ip).is_loopback
    except ValueError:
        return False


def normalize_client_ip(request) -> str:
    """
    Obtiene la IP del cliente a partir de la petición.

    - Primera IP de X-Forwarded-For, luego el resto de cabeceras de proxy,
      luego la dirección de la conexión.
    - Quita el prefijo IPv6 ::ffff: de las IPv4 mapeadas.
    - Loopback o IP desconocida -> ID sintético nuevo en cada llamada, así el
      tráfico local no se acumula en un único visitante (sobrecuenta a propósito).
    """
    raw = None
    for header in CLIENT_IP_HEADERS:
        value = request.headers.get(header)
        if value and value.strip():
            raw = value
            break
    if raw is None and request.client is not None:
        raw = request.client.host

    ip = (raw or "").split(",")[0].strip()
    if ip.lower().startswith("::ffff:"):
        ip = ip[7:]

    if _is_unresolvable(ip):
        return synthetic_visitor_id()
    return ip


class VisitorTracker:
    def __init__(
        self,
        storage: VisitorStorage,
        environment: str = "development",
        platform: str = "local",
        clock: Callable[[], datetime] = now_utc,
        save_debounce_seconds: float = 1.0,
    ):
        self.storage = storage
        self.environment = environment
        self.platform = platform
        self._clock = clock
        self.visitors: Dict[str, Visitor] = {}
        self.stats = VisitorStats(last_reset=to_iso(clock()))
        # Un solo worker: los guardados se escriben en el orden en que se piden
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="visitor-save")
        self._pending_saves = set()
        # Las visitas de una ráfaga se agrupan en un único snapshot
        self.save_debounce_seconds = save_debounce_seconds
        self._dirty = False
        self._save_handle: Optional[asyncio.TimerHandle] = None
        self._autosave_task: Optional[asyncio.Task] = None
        self.load()

    # ----------------------------
    # Persistencia
    # ----------------------------
    def load(self) -> None:
        data = self.storage.load()
        if data is None:
            if self.storage.persistent:
                self.save()
            return

        try:
            visitors: Dict[str, Visitor] = {}
            for ip, record in data.get("visitors") or []:
                visitor = Visitor.model_validate(record)
                visitor.total_visits = len(visitor.visits)
                visitors[ip] = visitor
            stats_data = data.get("stats")
            stats = (
                VisitorStats.model_validate(stats_data)
                if stats_data
                else VisitorStats(last_reset=to_iso(self._clock()))
            )
        except (TypeError, ValueError) as e:
            logger.error(f"❌ Datos de visitantes corruptos, se arranca vacío: {e}")
            return

        stats.unique_visitors = len(visitors)
        self.visitors = visitors
        self.stats = stats
        logger.info(f"📊 {len(self.visitors)} visitantes cargados desde {self.storage.name}")

    def snapshot(self) -> Dict[str, Any]:
        return {
            "visitors": [
                [ip, visitor.model_dump(by_alias=True, mode="json")]
                for ip, visitor in self.visitors.items()
            ],
            "stats": self.stats.model_dump(by_alias=True, mode="json"),
            "lastUpdated": to_iso(self._clock()),
        }

    def save(self) -> bool:
        """Guardado síncrono (arranque, tests, scripts)."""
        return self.storage.save(self.snapshot())

    def schedule_save(self) -> None:
        """
        Guardado fire-and-forget: marca los datos como modificados y programa
        un único snapshot tras `save_debounce_seconds`. No bloquea la petición.
        """
        if not self.storage.persistent:
            return
        self._dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._save_now()
            return
        if self._save_handle is None:
            self._save_handle = loop.call_later(self.save_debounce_seconds, self._save_now)

    def _save_now(self) -> None:
        self._save_handle = None
        if not self._dirty:
            return
        self._dirty = False
        snapshot = self.snapshot()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.storage.save(snapshot)
            return
        future = loop.run_in_executor(self._executor, self.storage.save, snapshot)
        self._pending_saves.add(future)
        future.add_done_callback(self._pending_saves.discard)

    async def flush(self) -> None:
        """Adelanta el guardado pendiente y espera a que terminen las escrituras."""
        if self._save_handle is not None:
            self._save_handle.cancel()
            self._save_handle = None
        self._save_now()
        if self._pending_saves:
            await asyncio.gather(*list(self._pending_saves), return_exceptions=True)

    def start_autosave(self, interval_seconds: float) -> None:
        if not self.storage.persistent or interval_seconds <= 0:
            return
        if self._autosave_task is None or self._autosave_task.done():
            self._autosave_task = asyncio.get_running_loop().create_task(
                self._autosave_loop(interval_seconds)
            )

    async def _autosave_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self.schedule_save()

    async def aclose(self) -> None:
        """Detiene el autosave y hace un último guardado."""
        if self._autosave_task is not None:
            self._autosave_task.cancel()
            try:
                await self._autosave_task
            except asyncio.CancelledError:
                pass
            self._autosave_task = None
        if self.storage.persistent:
            self._dirty = True
        await self.flush()
        self._executor.shutdown(wait=True)

    # ----------------------------
    # Registro
    # ----------------------------
    def track_visit(self, request, path: Optional[str] = None) -> VisitResult:
        ip = normalize_client_ip(request)
        timestamp = to_iso(self._clock())
        headers = request.headers

        visit = Visit(
            ip=ip,
            timestamp=timestamp,
            path=path or request.url.path,
            method=request.method,
            user_agent=headers.get("user-agent") or "unknown",
            referer=headers.get("referer") or "direct",
            headers={name: headers.get(name) for name in TRACKED_HEADERS},
            environment=self.environment,
            platform=self.platform,
        )

        visitor = self.visitors.get(ip)
        is_new = visitor is None
        if is_new:
            visitor = Visitor(ip=ip, first_visit=timestamp, last_visit=timestamp)
            self.visitors[ip] = visitor
        visitor.add_visit(visit)

        self.stats.unique_visitors = len(self.visitors)
        self.stats.total_visits += 1

        if is_new:
            logger.info(f"🆕 Nuevo visitante: {ip} (únicos: {self.stats.unique_visitors})")
        else:
            logger.debug(f"🔄 Visitante recurrente: {ip} (visita #{visitor.total_visits})")

        self.schedule_save()

        return VisitResult(
            ip=ip,
            is_new_visitor=visitor.total_visits == 1,
            visit_count=visitor.total_visits,
            total_unique_visitors=self.stats.unique_visitors,
            total_visits=self.stats.total_visits,
            environment=self.environment,
            platform=self.platform,
        )

    # ----------------------------
    # Consultas
    # ----------------------------
    def _window_counts(self, since: datetime) -> Dict[str, int]:
        visits = 0
        unique = 0
        for visitor in self.visitors.values():
            matched = 0
            for visit in visitor.visits:
                ts = parse_iso(visit.timestamp)
                if ts is not None and ts >= since:
                    matched += 1
            if matched:
                visits += matched
                unique += 1
        return {"visits": visits, "uniqueVisitors": unique}

    def _local_midnight(self, now: datetime) -> datetime:
        return now.astimezone().replace(hour=0, minute=0, second=0, microsecond=0)

    def get_stats(self) -> Dict[str, Any]:
        now = self._clock()
        return {
            "overall": {
                "totalVisits": self.stats.total_visits,
                "uniqueVisitors": self.stats.unique_visitors,
                "lastReset": self.stats.last_reset,
            },
            "today": self._window_counts(self._local_midnight(now)),
            "last24Hours": self._window_counts(now - timedelta(hours=24)),
            "lastUpdated": to_iso(now),
        }

    def get_count(self) -> Dict[str, Any]:
        today = self._window_counts(self._local_midnight(self._clock()))
        return {
            "totalVisits": self.stats.total_visits,
            "uniqueVisitors": self.stats.unique_visitors,
            "todayVisits": today["visits"],
            "todayUniqueVisitors": today["uniqueVisitors"],
        }

    def get_visitors(self, limit: int = 50, offset: int = 0) -> VisitorPage:
        limit = max(0, limit)
        offset = max(0, offset)
        ordered = sorted(
            self.visitors.values(),
            key=lambda v: parse_iso(v.last_visit) or EPOCH,
            reverse=True,
        )
        total = len(ordered)
        page = [
            VisitorSummary(
                ip=visitor.ip,
                first_visit=visitor.first_visit,
                last_visit=visitor.last_visit,
                total_visits=visitor.total_visits,
                recent_visits=[
                    visit.model_dump(by_alias=True, mode="json")
                    for visit in visitor.visits[-RECENT_VISITS_LIMIT:]
                ],
            )
            for visitor in ordered[offset:offset + limit]
        ]
        return VisitorPage(
            visitors=page,
            pagination=Pagination(
                limit=limit,
                offset=offset,
                total=total,
                has_more=offset + limit < total,
            ),
        )

    def reset_data(self) -> None:
        self.visitors.clear()
        self.stats = VisitorStats(last_reset=to_iso(self._clock()))
        self.storage.reset()
        self.schedule_save()
        logger.info("🔄 Datos de visitantes reiniciados")

    def get_status(self) -> Dict[str, Any]:
        return {
            "enabled": True,
            "storage": self.storage.name,
            "persistent": self.storage.persistent,
            "visitorsTracked": len(self.visitors),
            "totalVisits": self.stats.total_visits,
            "lastReset": self.stats.last_reset,
            "environment": self.environment,
            "platform": self.platform,
        }

    def get_data_file_info(self) -> Dict[str, Any]:
        info = self.storage.describe()
        info["visitorsInMemory"] = len(self.visitors)
        return info
