"""
Endpoints del contador de visitantes.
Todas las respuestas usan el sobre {"success": true, "data": ...}.
"""
import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from ..config import get_settings
from ..services.visitor_tracker import VisitorTracker

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/visitors", tags=["visitors"])


def get_visitor_tracker(request: Request) -> VisitorTracker:
    tracker = getattr(request.app.state, "visitor_tracker", None)
    if tracker is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Visitor tracking not initialized",
        )
    return tracker


@router.get("/status")
async def visitor_status(tracker: VisitorTracker = Depends(get_visitor_tracker)):
    return {"success": True, "data": tracker.get_status()}


@router.get("/track")
@router.post("/track")
async def track_visit(
    request: Request,
    path: Optional[str] = None,
    tracker: VisitorTracker = Depends(get_visitor_tracker),
):
    """
    Registra una visita explícita del frontend.
    `path` permite indicar la página visitada (por defecto, la ruta del request).
    """
    result = tracker.track_visit(request, path=path)
    return {"success": True, "data": result.model_dump(by_alias=True)}


@router.get("/count")
async def visitor_count(tracker: VisitorTracker = Depends(get_visitor_tracker)):
    return {"success": True, "data": tracker.get_count()}


@router.get("/stats")
async def visitor_stats(tracker: VisitorTracker = Depends(get_visitor_tracker)):
    return {"success": True, "data": tracker.get_stats()}


@router.get("/list")
async def list_visitors(
    limit: int = 50,
    offset: int = 0,
    tracker: VisitorTracker = Depends(get_visitor_tracker),
):
    """Visitantes ordenados por última visita (más reciente primero), paginados."""
    if limit < 0 or offset < 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="limit and offset must be non-negative",
        )
    page = tracker.get_visitors(limit=limit, offset=offset)
    return {"success": True, "data": page.model_dump(by_alias=True)}


@router.get("/data-file")
async def visitor_data_file(tracker: VisitorTracker = Depends(get_visitor_tracker)):
    return {"success": True, "data": tracker.get_data_file_info()}


def require_admin_token(x_admin_token: Optional[str] = Header(None)) -> None:
    """
    Protege las operaciones destructivas con VISITOR_ADMIN_TOKEN.
    Sin token configurado la operación queda deshabilitada (403).
    """
    expected = get_settings().visitor_admin_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Visitor reset is disabled",
        )
    if not x_admin_token or not secrets.compare_digest(x_admin_token.encode(), expected.encode()):
        logger.warning("⚠️ Reinicio de visitantes rechazado: token inválido")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token",
        )


@router.post("/reset", dependencies=[Depends(require_admin_token)])
async def reset_visitors(tracker: VisitorTracker = Depends(get_visitor_tracker)):
    logger.warning("⚠️ Reinicio de datos de visitantes solicitado")
    tracker.reset_data()
    return {
        "success": True,
        "message": "Visitor data reset",
        "data": {"lastReset": tracker.stats.last_reset},
    }
