import logging
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

# Cargar variables de entorno desde .env antes de leer la configuración
backend_dir = Path(__file__).parent.parent  # agnivirya/ -> raíz del backend
env_path = backend_dir / ".env"
loaded = load_dotenv(dotenv_path=env_path)

from .config import get_settings, clear_settings_cache  # noqa: E402
from .routers import downloads, pages, payments, visitors, webhooks  # noqa: E402
from .services.cashfree_service import CashfreeService  # noqa: E402
from .services.rate_limiter import RateLimiter  # noqa: E402
from .services.visitor_storage import new_storage  # noqa: E402
from .services.visitor_tracker import VisitorTracker, normalize_client_ip  # noqa: E402
from .utils import now_utc, to_iso  # noqa: E402

# Limpiar cache de settings para asegurar que se recarguen las variables
clear_settings_cache()
app_settings = get_settings()

# Configurar logging
logging.basicConfig(
    level=getattr(logging, app_settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

if loaded:
    logger.info(f"Variables de entorno cargadas desde: {env_path}")
else:
    logger.warning(f"No se pudo cargar archivo .env desde: {env_path}")

logger.info(f"🔧 CORS_ORIGIN configurado al iniciar: {app_settings.cors_origin}")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "X-DNS-Prefetch-Control": "off",
    "Cross-Origin-Opener-Policy": "same-origin",
}
HSTS_HEADER = "max-age=15552000; includeSubDomains"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info(f"🚀 Iniciando {settings.app_name} ({settings.environment}, {settings.platform})")

    app.state.cashfree_service = CashfreeService(
        client_id=settings.cashfree_client_id,
        client_secret=settings.cashfree_client_secret,
        mode=settings.cashfree_mode,
        api_version=settings.cashfree_api_version,
    )
    if app.state.cashfree_service.is_configured:
        logger.info(f"💳 Cashfree en modo {settings.cashfree_mode}")
    else:
        logger.warning("⚠️ Credenciales de Cashfree no configuradas: los pagos responderán 500")

    if settings.enable_rate_limiting:
        app.state.rate_limiter = RateLimiter(
            max_requests=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
        logger.info(
            f"⏱️ Rate limiting: {settings.rate_limit_requests} peticiones "
            f"cada {settings.rate_limit_window_seconds:.0f}s por IP"
        )
    else:
        app.state.rate_limiter = None

    tracker = VisitorTracker(
        storage=new_storage(settings),
        environment=settings.environment,
        platform=settings.platform,
        save_debounce_seconds=settings.visitor_save_debounce_seconds,
    )
    tracker.start_autosave(settings.visitor_autosave_seconds)
    app.state.visitor_tracker = tracker

    yield

    app.state.rate_limiter = None
    await tracker.aclose()
    logger.info("💾 Datos de visitantes guardados al apagar")


app = FastAPI(title="AgniVirya Backend", version="0.1.0", redirect_slashes=False, lifespan=lifespan)

# Configurar CORS
allowed_origins = [
    "http://localhost:3000",
    "http://localhost:5173",
]

cors_origin_env = os.getenv("CORS_ORIGIN", "")
cors_origin_configured = cors_origin_env and cors_origin_env != "http://localhost:3000"

if cors_origin_configured:
    # Permitir múltiples orígenes separados por coma
    for origin in (o.strip() for o in cors_origin_env.split(",")):
        if origin and origin not in allowed_origins:
            allowed_origins.append(origin)

# En producción sin CORS_ORIGIN explícito se permiten todos los orígenes
if app_settings.is_production and not cors_origin_configured:
    logger.warning("⚠️ CORS_ORIGIN no configurado en producción, permitiendo todos los orígenes")
    allowed_origins = ["*"]

logger.info(f"🌐 Orígenes CORS permitidos: {allowed_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    # El navegador rechaza credenciales con origen comodín
    allow_credentials="*" not in allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def track_page_visits(request: Request, call_next):
    """Registra como visita cada GET a una página del SPA (no /api ni archivos)."""
    tracker = getattr(request.app.state, "visitor_tracker", None)
    path = request.url.path
    if (
        tracker is not None
        and request.method == "GET"
        and get_settings().track_page_visits
        and not path.startswith("/api")
        and "." not in path.rsplit("/", 1)[-1]
    ):
        tracker.track_visit(request)
    return await call_next(request)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    if not get_settings().enable_request_logging:
        return await call_next(request)
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)")
    return response


@app.middleware("http")
async def rate_limit_api(request: Request, call_next):
    """Límite de peticiones por IP sobre /api (solo si está habilitado)."""
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None or not request.url.path.startswith("/api"):
        return await call_next(request)

    result = limiter.hit(normalize_client_ip(request))
    headers = {
        "RateLimit-Limit": str(result.limit),
        "RateLimit-Remaining": str(result.remaining),
        "RateLimit-Reset": str(result.retry_after),
    }
    if not result.allowed:
        headers["Retry-After"] = str(result.retry_after)
        return JSONResponse(
            status_code=429,
            content={
                "success": False,
                "error": "Too many requests from this IP, please try again later.",
            },
            headers=headers,
        )
    response = await call_next(request)
    response.headers.update(headers)
    return response


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    settings = get_settings()
    if settings.enable_security_headers:
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if settings.is_production:
            response.headers.setdefault("Strict-Transport-Security", HSTS_HEADER)
    return response


@app.get("/api/health", tags=["health"])
async def health():
    settings = get_settings()
    return {
        "status": "ok",
        "message": "Server is running",
        "mode": settings.cashfree_mode,
        "environment": settings.environment,
        "timestamp": to_iso(now_utc()),
    }


@app.get("/api/ping", tags=["health"])
async def ping():
    return {"pong": True, "time": time.time()}


@app.get("/api/config", tags=["config"])
async def public_config():
    """Configuración visible para el frontend. Nunca incluye secretos."""
    settings = get_settings()
    return {
        "mode": settings.cashfree_mode,
        "environment": settings.environment,
        "platform": settings.platform,
        "timestamp": to_iso(now_utc()),
        "features": {
            "payments": bool(settings.cashfree_client_id and settings.cashfree_client_secret),
            "visitorTracking": True,
            "pageVisitTracking": settings.track_page_visits,
            "requestLogging": settings.enable_request_logging,
            "rateLimiting": settings.enable_rate_limiting,
            "securityHeaders": settings.enable_security_headers,
            "visitorStorage": settings.visitor_storage,
        },
        "product": {
            "name": settings.product_name,
            "price": settings.product_price,
            "currency": settings.product_currency,
        },
    }


@app.get("/favicon.ico", tags=["static"])
async def favicon():
    return Response(status_code=204)


# Include routers
app.include_router(payments.router, prefix="/api/payment")
app.include_router(webhooks.router, prefix="/api/webhook")
app.include_router(visitors.router, prefix="/api")
app.include_router(downloads.router, prefix="/api")
# Siempre al final: captura el resto de rutas GET
app.include_router(pages.router)
