import os
from pathlib import Path

# Raíz del backend (agnivirya/ -> raíz del repo)
BASE_DIR = Path(__file__).resolve().parent.parent


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


class Settings:
    """Configuración de la aplicación que lee variables de entorno dinámicamente."""

    @property
    def app_name(self) -> str:
        return "AgniVirya Backend"

    @property
    def environment(self) -> str:
        env = os.getenv("ENV", os.getenv("NODE_ENV", "")).lower()
        if env == "production" or env == "prod":
            return "production"
        return "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_serverless(self) -> bool:
        # Vercel marca sus funciones con VERCEL=1
        return os.getenv("VERCEL", "") == "1" or os.getenv("VERCEL_DEPLOYMENT", "") == "true"

    @property
    def platform(self) -> str:
        return "serverless" if self.is_serverless else "local"

    @property
    def cors_origin(self) -> str:
        return os.getenv("CORS_ORIGIN", "http://localhost:3000")

    @property
    def log_level(self) -> str:
        default = "INFO" if self.is_production else "DEBUG"
        return os.getenv("LOG_LEVEL", default).upper()

    @property
    def enable_request_logging(self) -> bool:
        return _env_flag("ENABLE_REQUEST_LOGGING", True)

    # --- Cashfree ---

    @property
    def cashfree_mode(self) -> str:
        mode = os.getenv("CASHFREE_MODE", "").lower()
        if mode in ("production", "sandbox"):
            return mode
        return "production" if self.is_production else "sandbox"

    @property
    def cashfree_client_id(self) -> str:
        return os.getenv("CASHFREE_CLIENT_ID", "")

    @property
    def cashfree_client_secret(self) -> str:
        return os.getenv("CASHFREE_CLIENT_SECRET", "")

    @property
    def cashfree_api_version(self) -> str:
        return os.getenv("CASHFREE_API_VERSION", "2023-08-01")

    @property
    def cashfree_webhook_url(self) -> str:
        return os.getenv("CASHFREE_WEBHOOK_URL", "")

    @property
    def return_url(self) -> str:
        return os.getenv("RETURN_URL", "")

    # --- Producto ---

    @property
    def product_name(self) -> str:
        return os.getenv("PRODUCT_NAME", "AgniVirya - Complete Ancient Modern Wellness Guide")

    @property
    def product_price(self) -> float:
        try:
            return float(os.getenv("PRODUCT_PRICE", "99"))
        except ValueError:
            return 99.0

    @property
    def product_currency(self) -> str:
        return os.getenv("PRODUCT_CURRENCY", "INR")

    @property
    def product_description(self) -> str:
        return os.getenv(
            "PRODUCT_DESCRIPTION",
            "Complete wellness guide with ancient and modern wellness practices",
        )

    @property
    def product_pdf_filename(self) -> str:
        return os.getenv("PRODUCT_PDF_FILENAME", "agnivirya-complete-wellness-guide-2025.pdf")

    @property
    def assets_dir(self) -> Path:
        return Path(os.getenv("ASSETS_DIR", str(BASE_DIR / "assets")))

    # --- Visitantes ---

    @property
    def visitor_storage(self) -> str:
        storage = os.getenv("VISITOR_STORAGE", "").lower()
        if storage in ("file", "memory"):
            return storage
        # En serverless el disco es efímero: solo memoria
        return "memory" if self.is_serverless else "file"

    @property
    def visitor_data_file(self) -> Path:
        return Path(os.getenv("VISITOR_DATA_FILE", str(BASE_DIR / "data" / "visitors.json")))

    @property
    def visitor_autosave_seconds(self) -> float:
        try:
            return float(os.getenv("VISITOR_AUTOSAVE_SECONDS", "300"))
        except ValueError:
            return 300.0

    @property
    def track_page_visits(self) -> bool:
        return _env_flag("TRACK_PAGE_VISITS", True)

    @property
    def visitor_admin_token(self) -> str:
        # Sin token configurado el reinicio de visitantes queda deshabilitado
        return os.getenv("VISITOR_ADMIN_TOKEN", "")

    @property
    def visitor_save_debounce_seconds(self) -> float:
        try:
            return float(os.getenv("VISITOR_SAVE_DEBOUNCE_SECONDS", "1"))
        except ValueError:
            return 1.0

    # --- Seguridad ---

    @property
    def enable_rate_limiting(self) -> bool:
        # Por defecto solo en producción
        return _env_flag("ENABLE_RATE_LIMITING", self.is_production)

    @property
    def rate_limit_requests(self) -> int:
        try:
            return int(os.getenv("API_RATE_LIMIT", "100"))
        except ValueError:
            return 100

    @property
    def rate_limit_window_seconds(self) -> float:
        try:
            return float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "900"))
        except ValueError:
            return 900.0

    @property
    def enable_security_headers(self) -> bool:
        return _env_flag("ENABLE_SECURITY_HEADERS", True)


# Instancia singleton de Settings (sin cache, lee valores dinámicamente)
_settings_instance = None


def get_settings() -> Settings:
    """Retorna la instancia de Settings. Lee variables de entorno dinámicamente."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


def clear_settings_cache():
    """Limpia la instancia de settings (aunque no es necesario con propiedades dinámicas)."""
    global _settings_instance
    _settings_instance = None
