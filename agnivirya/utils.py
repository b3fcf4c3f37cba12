import random
import string
import time
from datetime import datetime, timezone
from typing import Optional

from pydantic.networks import validate_email


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """ISO-8601 en UTC con sufijo Z, el mismo formato que guarda el frontend."""
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """
    Parsea un timestamp ISO-8601 (acepta el sufijo Z).
    Los valores sin zona horaria se interpretan como UTC.
    """
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def random_suffix(length: int = 9) -> str:
    chars = string.ascii_lowercase + string.digits
    return "".join(random.choice(chars) for _ in range(length))


def generate_order_id() -> str:
    """
    Genera un ID de orden único para Cashfree.
    Formato: order_<ms>_<9 caracteres aleatorios>
    """
    return f"order_{int(time.time() * 1000)}_{random_suffix()}"


def generate_phone_number() -> str:
    # Cashfree exige un teléfono de 10 dígitos; el checkout solo pide email
    return str(random.randint(1_000_000_000, 9_999_999_999))


def is_valid_email(email: Optional[str]) -> bool:
    if not email or not email.strip():
        return False
    try:
        validate_email(email.strip())
    except ValueError:
        return False
    return True
