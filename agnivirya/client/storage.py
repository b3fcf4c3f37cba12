"""
Almacenamiento local del cliente (el equivalente al localStorage del navegador).

Guarda strings por clave; si se indica un archivo, todo el mapa se persiste
como un JSON plano.
"""
import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError

from ..models.order import Order

logger = logging.getLogger(__name__)

ORDER_KEY = "agnivirya-order"
PAYMENT_STATUS_KEY = "agnivirya-payment-status"
PAYMENT_VERIFIED_KEY = "agnivirya-payment-verified"


class LocalOrderStorage:
    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else None
        self._items: Dict[str, str] = {}
        if self.path is not None and self.path.exists():
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
                if isinstance(data, dict):
                    self._items = {str(k): str(v) for k, v in data.items()}
            except (OSError, ValueError) as e:
                logger.error(f"❌ No se pudo leer {self.path}: {e}")

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._items, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._flush()

    def save_order(self, order: Order) -> None:
        """Guarda la orden recién creada; reemplaza a la anterior y limpia sus flags de pago."""
        self._items.pop(PAYMENT_STATUS_KEY, None)
        self._items.pop(PAYMENT_VERIFIED_KEY, None)
        self.set_item(ORDER_KEY, order.model_dump_json(by_alias=True))

    def load_order(self) -> Optional[Order]:
        raw = self.get_item(ORDER_KEY)
        if not raw:
            return None
        try:
            return Order.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"❌ Orden guardada ilegible: {e}")
            return None

    def mark_paid(self) -> None:
        """Marca la orden guardada (si existe) y los flags de pago. Idempotente."""
        order = self.load_order()
        if order is not None:
            order.mark_paid()
            self._items[ORDER_KEY] = order.model_dump_json(by_alias=True)
        self._items[PAYMENT_STATUS_KEY] = "paid"
        self._items[PAYMENT_VERIFIED_KEY] = "true"
        self._flush()

    def is_paid(self) -> bool:
        return (
            self.get_item(PAYMENT_STATUS_KEY) == "paid"
            and self.get_item(PAYMENT_VERIFIED_KEY) == "true"
        )
