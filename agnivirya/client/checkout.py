"""
Cliente HTTP de la API de pagos, con el mismo flujo que sigue el navegador.
"""
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from ..models.order import Order, OrderStatus
from ..utils import now_utc, to_iso

logger = logging.getLogger(__name__)


class CheckoutError(Exception):
    """La API rechazó la creación de la orden o respondió algo inesperado."""


class CheckoutClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    async def create_order(
        self,
        email: str,
        amount: Optional[float] = None,
        currency: Optional[str] = None,
    ) -> Order:
        payload: Dict[str, Any] = {"email": email}
        if amount is not None:
            payload["amount"] = amount
        if currency:
            payload["currency"] = currency

        try:
            async with self._client() as client:
                resp = await client.post("/api/payment/create-order", json=payload)
        except httpx.HTTPError as e:
            raise CheckoutError(f"checkout: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if resp.status_code >= 400 or not body.get("success"):
            detail = body.get("detail") or body.get("message") or f"HTTP {resp.status_code}"
            raise CheckoutError(f"checkout rejected: {detail}")

        data = body.get("data") or {}
        try:
            order = Order(
                order_id=data["orderId"],
                cf_order_id=data.get("cfOrderId"),
                customer_email=email,
                amount=data.get("orderAmount") or amount or 0,
                currency=data.get("orderCurrency") or currency or "INR",
                payment_session_id=data.get("paymentSessionId"),
                checkout_url=data.get("checkoutUrl"),
                status=OrderStatus.PENDING,
                created_at=to_iso(now_utc()),
            )
        except (KeyError, ValidationError) as e:
            raise CheckoutError(f"unexpected checkout response: {e}") from e

        logger.info(f"🛒 Orden {order.order_id} creada para {email}")
        return order

    async def verify_payment(self, order_id: str) -> bool:
        """True solo si la API confirma el pago. Nunca lanza: cualquier error es "no pagado"."""
        try:
            async with self._client() as client:
                resp = await client.get(f"/api/payment/verify/{order_id}")
            if resp.status_code != 200:
                logger.debug(f"Verificación de {order_id}: HTTP {resp.status_code}")
                return False
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"⚠️ Error verificando {order_id}: {e}")
            return False

        data = body.get("data") if isinstance(body, dict) else None
        return bool(isinstance(data, dict) and data.get("isPaid") is True)

    async def payment_config(self) -> Dict[str, Any]:
        async with self._client() as client:
            resp = await client.get("/api/payment/config")
            resp.raise_for_status()
            return resp.json()
