"""
Cliente HTTP para la API de órdenes de Cashfree (Payment Gateway).

Solo se usan dos operaciones: crear una orden (POST /orders) y consultarla
(GET /orders/{order_id}). Cualquier error del gateway o de red se convierte en
CashfreeError con el mensaje de Cashfree; el router lo traduce a un 500.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from ..models.order import GATEWAY_STATUS_PAID
from ..utils import generate_order_id, generate_phone_number, now_utc

logger = logging.getLogger(__name__)

CASHFREE_BASE_URLS = {
    "production": "https://api.cashfree.com/pg",
    "sandbox": "https://sandbox.cashfree.com/pg",
}
CHECKOUT_URL_TEMPLATE = "https://checkout.cashfree.com/pg/view/sessions/{session_id}"
ORDER_NOTE = "AgniVirya Ancient Modern Wellness eBook"


class CashfreeError(Exception):
    """Error al hablar con Cashfree (HTTP no exitoso, timeout o respuesta inválida)."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class CashfreeService:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        mode: str = "sandbox",
        api_version: str = "2023-08-01",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.mode = mode if mode in CASHFREE_BASE_URLS else "sandbox"
        self.api_version = api_version
        self.timeout = timeout
        # Los tests inyectan un httpx.MockTransport
        self._transport = transport

    @property
    def base_url(self) -> str:
        return CASHFREE_BASE_URLS[self.mode]

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _headers(self) -> Dict[str, str]:
        return {
            "x-client-id": self.client_id,
            "x-client-secret": self.client_secret,
            "x-api-version": self.api_version,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, json=json, headers=self._headers())
        except httpx.TimeoutException as e:
            logger.error(f"[Cashfree] Timeout en {method} {path}")
            raise CashfreeError("Cashfree request timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"[Cashfree] Error de red en {method} {path}: {e}")
            raise CashfreeError(f"Cashfree request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.status_code >= 400:
            message = None
            if isinstance(data, dict):
                message = data.get("message")
            message = message or response.text or f"HTTP {response.status_code}"
            logger.error(f"[Cashfree] {method} {path} -> {response.status_code}: {message}")
            raise CashfreeError(message, status_code=response.status_code, payload=data)

        if not isinstance(data, dict):
            raise CashfreeError("Invalid response from Cashfree", status_code=response.status_code)
        return data

    async def create_order(
        self,
        email: str,
        amount: float,
        currency: str = "INR",
        return_url: Optional[str] = None,
        notify_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Crea una orden en Cashfree para el email dado.

        Cashfree exige nombre y teléfono del cliente: el nombre sale del email
        (lo que va antes de la @) y el teléfono es un número aleatorio de 10 dígitos.
        """
        order_id = generate_order_id()
        order_meta: Dict[str, str] = {}
        if return_url:
            order_meta["return_url"] = return_url
        if notify_url:
            order_meta["notify_url"] = notify_url

        request_data = {
            "order_amount": amount,
            "order_currency": currency or "INR",
            "order_id": order_id,
            "customer_details": {
                "customer_id": f"customer_{int(now_utc().timestamp() * 1000)}",
                "customer_name": email.split("@")[0],
                "customer_email": email,
                "customer_phone": generate_phone_number(),
            },
            "order_meta": order_meta,
            "order_note": ORDER_NOTE,
        }

        logger.info(f"🔧 Creando orden Cashfree {order_id} para {email} ({amount} {currency})")
        data = await self._request("POST", "/orders", json=request_data)
        logger.info(f"✅ Orden Cashfree creada: {data.get('order_id')} ({data.get('order_status')})")

        session_id = data.get("payment_session_id")
        cf_order_id = data.get("cf_order_id")
        return {
            "orderId": data.get("order_id", order_id),
            "cfOrderId": str(cf_order_id) if cf_order_id is not None else None,
            "paymentSessionId": session_id,
            "orderStatus": data.get("order_status"),
            "customerDetails": data.get("customer_details"),
            "orderAmount": data.get("order_amount"),
            "orderCurrency": data.get("order_currency"),
            "checkoutUrl": CHECKOUT_URL_TEMPLATE.format(session_id=session_id) if session_id else None,
        }

    async def fetch_order(self, order_id: str) -> Dict[str, Any]:
        data = await self._request("GET", f"/orders/{order_id}")
        logger.debug(f"[Cashfree] Orden {order_id}: {data.get('order_status')}")
        return data

    async def verify_payment(self, order_id: str) -> Dict[str, Any]:
        """
        Consulta la orden en Cashfree en cada llamada (un "no pagado" nunca se cachea).
        Pagada solo si order_status == PAID.
        """
        order_data = await self.fetch_order(order_id)
        is_paid = order_data.get("order_status") == GATEWAY_STATUS_PAID
        if is_paid:
            logger.info(f"💰 Pago verificado para la orden {order_id}")
        return {
            "isPaid": is_paid,
            "orderData": order_data,
            "message": "Payment verified successfully" if is_paid else "Payment not completed",
        }
