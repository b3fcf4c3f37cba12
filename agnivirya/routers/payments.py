"""
Router para gestionar pagos con Cashfree (checkout hospedado)
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..config import get_settings
from ..schemas.payment_schema import (
    CreateOrderInput,
    CreateOrderResponse,
    PaymentConfigResponse,
    VerifyPaymentResponse,
)
from ..services.cashfree_service import CashfreeError, CashfreeService
from ..utils import is_valid_email

logger = logging.getLogger(__name__)
router = APIRouter(tags=["payments"])


def get_cashfree_service(request: Request) -> CashfreeService:
    """
    Retorna el servicio de Cashfree creado al arrancar la app.
    Sin credenciales no se puede operar: 500.
    """
    service = getattr(request.app.state, "cashfree_service", None)
    if service is None or not service.is_configured:
        logger.error("❌ CASHFREE_CLIENT_ID / CASHFREE_CLIENT_SECRET no configurados")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Payment system not configured",
        )
    return service


def build_return_url(request: Request) -> str:
    settings = get_settings()
    if settings.return_url:
        return settings.return_url
    # Cashfree reemplaza {order_id} al redirigir
    return f"{str(request.base_url).rstrip('/')}/download?order_id={{order_id}}"


def build_notify_url(request: Request):
    settings = get_settings()
    if settings.cashfree_webhook_url:
        return settings.cashfree_webhook_url
    base_url = str(request.base_url).rstrip("/")
    # Cashfree solo acepta notify_url https
    if base_url.startswith("https://"):
        return f"{base_url}/api/webhook/cashfree"
    return None


@router.post("/create-order", response_model=CreateOrderResponse, response_model_by_alias=True)
async def create_order(
    order_input: CreateOrderInput,
    request: Request,
    cashfree: CashfreeService = Depends(get_cashfree_service),
):
    """
    Crea una orden en Cashfree y devuelve la sesión de pago y la URL del checkout.

    Args:
        order_input: email, monto y moneda (por defecto los del producto configurado)

    Returns:
        CreateOrderResponse con orderId, cfOrderId, paymentSessionId y checkoutUrl
    """
    email = (order_input.email or "").strip()
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email is required")
    if not is_valid_email(email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email address")

    settings = get_settings()
    amount = order_input.amount if order_input.amount is not None else settings.product_price
    currency = order_input.currency or settings.product_currency

    try:
        order = await cashfree.create_order(
            email=email,
            amount=amount,
            currency=currency,
            return_url=build_return_url(request),
            notify_url=build_notify_url(request),
        )
    except CashfreeError as e:
        logger.error(f"❌ Error al crear la orden de pago: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create payment order: {e.message}",
        )

    return {"success": True, "message": "Order created successfully", "data": order}


@router.get("/verify/{order_id}", response_model=VerifyPaymentResponse, response_model_by_alias=True)
async def verify_payment(
    order_id: str,
    cashfree: CashfreeService = Depends(get_cashfree_service),
):
    """
    Consulta el estado de la orden en Cashfree. Se consulta siempre al gateway:
    un resultado "no pagado" puede cambiar en el siguiente poll.
    """
    order_id = order_id.strip()
    if not order_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Order ID is required")

    try:
        result = await cashfree.verify_payment(order_id)
    except CashfreeError as e:
        logger.error(f"❌ Error al verificar el pago de {order_id}: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to verify payment: {e.message}",
        )

    return {"success": True, "message": "Payment verification completed", "data": result}


@router.get("/config", response_model=PaymentConfigResponse, response_model_by_alias=True)
async def payment_config(request: Request):
    """Datos del producto y del checkout que necesita el frontend (sin secretos)."""
    settings = get_settings()
    return {
        "mode": settings.cashfree_mode,
        "client_id_configured": bool(settings.cashfree_client_id),
        "product": {
            "name": settings.product_name,
            "price": settings.product_price,
            "currency": settings.product_currency,
            "description": settings.product_description,
            "pdf_file_name": settings.product_pdf_filename,
        },
        "return_url": build_return_url(request),
        "environment": settings.environment,
    }
