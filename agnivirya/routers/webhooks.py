"""
Webhooks de Cashfree.

Se responde 200 siempre: si Cashfree recibe un error reintenta el envío, y el
estado real de la orden se confirma igualmente vía /api/payment/verify.
"""
import json
import logging

from fastapi import APIRouter, Request
from pydantic import ValidationError

from ..schemas.payment_schema import CashfreeWebhook

logger = logging.getLogger(__name__)
router = APIRouter(tags=["webhooks"])


@router.post("/cashfree")
async def cashfree_webhook(request: Request):
    # TODO: verificar x-webhook-signature (HMAC-SHA256 de timestamp + body con el client secret)
    body = await request.body()
    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        logger.warning(f"⚠️ Webhook de Cashfree con cuerpo no JSON ({len(body)} bytes)")
        return {"success": True, "message": "Webhook received"}

    logger.info(f"🔔 Webhook de Cashfree recibido: {payload}")

    if not isinstance(payload, dict):
        return {"success": True, "message": "Webhook received"}

    try:
        webhook = CashfreeWebhook.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"⚠️ Webhook de Cashfree con formato inesperado: {e}")
        return {"success": True, "message": "Webhook received"}

    response = {"success": True, "message": "Webhook received"}
    order_id = webhook.order_id()
    payment_status = webhook.payment_status()
    if order_id:
        response["orderId"] = order_id
    if payment_status:
        response["paymentStatus"] = payment_status
        logger.info(f"[Webhook] Orden {order_id}: {payment_status}")
    return response
