from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class CreateOrderInput(BaseModel):
    """Schema para crear una orden de pago en Cashfree"""
    # El email se valida en el router para responder 400 (no 422)
    email: Optional[str] = Field(None, description="Email del comprador")
    # Sin monto o con null se cobra el precio configurado del producto
    amount: Optional[float] = Field(None, gt=0, description="Monto de la orden (default PRODUCT_PRICE)")
    currency: Optional[str] = Field(None, description="Moneda (default PRODUCT_CURRENCY)")

    class Config:
        json_schema_extra = {
            "example": {
                "email": "reader@gmail.com",
                "amount": 99,
                "currency": "INR",
            }
        }


class OrderData(BaseModel):
    """Datos de la orden creada en Cashfree"""
    order_id: str = Field(..., description="ID propio de la orden")
    cf_order_id: Optional[str] = Field(None, description="ID de la orden en Cashfree")
    payment_session_id: Optional[str] = Field(None, description="Sesión de pago para el checkout")
    order_status: Optional[str] = None
    customer_details: Optional[Dict[str, Any]] = None
    order_amount: Optional[float] = None
    order_currency: Optional[str] = None
    checkout_url: Optional[str] = Field(None, description="URL del checkout hospedado de Cashfree")

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class CreateOrderResponse(BaseModel):
    success: bool = True
    message: str
    data: OrderData


class VerificationData(BaseModel):
    is_paid: bool
    order_data: Optional[Dict[str, Any]] = None
    message: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class VerifyPaymentResponse(BaseModel):
    success: bool = True
    message: str
    data: VerificationData


class ProductConfig(BaseModel):
    name: str
    price: float
    currency: str
    description: str
    pdf_file_name: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class PaymentConfigResponse(BaseModel):
    mode: str
    client_id_configured: bool
    product: ProductConfig
    return_url: str
    environment: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class CashfreeWebhook(BaseModel):
    """
    Payload de webhook de Cashfree. Solo se leen data.order.order_id y
    data.payment.payment_status; el resto se acepta tal cual.
    """
    type: Optional[str] = None
    event_time: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    class Config:
        extra = "allow"

    def order_id(self) -> Optional[str]:
        order = (self.data or {}).get("order")
        return order.get("order_id") if isinstance(order, dict) else None

    def payment_status(self) -> Optional[str]:
        payment = (self.data or {}).get("payment")
        return payment.get("payment_status") if isinstance(payment, dict) else None
