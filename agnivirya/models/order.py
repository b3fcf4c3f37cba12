from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel


class OrderStatus(str, Enum):
    CREATED = "created"
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


# Estado que Cashfree reporta para una orden cobrada
GATEWAY_STATUS_PAID = "PAID"


class Order(BaseModel):
    """
    Orden tal como la guarda el cliente tras el checkout.
    Cashfree la conoce por dos IDs: el nuestro (order_id) y el suyo (cf_order_id).
    """
    order_id: str
    cf_order_id: Optional[str] = None
    customer_email: str
    amount: float
    currency: str = "INR"
    payment_session_id: Optional[str] = None
    checkout_url: Optional[str] = None
    status: OrderStatus = OrderStatus.CREATED
    payment_verified: bool = False
    created_at: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        use_enum_values = True

    @field_validator("cf_order_id", mode="before")
    @classmethod
    def _cf_order_id_as_str(cls, value):
        # Cashfree devuelve cf_order_id numérico
        return str(value) if value is not None else None

    def candidate_ids(self) -> List[str]:
        """IDs a consultar en orden: primero el propio, luego el de Cashfree."""
        ids = []
        for oid in (self.order_id, self.cf_order_id):
            if oid and oid not in ids:
                ids.append(str(oid))
        return ids

    def mark_paid(self) -> None:
        self.status = OrderStatus.PAID
        self.payment_verified = True
