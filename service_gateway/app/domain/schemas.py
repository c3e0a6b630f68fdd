"""
Request payloads accepted by the Gateway.
"""

from typing import Optional

from pydantic import BaseModel


class Contact(BaseModel):
    name: str
    phone: str


class Stop(BaseModel):
    address: str
    contact: Contact


class DeliveryRequest(BaseModel):
    """Delivery creation payload, forwarded upstream as-is."""

    external_order_id: str
    pickup: Stop
    dropoff: Stop
    tip: Optional[float] = None
