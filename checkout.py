"""
WhatsApp checkout.

An order is composed from the product, the chosen size, the customer's
session details and the payment choice. The composed order is saved on a
best-effort basis; the WhatsApp message is what actually reaches the
merchant, so it is always produced even when saving fails.
"""
import logging
import re
from datetime import datetime
from typing import Callable, Dict, Optional
from urllib.parse import quote

from pydantic import BaseModel
from pymongo.errors import PyMongoError

import config
import database
from orders import new_order
from schemas import PHONE_PATTERN, CustomerDetails, Order, Product

logger = logging.getLogger(__name__)

PAYMENT_LABELS = {
    "cash": "Cash on Delivery",
    "online": "Online Payment",
}

MESSAGE_TEMPLATE = """New Order from {store}!
-------------------------
Product ID: {product_id}
Product: {product_name}
Size: {size}
Price: ₹{price}
Payment Method: {payment_label}
-------------------------
Customer Details:
Name: {name}
Phone: {phone}
Address: {address}"""

# characters left unescaped in a URI component
URI_COMPONENT_SAFE = "-_.!~*'()"

_phone_re = re.compile(PHONE_PATTERN)
PHONE_ERROR = "Please enter a valid phone number (e.g., +919876543210)."


class OrderComposition(BaseModel):
    order: Optional[Order] = None
    message: Optional[str] = None
    payment_method: Optional[str] = None
    errors: Dict[str, str] = {}

    @property
    def ok(self) -> bool:
        return not self.errors


class OrderSubmission(BaseModel):
    order_id: Optional[str] = None
    saved: bool
    message: str
    whatsapp_url: str


def valid_phone(phone: Optional[str]) -> bool:
    return bool(phone) and _phone_re.fullmatch(phone) is not None


def validate_customer(customer: CustomerDetails) -> Dict[str, str]:
    errors = {}
    if len(customer.name or "") < 2:
        errors["name"] = "Name must be at least 2 characters."
    if not valid_phone(customer.phone):
        errors["phone"] = PHONE_ERROR
    if len(customer.address or "") < 10:
        errors["address"] = "Address must be at least 10 characters."
    return errors


def resolve_payment_method(requested: Optional[str], cod_available: bool) -> Optional[str]:
    """Cash is only allowed while COD is available; otherwise the choice becomes online."""
    if not cod_available:
        return "online"
    return requested


def render_dispatch_message(product: Product, size: str, customer: CustomerDetails, payment_method: str) -> str:
    return MESSAGE_TEMPLATE.format(
        store=config.STORE_NAME,
        product_id=product.id,
        product_name=product.name,
        size=size,
        price=product.sale_price,
        payment_label=PAYMENT_LABELS[payment_method],
        name=customer.name,
        phone=customer.phone,
        address=customer.address,
    )


def build_whatsapp_url(message: str, phone: Optional[str] = None) -> str:
    phone = phone or config.MERCHANT_WHATSAPP_NUMBER
    return f"https://wa.me/{phone}?text={quote(message.strip(), safe=URI_COMPONENT_SAFE)}"


def compose_order(
    product: Product,
    size: str,
    customer: CustomerDetails,
    payment_method: Optional[str],
    cod_available: bool,
    now: Optional[datetime] = None,
) -> OrderComposition:
    """Validate the checkout and build the order record plus dispatch message.

    Problems are returned per field in ``errors`` instead of being raised.
    """
    errors = validate_customer(customer)
    if size not in product.sizes:
        errors["size"] = "Please select one of the available sizes."
    payment_method = resolve_payment_method(payment_method, cod_available)
    if payment_method not in PAYMENT_LABELS:
        errors["payment_method"] = "You need to select a payment method."
    if errors:
        return OrderComposition(payment_method=payment_method, errors=errors)

    return OrderComposition(
        order=new_order(product, size, customer, now),
        message=render_dispatch_message(product, size, customer, payment_method),
        payment_method=payment_method,
    )


def submit_order(composition: OrderComposition, persist: Callable[[Order], str]) -> OrderSubmission:
    """Save the order if possible and hand back the message and WhatsApp link either way."""
    if not composition.ok:
        raise ValueError("Cannot submit an order with validation errors")
    order_id = None
    try:
        order_id = persist(composition.order)
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.error("Error saving order for product %s: %s", composition.order.product_id, e)
    return OrderSubmission(
        order_id=order_id,
        saved=order_id is not None,
        message=composition.message,
        whatsapp_url=build_whatsapp_url(composition.message),
    )
