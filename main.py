import logging
import os
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import jwt
from bson import ObjectId
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from openai import OpenAIError
from pydantic import BaseModel, Field, ValidationError
from pymongo.errors import PyMongoError

import config
import database
from assistant import Conversation, assist
from catalog import (
    ALL_CATEGORIES,
    PRODUCTS,
    build_product,
    effective_cod_available,
    filter_catalog,
    find_product,
    format_price,
    list_categories,
    products_from_docs,
)
from checkout import PHONE_ERROR, compose_order, submit_order, valid_phone
from database import (
    DatabaseUnavailable,
    count_documents,
    create_document,
    delete_document,
    get_document,
    get_documents,
    serialize_doc,
    update_document,
)
from orders import (
    ORDERS,
    MutationStatus,
    OrderBoard,
    OrderNotCancellable,
    can_cancel,
    ensure_cancellable,
    new_order,
    order_status,
    orders_from_docs,
    sort_newest_first,
)
from schemas import (
    ChatMessage,
    CustomerDetails,
    HeroImage,
    HeroImageForm,
    Order,
    Product,
    ProductForm,
    ProductImage,
)
from site_settings import SettingKey, announcement_visible, load_setting, save_setting

logger = logging.getLogger(__name__)

HERO_IMAGES = "heroImages"
MESSAGES = "messages"

app = FastAPI(title="Darpan Wears Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------- Utils -----------------------
security = HTTPBearer()


def create_token(payload: dict, lifetime: timedelta) -> str:
    exp = datetime.now(timezone.utc) + lifetime
    to_encode = {**payload, "exp": exp}
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


async def get_customer(credentials: HTTPAuthorizationCredentials = Depends(security)) -> CustomerDetails:
    payload = decode_token(credentials.credentials)
    customer = payload.get("customer")
    if payload.get("role") != "customer" or not customer:
        raise HTTPException(status_code=401, detail="Customer details are missing")
    # checkout re-validates these fields and reports problems per field
    return CustomerDetails.model_construct(**customer)


async def require_admin(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    payload = decode_token(credentials.credentials)
    if payload.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin only")
    return payload


@app.exception_handler(PyMongoError)
@app.exception_handler(DatabaseUnavailable)
async def store_error_handler(request: Request, exc: Exception):
    logger.error("Store error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "The store is temporarily unavailable. Please try again."})


def public_product(product: Product, cod_available: Optional[bool] = None) -> dict:
    data = product.model_dump(exclude={"product_link"})
    if cod_available is not None:
        data["cash_on_delivery_available"] = cod_available
    return data


def load_products() -> List[Product]:
    return products_from_docs(serialize_doc(d) for d in get_documents(PRODUCTS))


def load_product(product_id: str) -> Product:
    doc = get_document(PRODUCTS, product_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Product not found")
    return Product(**serialize_doc(doc))


def load_order(order_id: str) -> Order:
    doc = get_document(ORDERS, order_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Order not found")
    return Order(**serialize_doc(doc))


def order_payload(order: Order) -> dict:
    return {**order.model_dump(), "status": order_status(order).value}


def fetch_catalog_for_assistant() -> List[Product]:
    try:
        return load_products()
    except (PyMongoError, DatabaseUnavailable) as e:
        logger.error("Error fetching products for assistant: %s", e)
        return []


# ----------------------- Models -----------------------
class LoginBody(BaseModel):
    password: str = Field(..., min_length=1)


class OrderCreateBody(BaseModel):
    product_id: str
    size: str
    payment_method: Optional[str] = None


class ManualOrderBody(BaseModel):
    product_id: str
    size: str
    customer: CustomerDetails


class CancelBody(BaseModel):
    phone: str


class AssistantRequest(BaseModel):
    message: str = Field(..., min_length=1)
    session_id: Optional[str] = None
    photo_data_uri: Optional[str] = Field(None, pattern=r"^data:[\w.+-]+/[\w.+-]+;base64,")


class AssistantResponse(BaseModel):
    reply: str
    session_id: str
    timestamp: datetime


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": f"{config.STORE_NAME} API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["collections"] = database.db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ----------------------- Customer session -----------------------
@app.post("/session/customer")
def start_customer_session(body: CustomerDetails):
    token = create_token(
        {"role": "customer", "customer": body.model_dump()},
        timedelta(days=config.CUSTOMER_SESSION_DAYS),
    )
    return {"token": token, "customer": body.model_dump()}


# ----------------------- Products -----------------------
@app.get("/products")
def list_products(q: Optional[str] = None, category: Optional[str] = None):
    products = filter_catalog(load_products(), q or "", category or ALL_CATEGORIES)
    return [public_product(p) for p in products]


@app.get("/categories")
def categories():
    return list_categories(load_products())


@app.get("/products/{product_id}")
def get_product(product_id: str):
    product = load_product(product_id)
    payment = load_setting(SettingKey.PAYMENT_OPTIONS)
    return public_product(product, effective_cod_available(product, payment))


# ----------------------- Orders -----------------------
@app.post("/orders")
def create_order(body: OrderCreateBody, customer: CustomerDetails = Depends(get_customer)):
    product = load_product(body.product_id)
    cod_available = effective_cod_available(product, load_setting(SettingKey.PAYMENT_OPTIONS))
    composition = compose_order(product, body.size, customer, body.payment_method, cod_available)
    if not composition.ok:
        raise HTTPException(status_code=422, detail={"errors": composition.errors})

    submission = submit_order(composition, lambda order: create_document(ORDERS, order))
    result = {**submission.model_dump(), "payment_method": composition.payment_method}
    if not submission.saved:
        result["notice"] = "Order could not be saved automatically. Please ensure you send the WhatsApp message."
    return result


@app.get("/orders/track")
def track_orders(phone: str):
    if not valid_phone(phone):
        raise HTTPException(
            status_code=422,
            detail={"errors": {"phone": PHONE_ERROR}},
        )
    orders = sort_newest_first(orders_from_docs(
        serialize_doc(d) for d in get_documents(ORDERS, {"customer_contact": phone})
    ))
    return [{**order_payload(o), "can_cancel": can_cancel(o)} for o in orders]


@app.post("/orders/{order_id}/cancel")
def cancel_order(order_id: str, body: CancelBody):
    order = load_order(order_id)
    if order.customer_contact != body.phone:
        raise HTTPException(status_code=404, detail="Order not found")
    try:
        ensure_cancellable(order)
    except OrderNotCancellable as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not delete_document(ORDERS, order_id):
        raise HTTPException(status_code=404, detail="Order not found")
    name = order.product_details.name if order.product_details else "an item"
    return {"ok": True, "message": f"Your order for {name} has been cancelled."}


# ----------------------- Site content -----------------------
@app.get("/settings")
def all_settings():
    settings = {key: load_setting(key) for key in SettingKey}
    resolved = {key.value: setting.model_dump() for key, setting in settings.items()}
    resolved["announcement_visible"] = announcement_visible(settings[SettingKey.ANNOUNCEMENT])
    return resolved


@app.get("/settings/{key}")
def get_setting(key: SettingKey):
    return load_setting(key).model_dump()


@app.get("/hero-images")
def list_hero_images():
    return [serialize_doc(d) for d in get_documents(HERO_IMAGES)]


# ----------------------- Assistant -----------------------
@app.post("/assistant/chat", response_model=AssistantResponse)
def assistant_chat(req: AssistantRequest):
    if not req.message.strip():
        raise HTTPException(status_code=400, detail="Message cannot be empty")

    session_id = req.session_id or os.urandom(8).hex()
    products = fetch_catalog_for_assistant()
    base_prompt = load_setting(SettingKey.ASSISTANT).base_prompt
    conversation = Conversation(session_id=session_id)
    try:
        reply = conversation.ask(
            req.message,
            lambda question: assist(question, products, req.photo_data_uri, base_prompt),
        )
    except OpenAIError as e:
        logger.error("AI Assistant Error: %s", e)
        raise HTTPException(
            status_code=503,
            detail="Darpan 2.0 is having a little trouble. Please try again in a moment.",
        )

    try:
        for message in conversation.messages:
            create_document(MESSAGES, message)
    except (PyMongoError, DatabaseUnavailable) as e:
        logger.warning("Could not store chat transcript for %s: %s", session_id, e)

    return AssistantResponse(reply=reply.text, session_id=session_id, timestamp=datetime.now(timezone.utc))


@app.get("/assistant/messages")
def get_messages(session_id: str, limit: int = 50):
    docs = get_documents(MESSAGES, {"session_id": session_id}, limit)
    return [ChatMessage(**serialize_doc(d)).model_dump() for d in docs]


# ----------------------- Admin -----------------------
@app.post("/admin/login")
def admin_login(body: LoginBody):
    if body.password != config.ADMIN_PASSWORD:
        raise HTTPException(status_code=401, detail="Incorrect password. Please try again.")
    token = create_token({"role": "admin"}, timedelta(hours=config.ADMIN_SESSION_HOURS))
    return {"token": token}


@app.get("/admin/stats")
def admin_stats(admin=Depends(require_admin)):
    return {
        "products": count_documents(PRODUCTS),
        "orders": count_documents(ORDERS),
        "pending_orders": count_documents(ORDERS, {"is_completed": False}),
    }


@app.post("/admin/products")
def create_product(body: ProductForm, admin=Depends(require_admin)):
    product_id = str(ObjectId())
    product = build_product(body, product_id)
    create_document(PRODUCTS, product)
    return {"id": product_id}


@app.get("/admin/products")
def admin_list_products(find: Optional[str] = None, admin=Depends(require_admin)):
    products = load_products()
    if find is None:
        return [p.model_dump() for p in products]
    product = find_product(products, find)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return [product.model_dump()]


@app.get("/admin/products/{product_id}")
def admin_get_product(product_id: str, admin=Depends(require_admin)):
    return load_product(product_id).model_dump()


@app.put("/admin/products/{product_id}")
def update_product(product_id: str, body: ProductForm, admin=Depends(require_admin)):
    product = build_product(body, product_id)
    if not update_document(PRODUCTS, product_id, product.model_dump(exclude={"id"})):
        raise HTTPException(status_code=404, detail="Product not found")
    return {"ok": True}


@app.delete("/admin/products/{product_id}")
def delete_product(product_id: str, admin=Depends(require_admin)):
    if not delete_document(PRODUCTS, product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    return {"ok": True}


@app.get("/admin/orders")
def admin_list_orders(q: Optional[str] = None, admin=Depends(require_admin)):
    board = OrderBoard(orders_from_docs(serialize_doc(d) for d in get_documents(ORDERS)))
    return [order_payload(o) for o in board.visible(q or "")]


@app.post("/admin/orders")
def admin_create_order(body: ManualOrderBody, admin=Depends(require_admin)):
    product = load_product(body.product_id)
    if body.size not in product.sizes:
        raise HTTPException(status_code=422, detail={"errors": {"size": "Please select one of the available sizes."}})
    order_id = create_document(ORDERS, new_order(product, body.size, body.customer))
    return {"id": order_id}


@app.post("/admin/orders/{order_id}/toggle")
def toggle_order(order_id: str, admin=Depends(require_admin)):
    board = OrderBoard([load_order(order_id)])
    mutation = board.toggle(order_id, lambda oid, fields: update_document(ORDERS, oid, fields))
    order = board.get(order_id)
    if mutation.status == MutationStatus.FAILED:
        raise HTTPException(
            status_code=503,
            detail={"message": "Could not update the order.", "order": order_payload(order)},
        )
    state = "Completed" if order.is_completed else "Marked as Pending"
    return {"order": order_payload(order), "message": f"Order {state}"}


@app.delete("/admin/orders/{order_id}")
def admin_delete_order(order_id: str, admin=Depends(require_admin)):
    board = OrderBoard([load_order(order_id)])
    mutation = board.remove(order_id, lambda oid: delete_document(ORDERS, oid))
    if mutation.status == MutationStatus.FAILED:
        raise HTTPException(
            status_code=503,
            detail={"message": "Could not delete the order.", "order": order_payload(mutation.previous)},
        )
    return {"ok": True}


@app.put("/admin/settings/{key}")
def update_setting(key: SettingKey, body: dict, admin=Depends(require_admin)):
    try:
        setting = save_setting(key, body)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))
    return setting.model_dump()


@app.post("/admin/hero-images")
def add_hero_image(body: HeroImageForm, admin=Depends(require_admin)):
    image = HeroImage(image_url=str(body.image_url), title=body.title, subtitle=body.subtitle)
    return {"id": create_document(HERO_IMAGES, image)}


@app.delete("/admin/hero-images/{image_id}")
def delete_hero_image(image_id: str, admin=Depends(require_admin)):
    if not delete_document(HERO_IMAGES, image_id):
        raise HTTPException(status_code=404, detail="Hero image not found")
    return {"ok": True}


# ----------------------- Seed Demo Data -----------------------
def _demo_product(n, name, category, description, original_price, sale_price, sizes, image_url, alt, hint):
    product_id = f"prod_{n}"
    return Product(
        id=product_id,
        name=name,
        category=category,
        description=description,
        original_price=original_price,
        sale_price=sale_price,
        price_formatted=format_price(sale_price),
        images=[ProductImage(id=f"{product_id}_img", url=image_url, alt=alt, hint=hint)],
        sizes=sizes,
    )


DEMO_PRODUCTS = [
    _demo_product(
        1, "Denim Jacket", "Jackets",
        "A timeless denim jacket that adds a cool, casual layer to any outfit. Made from 100% durable cotton, "
        "it features classic button-front styling, chest pockets, and a comfortable fit that gets better with every wear.",
        3499, 2999, ["S", "M", "L", "XL"],
        "https://images.unsplash.com/photo-1495105787522-5334e3ffa0ef",
        "A stylish denim jacket on a hanger.", "denim jacket",
    ),
    _demo_product(
        2, "Classic White Tee", "T-Shirts",
        "The perfect wardrobe essential. Our Classic White Tee is crafted from ultra-soft premium cotton for a "
        "breathable, comfortable feel. Its versatile design makes it ideal for layering or wearing on its own.",
        1299, 899, ["S", "M", "L", "XL", "XXL"],
        "https://images.unsplash.com/photo-1643881080033-e67069c5e4df",
        "A classic white t-shirt folded neatly.", "white t-shirt",
    ),
    _demo_product(
        3, "Black Skinny Jeans", "Jeans",
        "Elevate your style with our Black Skinny Jeans. Designed to flatter, these jeans offer a sleek, modern "
        "silhouette with just the right amount of stretch for all-day comfort. A versatile staple for any wardrobe.",
        2999, 2499, ["28", "30", "32", "34", "36"],
        "https://images.unsplash.com/photo-1531920724711-2e0aeed7aecf",
        "A pair of black skinny jeans.", "black jeans",
    ),
    _demo_product(
        4, "Floral Summer Dress", "Dresses",
        "Embrace the sunshine in our beautiful Floral Summer Dress. Featuring a vibrant floral print, a lightweight "
        "and breezy fabric, and a flattering A-line cut, this dress is perfect for picnics, parties, or a day out.",
        2499, 1999, ["S", "M", "L"],
        "https://images.unsplash.com/photo-1496747611176-843222e1e57c",
        "A light and airy floral summer dress.", "floral dress",
    ),
    _demo_product(
        5, "Leather Biker Jacket", "Jackets",
        "Channel your inner rebel with this classic leather biker jacket. Crafted from genuine leather, it features "
        "an asymmetric zip, multiple pockets, and a tailored fit for a sharp, edgy look.",
        5999, 4999, ["S", "M", "L", "XL"],
        "https://images.unsplash.com/photo-1521223890158-f9f7c3d5d504",
        "A stylish black leather jacket.", "leather jacket",
    ),
]


@app.post("/seed")
def seed():
    if count_documents(PRODUCTS) > 0:
        return {"seeded": False, "message": "Products already exist"}
    for product in DEMO_PRODUCTS:
        create_document(PRODUCTS, product)
    return {"seeded": True, "products": count_documents(PRODUCTS)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
