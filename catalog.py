"""
Catalog browsing: price display, search/category filtering and the live
catalog view the storefront binds to.
"""
import logging
from typing import Callable, Iterable, List, Optional

from pydantic import ValidationError

import database
from schemas import PaymentSetting, Product, ProductForm, ProductImage

logger = logging.getLogger(__name__)

PRODUCTS = "products"
ALL_CATEGORIES = "All"


def format_price(amount: int) -> str:
    return f"₹{amount}"


def products_from_docs(docs: Iterable[dict]) -> List[Product]:
    """Parse store documents, skipping any that no longer fit the product shape."""
    products = []
    for doc in docs:
        try:
            products.append(Product(**doc))
        except ValidationError as e:
            logger.warning("Skipping malformed product %s: %s", doc.get("id"), e.errors()[:1])
    return products


def filter_catalog(products: List[Product], search_term: str = "", category: str = ALL_CATEGORIES) -> List[Product]:
    """Products in ``category`` (exact match) whose name contains ``search_term`` (any case), in input order."""
    result = products
    if category != ALL_CATEGORIES:
        result = [p for p in result if p.category == category]
    needle = search_term.lower()
    return [p for p in result if needle in p.name.lower()]


def list_categories(products: List[Product]) -> List[str]:
    categories = [ALL_CATEGORIES]
    for p in products:
        if p.category and p.category not in categories:
            categories.append(p.category)
    return categories


def find_product(products: List[Product], product_id: str) -> Optional[Product]:
    product_id = product_id.strip()
    if not product_id:
        return None
    return next((p for p in products if p.id == product_id), None)


def effective_cod_available(product: Product, payment_setting: PaymentSetting) -> bool:
    return payment_setting.is_cash_on_delivery_enabled and product.is_cash_on_delivery_available


def parse_sizes(raw: str) -> List[str]:
    sizes = []
    for s in raw.split(","):
        s = s.strip()
        if s and s not in sizes:
            sizes.append(s)
    return sizes


def build_product(form: ProductForm, product_id: str) -> Product:
    """Turn the admin product form into the stored product shape."""
    if form.sale_price > form.original_price:
        logger.warning("Product %s has sale price %s above original price %s",
                       product_id, form.sale_price, form.original_price)
    return Product(
        id=product_id,
        name=form.name,
        category=form.category,
        description=form.description,
        original_price=form.original_price,
        sale_price=form.sale_price,
        price_formatted=format_price(form.sale_price),
        images=[
            ProductImage(id=f"{product_id}_img_{i}", url=str(url), alt=form.name, hint="product photo")
            for i, url in enumerate(form.image_urls)
        ],
        sizes=parse_sizes(form.sizes),
        is_cash_on_delivery_available=form.is_cash_on_delivery_available,
        product_link=str(form.product_link) if form.product_link else "",
        video_url=str(form.video_url) if form.video_url else "",
    )


class CatalogView:
    """Live, filtered projection of the products collection.

    ``visible`` is recomputed whenever a new snapshot arrives or the search
    term / category changes. ``loading`` stays True until the first snapshot.
    """

    def __init__(self, search_term: str = "", category: str = ALL_CATEGORIES):
        self.products: List[Product] = []
        self.visible: List[Product] = []
        self.search_term = search_term
        self.category = category
        self.loading = True
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach(self, subscribe=None) -> "CatalogView":
        subscribe = subscribe or database.subscribe_collection
        self._unsubscribe = subscribe(PRODUCTS, self.on_snapshot)
        return self

    def close(self):
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def on_snapshot(self, docs: List[dict]):
        self.products = products_from_docs(docs)
        self.loading = False
        self._refresh()

    def set_search(self, term: str):
        self.search_term = term
        self._refresh()

    def set_category(self, category: str):
        self.category = category
        self._refresh()

    @property
    def categories(self) -> List[str]:
        return list_categories(self.products)

    def _refresh(self):
        self.visible = filter_catalog(self.products, self.search_term, self.category)
