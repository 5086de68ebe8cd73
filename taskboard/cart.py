"""Shopping cart held in a client-visible cookie.

The cart is a JSON object mapping product ids to quantities, e.g.
``{"UUID-ABC-1": 2}``. Every operation rewrites the whole cookie, so
concurrent writers simply overwrite each other.
"""

import json
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional

from .products import Product

logger = logging.getLogger(__name__)

CART_COOKIE = "cart"

Cart = Dict[str, int]


@dataclass(frozen=True)
class ProductInCart:
    product: Product
    quantity: int

    @property
    def subtotal(self) -> float:
        return self.product.price * self.quantity


@dataclass(frozen=True)
class CartTotals:
    subtotal: float
    tax: float
    total: float


def parse_cart(raw: Optional[str]) -> Cart:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Ignoring malformed cart cookie")
        return {}
    if not isinstance(data, dict):
        return {}
    return {
        str(product_id): quantity
        for product_id, quantity in data.items()
        if isinstance(quantity, int) and not isinstance(quantity, bool) and quantity > 0
    }


def dump_cart(cart: Mapping[str, int]) -> str:
    return json.dumps(dict(cart), separators=(",", ":"))


def get_cookie_cart(cookies: Mapping[str, str]) -> Cart:
    return parse_cart(cookies.get(CART_COOKIE))


def add_product_to_cart(cart: Mapping[str, int], product_id: str) -> Cart:
    updated = dict(cart)
    updated[product_id] = updated.get(product_id, 0) + 1
    return updated


def remove_product_from_cart(cart: Mapping[str, int], product_id: str) -> Cart:
    updated = dict(cart)
    updated.pop(product_id, None)
    return updated


def remove_single_item_from_cart(cart: Mapping[str, int], product_id: str) -> Cart:
    updated = dict(cart)
    if product_id not in updated:
        return updated
    remaining = updated[product_id] - 1
    if remaining <= 0:
        del updated[product_id]
    else:
        updated[product_id] = remaining
    return updated


def products_in_cart(cart: Mapping[str, int], catalogue: Iterable[Product]) -> List[ProductInCart]:
    by_id = {product.id: product for product in catalogue}
    return [
        ProductInCart(product=by_id[product_id], quantity=quantity)
        for product_id, quantity in cart.items()
        if product_id in by_id
    ]


def cart_totals(items: Iterable[ProductInCart], tax_rate: float) -> CartTotals:
    subtotal = sum(item.subtotal for item in items)
    tax = round(subtotal * tax_rate, 2)
    return CartTotals(subtotal=subtotal, tax=tax, total=round(subtotal + tax, 2))
