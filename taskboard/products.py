from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: float
    rating: int
    image: str


products: List[Product] = [
    Product(
        id="UUID-ABC-1",
        name="Teslo Hoodie",
        price=15,
        rating=5,
        image="/static/images/products/1623735-00-A_0_2000.jpg",
    ),
    Product(
        id="UUID-ABC-2",
        name="Teslo Cap",
        price=25,
        rating=3,
        image="/static/images/products/1657916-00-A_1.jpg",
    ),
    Product(
        id="UUID-ABC-3",
        name="Let the sunshine",
        price=36,
        rating=2,
        image="/static/images/products/1700280-00-A_1.jpg",
    ),
    Product(
        id="UUID-ABC-4",
        name="Cybertruck Hoodie",
        price=45,
        rating=5,
        image="/static/images/products/1742702-00-A_0_2000.jpg",
    ),
]


def find_product(product_id: str) -> Optional[Product]:
    return next((product for product in products if product.id == product_id), None)
