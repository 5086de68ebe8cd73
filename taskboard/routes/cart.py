from typing import Callable, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from ..cart import (
    CART_COOKIE,
    Cart,
    add_product_to_cart,
    cart_totals,
    dump_cart,
    get_cookie_cart,
    products_in_cart,
    remove_product_from_cart,
    remove_single_item_from_cart,
)
from ..config import settings
from ..dependencies import RequestContext, get_page_context
from ..products import find_product, products
from ..templating import templates

router = APIRouter(prefix="/dashboard", tags=["cart"])

CART_OPERATIONS: Dict[str, Callable[[Cart, str], Cart]] = {
    "add": add_product_to_cart,
    "remove": remove_product_from_cart,
    "decrement": remove_single_item_from_cart,
}


def _redirect_target(value) -> str:
    if isinstance(value, str) and value.startswith("/dashboard"):
        return value
    return "/dashboard/products"


@router.get("/products", response_class=HTMLResponse)
def products_page(request: Request, ctx: RequestContext = Depends(get_page_context)):
    cart = get_cookie_cart(request.cookies)
    return templates.TemplateResponse(
        request,
        "dashboard/products.html",
        {
            "current_user": ctx.session,
            "active_path": request.url.path,
            "products": products,
            "cart": cart,
            "page_title": "Products",
        },
    )


@router.get("/cart", response_class=HTMLResponse)
def cart_page(request: Request, ctx: RequestContext = Depends(get_page_context)):
    items = products_in_cart(get_cookie_cart(request.cookies), products)
    return templates.TemplateResponse(
        request,
        "dashboard/cart.html",
        {
            "current_user": ctx.session,
            "active_path": request.url.path,
            "items": items,
            "totals": cart_totals(items, settings.tax_rate),
            "tax_percent": round(settings.tax_rate * 100),
            "page_title": "Cart",
        },
    )


@router.post("/cart/{product_id}/{operation}")
async def update_cart(
    request: Request,
    product_id: str,
    operation: str,
    ctx: RequestContext = Depends(get_page_context),
):
    apply = CART_OPERATIONS.get(operation)
    if apply is None:
        raise HTTPException(status_code=404, detail=f"Unknown cart operation {operation}")
    if find_product(product_id) is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} does not exist")

    form = await request.form()
    cart = apply(get_cookie_cart(request.cookies), product_id)

    response = RedirectResponse(
        url=_redirect_target(form.get("next")), status_code=status.HTTP_303_SEE_OTHER
    )
    # Read by the browser as well, so not httponly.
    response.set_cookie(CART_COOKIE, dump_cart(cart), samesite="lax", httponly=False)
    return response
