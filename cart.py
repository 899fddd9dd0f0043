"""
Shopping cart: one document per user, one line per product.

Adding a product already in the cart merges into its line. Line quantities
are capped by the product's current stock.
"""

import logging

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, doc_to_dict, resolve_refs, utcnow
from errors import InsufficientStockError, NotFoundError

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = ["name", "price", "images"]


def cart_view(db: Database, cart: dict) -> dict:
    """Cart with each line's product resolved to name/price/images (None if it no longer exists)."""
    if not cart:
        return {"items": []}
    products = resolve_refs(db, "product", [i["product_id"] for i in cart.get("items", [])], PRODUCT_FIELDS)
    out = doc_to_dict({k: v for k, v in cart.items() if k != "items"})
    out["items"] = []
    for item in cart.get("items", []):
        product = products.get(item["product_id"])
        out["items"].append({
            "product": doc_to_dict(product) if product else None,
            "quantity": item["quantity"],
        })
    return out


def get_or_create_cart(db: Database, user_id: ObjectId) -> dict:
    cart = db["cart"].find_one({"user_id": user_id})
    if cart:
        return cart
    try:
        create_document(db, "cart", {"user_id": user_id, "items": []})
    except DuplicateKeyError:
        # created concurrently by another request for the same user
        pass
    return db["cart"].find_one({"user_id": user_id})


def _check_stock(product: dict, quantity: int) -> None:
    if quantity > product.get("stock", 0):
        raise InsufficientStockError("Insufficient stock")


def _save_items(db: Database, cart: dict) -> None:
    db["cart"].update_one({"_id": cart["_id"]}, {"$set": {"items": cart["items"], "updated_at": utcnow()}})


def get_cart(db: Database, user_id: ObjectId) -> dict:
    return cart_view(db, db["cart"].find_one({"user_id": user_id}))


def add_item(db: Database, user_id: ObjectId, product_id: ObjectId, quantity: int) -> dict:
    product = db["product"].find_one({"_id": product_id})
    if not product:
        raise NotFoundError("Product not found")

    existing = db["cart"].find_one({"user_id": user_id}) or {"items": []}
    in_cart = sum(i["quantity"] for i in existing["items"] if i["product_id"] == product_id)
    _check_stock(product, in_cart + quantity)

    cart = get_or_create_cart(db, user_id)
    for item in cart["items"]:
        if item["product_id"] == product_id:
            item["quantity"] += quantity
            break
    else:
        cart["items"].append({"product_id": product_id, "quantity": quantity})

    _save_items(db, cart)
    logger.debug("cart %s: +%d of %s", cart["_id"], quantity, product_id)
    return get_cart(db, user_id)


def set_item_quantity(db: Database, user_id: ObjectId, product_id: ObjectId, quantity: int) -> dict:
    cart = db["cart"].find_one({"user_id": user_id})
    if not cart:
        raise NotFoundError("Cart not found")

    for item in cart["items"]:
        if item["product_id"] == product_id:
            product = db["product"].find_one({"_id": product_id})
            if product:
                _check_stock(product, quantity)
            item["quantity"] = quantity
            break
    else:
        raise NotFoundError("Product not found in cart")

    _save_items(db, cart)
    return get_cart(db, user_id)


def remove_item(db: Database, user_id: ObjectId, product_id: ObjectId) -> dict:
    cart = db["cart"].find_one({"user_id": user_id})
    if not cart:
        return cart_view(db, None)

    remaining = [i for i in cart["items"] if i["product_id"] != product_id]
    if len(remaining) != len(cart["items"]):
        cart["items"] = remaining
        _save_items(db, cart)
    return get_cart(db, user_id)


def purge_product(db: Database, product_id: ObjectId) -> int:
    """Drop a product from every cart; returns how many carts changed."""
    result = db["cart"].update_many(
        {"items.product_id": product_id},
        {"$pull": {"items": {"product_id": product_id}}, "$set": {"updated_at": utcnow()}},
    )
    return result.modified_count
