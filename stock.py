"""
Stock ledger.

Product.stock is the authoritative quantity; stock_movement documents are the
audit trail. An adjustment is one conditional $inc on the product (the
non-negative bound is part of the filter, so there is no read-then-write
window) followed by the movement insert. If the insert fails the increment is
reversed, so every committed change has exactly one movement.

Editing or deleting a movement never touches product stock.
"""

import logging
from typing import List, Optional

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from database import doc_to_dict, resolve_refs, utcnow
from errors import InsufficientStockError, NotFoundError

logger = logging.getLogger(__name__)


def movement_type(quantity: int) -> str:
    return "ingreso" if quantity >= 0 else "egreso"


def adjust_stock(db: Database, product_id: ObjectId, delta: int, user_id: ObjectId,
                 description: Optional[str] = None) -> int:
    """Apply a signed delta to a product's stock and log it. Returns the new stock."""
    query = {"_id": product_id}
    if delta < 0:
        query["stock"] = {"$gte": -delta}

    updated = db["product"].find_one_and_update(
        query,
        {"$inc": {"stock": delta}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        if db["product"].find_one({"_id": product_id}, {"_id": 1}) is None:
            raise NotFoundError("Product not found")
        raise InsufficientStockError("Insufficient stock")

    movement = {
        "product_id": product_id,
        "quantity": delta,
        "type": movement_type(delta),
        "description": description or "",
        "user_id": user_id,
        "created_at": utcnow(),
    }
    try:
        db["stock_movement"].insert_one(movement)
    except Exception:
        logger.exception("movement insert failed for product %s, reverting stock by %d", product_id, -delta)
        db["product"].update_one({"_id": product_id}, {"$inc": {"stock": -delta}})
        raise

    logger.info("stock of %s adjusted by %d to %d", product_id, delta, updated["stock"])
    return updated["stock"]


def list_movements(db: Database) -> List[dict]:
    movements = list(db["stock_movement"].find().sort([("created_at", DESCENDING), ("_id", DESCENDING)]))
    products = resolve_refs(db, "product", [m.get("product_id") for m in movements], ["name", "price"])
    users = resolve_refs(db, "user", [m.get("user_id") for m in movements], ["name", "email"])

    out = []
    for m in movements:
        item = doc_to_dict(m)
        product = products.get(m.get("product_id"))
        user = users.get(m.get("user_id"))
        item["product"] = doc_to_dict(product) if product else None
        item["user"] = doc_to_dict(user) if user else None
        out.append(item)
    return out


def update_movement(db: Database, movement_id: ObjectId, quantity: Optional[int] = None,
                    description: Optional[str] = None) -> dict:
    changes = {}
    if quantity is not None:
        changes["quantity"] = quantity
        changes["type"] = movement_type(quantity)
    if description is not None:
        changes["description"] = description

    if changes:
        movement = db["stock_movement"].find_one_and_update(
            {"_id": movement_id}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )
    else:
        movement = db["stock_movement"].find_one({"_id": movement_id})
    if movement is None:
        raise NotFoundError("Movement not found")
    return doc_to_dict(movement)


def delete_movement(db: Database, movement_id: ObjectId) -> None:
    result = db["stock_movement"].delete_one({"_id": movement_id})
    if result.deleted_count == 0:
        raise NotFoundError("Movement not found")
