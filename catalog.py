"""
Product catalog CRUD.
"""

import logging
from typing import List, Optional

import pydantic
from bson import ObjectId
from pymongo.database import Database

import cart
from database import create_document, doc_to_dict, get_documents, utcnow
from errors import NotFoundError, ValidationError
from schemas import Product

logger = logging.getLogger(__name__)


def validate_product(data: dict) -> Product:
    try:
        return Product(**data)
    except pydantic.ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(p) for p in err.get("loc", ()))
        raise ValidationError(f"{field}: {err['msg']}" if field else err["msg"])


def resolve_images(existing: List[str], uploaded: Optional[str], images_field: Optional[str]) -> List[str]:
    """New upload wins; an explicit empty `images` clears; a non-empty one replaces; nothing keeps."""
    if uploaded:
        return [uploaded]
    if images_field is not None:
        return [] if images_field.strip() == "" else [images_field]
    return list(existing)


def list_products(db: Database, category: Optional[str] = None) -> List[dict]:
    query = {"category": category} if category else {}
    return [doc_to_dict(d) for d in get_documents(db, "product", query)]


def get_product(db: Database, product_id: ObjectId) -> dict:
    doc = db["product"].find_one({"_id": product_id})
    if not doc:
        raise NotFoundError("Product not found")
    return doc_to_dict(doc)


def create_product(db: Database, data: dict) -> dict:
    product = validate_product(data)
    new_id = create_document(db, "product", product)
    logger.info("created product %s (%s)", new_id, product.name)
    return get_product(db, ObjectId(new_id))


def update_product(db: Database, product_id: ObjectId, data: dict, uploaded: Optional[str] = None,
                   images_field: Optional[str] = None) -> dict:
    existing = db["product"].find_one({"_id": product_id})
    if not existing:
        raise NotFoundError("Product not found")

    data = dict(data, images=resolve_images(existing.get("images", []), uploaded, images_field))
    data.setdefault("available", existing.get("available", True))
    product = validate_product(data)
    db["product"].update_one(
        {"_id": product_id},
        {"$set": dict(product.model_dump(), updated_at=utcnow())},
    )
    return get_product(db, product_id)


def delete_product(db: Database, product_id: ObjectId) -> None:
    result = db["product"].delete_one({"_id": product_id})
    if result.deleted_count == 0:
        raise NotFoundError("Product not found")
    purged = cart.purge_product(db, product_id)
    logger.info("deleted product %s (removed from %d carts)", product_id, purged)
