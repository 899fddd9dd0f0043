import os
import logging
from contextlib import asynccontextmanager
from typing import Optional, Tuple

from fastapi import BackgroundTasks, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.datastructures import UploadFile as StarletteUploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from bson import ObjectId
from pymongo.database import Database

import accounts
import cart
import catalog
import config
import database
import stock
import uploads
from database import get_db
from errors import StoreError
from mailer import Mailer, get_mailer, send_contact_message
from schemas import (
    CartAddRequest,
    CartUpdateRequest,
    ContactRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MovementUpdateRequest,
    RegisterRequest,
    ResetPasswordRequest,
    StockAdjustRequest,
)
from security import get_current_user, require_admin

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger("storefront")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.ensure_indexes(database.db)
    else:
        logger.warning("DATABASE_URL/DATABASE_NAME not set; running without a database")
    yield


app = FastAPI(title="Storefront API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/uploads", StaticFiles(directory=uploads.UPLOAD_DIR, check_dir=False), name="uploads")


# ---------- Error handling ----------

@app.exception_handler(StoreError)
async def store_error_handler(request, exc: StoreError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request, exc: RequestValidationError):
    err = exc.errors()[0] if exc.errors() else {"msg": "Invalid request", "loc": ()}
    field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
    message = f"{field}: {err['msg']}" if field else err["msg"]
    return JSONResponse(status_code=400, content={"message": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


# Utility

def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid id")


@app.get("/")
async def root():
    return {"message": "Storefront Backend Running"}


@app.get("/test")
def test_database():
    info = {
        "backend": "running",
        "database": "unavailable",
        "collections": [],
    }
    try:
        db = get_db()
        info["database"] = "connected"
        info["collections"] = db.list_collection_names()
    except Exception as e:
        info["database"] = f"error: {str(e)[:80]}"
    return info


# Auth
@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterRequest, db: Database = Depends(get_db)):
    return database.doc_to_dict(accounts.register(db, payload.name, payload.email, payload.password))


@app.post("/api/auth/login")
def login(payload: LoginRequest, db: Database = Depends(get_db)):
    return database.doc_to_dict(accounts.login(db, payload.email, payload.password))


@app.post("/api/auth/forgot-password")
def forgot_password(payload: ForgotPasswordRequest, db: Database = Depends(get_db),
                    mailer: Mailer = Depends(get_mailer)):
    accounts.forgot_password(db, mailer, payload.email)
    return {"message": accounts.FORGOT_PASSWORD_MESSAGE}


@app.post("/api/auth/reset-password")
def reset_password(payload: ResetPasswordRequest, db: Database = Depends(get_db)):
    accounts.reset_password(db, payload.token, payload.password)
    return {"message": "Password has been reset successfully."}


# Products
@app.get("/api/products")
def list_products(category: Optional[str] = None, db: Database = Depends(get_db)):
    return catalog.list_products(db, category)


@app.get("/api/products/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    return catalog.get_product(db, oid(product_id))


@app.post("/api/products", status_code=201)
async def create_product(
    request: Request,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    available: Optional[str] = Form(None),
    stock_count: Optional[str] = Form(None, alias="stock"),
    image_file: Optional[UploadFile] = File(None, alias="image"),
    db: Database = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    uploaded, images_text = await _image_fields(request, image_file)
    data = _product_form(name, description, price, category, available, stock_count)
    data["images"] = catalog.resolve_images([], uploaded, images_text)
    return catalog.create_product(db, data)


@app.put("/api/products/{product_id}")
async def update_product(
    request: Request,
    product_id: str,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    available: Optional[str] = Form(None),
    stock_count: Optional[str] = Form(None, alias="stock"),
    image_file: Optional[UploadFile] = File(None, alias="image"),
    db: Database = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    pid = oid(product_id)
    uploaded, images_text = await _image_fields(request, image_file)
    data = _product_form(name, description, price, category, available, stock_count)
    return catalog.update_product(db, pid, data, uploaded=uploaded, images_field=images_text)


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, db: Database = Depends(get_db), admin: dict = Depends(require_admin)):
    catalog.delete_product(db, oid(product_id))
    return {"message": "Product deleted"}


def _product_form(name, description, price, category, available, stock_count) -> dict:
    data = {"name": name, "description": description, "price": price, "category": category,
            "available": available, "stock": stock_count}
    return {k: v for k, v in data.items() if v is not None}


async def _image_fields(request: Request, image_file: Optional[UploadFile]) -> Tuple[Optional[str], Optional[str]]:
    """Return (saved upload filename, `images` text). A file is accepted under either `image` or `images`."""
    # read from the raw form: FastAPI maps an empty Form value to its default, and "" means "clear"
    value = (await request.form()).get("images")
    if isinstance(value, StarletteUploadFile):
        image_file = image_file or value
        value = None
    uploaded = await uploads.save_image(image_file) if image_file else None
    return uploaded, value


# Stock
@app.patch("/api/products/{product_id}/stock")
def adjust_stock(product_id: str, payload: StockAdjustRequest, db: Database = Depends(get_db),
                 user: dict = Depends(require_admin)):
    new_stock = stock.adjust_stock(db, oid(product_id), payload.quantity, oid(user["id"]), payload.description)
    return {"message": "Stock updated", "stock": new_stock}


@app.get("/api/stock-movements")
def list_movements(db: Database = Depends(get_db), admin: dict = Depends(require_admin)):
    return stock.list_movements(db)


@app.patch("/api/stock-movements/{movement_id}")
def update_movement(movement_id: str, payload: MovementUpdateRequest, db: Database = Depends(get_db),
                    admin: dict = Depends(require_admin)):
    movement = stock.update_movement(db, oid(movement_id), payload.quantity, payload.description)
    return {"message": "Movement updated", "movement": movement}


@app.delete("/api/stock-movements/{movement_id}")
def delete_movement(movement_id: str, db: Database = Depends(get_db), admin: dict = Depends(require_admin)):
    stock.delete_movement(db, oid(movement_id))
    return {"message": "Movement deleted"}


# Cart
@app.get("/api/cart")
def get_cart(db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    return cart.get_cart(db, oid(user["id"]))


@app.post("/api/cart")
def cart_add(item: CartAddRequest, db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    return cart.add_item(db, oid(user["id"]), oid(item.product_id), item.quantity)


@app.put("/api/cart/{product_id}")
def cart_update(product_id: str, payload: CartUpdateRequest, db: Database = Depends(get_db),
                user: dict = Depends(get_current_user)):
    return cart.set_item_quantity(db, oid(user["id"]), oid(product_id), payload.quantity)


@app.delete("/api/cart/{product_id}")
def cart_remove(product_id: str, db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    return cart.remove_item(db, oid(user["id"]), oid(product_id))


# Contact (email only, nothing stored)
@app.post("/api/contact")
def contact(payload: ContactRequest, background_tasks: BackgroundTasks, mailer: Mailer = Depends(get_mailer)):
    background_tasks.add_task(
        send_contact_message, mailer, payload.name, payload.email, payload.phone, payload.message
    )
    return {"message": "Message received"}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
