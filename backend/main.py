from __future__ import annotations
import logging
import time
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from backend import database, orders, products
from backend.database import settings
from backend.errors import InvalidIdentifier, NotFound, OrderNumberConflict, ValidationFailed, field_errors
from backend.schemas import (
    OrderCreate,
    PaymentConfirmation,
    Product,
    SeedResponse,
    StatusUpdate,
    StockUpdate,
    TrackingUpdate,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await database.ping()
        await database.ensure_indexes()
        logger.info("MongoDB connected: %s", settings.DATABASE_NAME)
    except PyMongoError as e:
        if settings.is_production:
            logger.error("Cannot connect to MongoDB: %s", e)
            raise
        logger.warning("Cannot connect to MongoDB (%s), continuing in development mode without a database", e)
    yield
    await database.close_db()


app = FastAPI(title="Bonne Affaire 78 API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin
        for origin in [
            "http://localhost:3001",
            "http://localhost:3000",
            "http://127.0.0.1:3001",
            settings.FRONTEND_URL,
        ]
        if origin
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


if not settings.is_production:
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("%s %s", request.method, request.url.path)
        return await call_next(request)


# ---------- Error handling ----------

def validation_response(errors) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "message": "Validation error",
            "errors": [f"{e.field}: {e.message}" for e in errors],
        },
    )


@app.exception_handler(ValidationFailed)
async def handle_validation_failed(request: Request, exc: ValidationFailed):
    return validation_response(exc.errors)


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError):
    errors = field_errors(exc)
    # drop the "body" prefix FastAPI puts in front of payload fields
    errors = [e._replace(field=e.field.removeprefix("body.")) for e in errors]
    return validation_response(errors)


@app.exception_handler(InvalidIdentifier)
async def handle_invalid_identifier(request: Request, exc: InvalidIdentifier):
    return JSONResponse(status_code=400, content={"success": False, "message": "Invalid identifier format"})


@app.exception_handler(NotFound)
async def handle_not_found(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"success": False, "message": str(exc)})


@app.exception_handler(OrderNumberConflict)
async def handle_conflict(request: Request, exc: OrderNumberConflict):
    return JSONResponse(status_code=409, content={"success": False, "message": str(exc)})


@app.exception_handler(Exception)
async def handle_unexpected(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {"success": False, "message": "Internal server error"}
    if not settings.is_production:
        content["message"] = str(exc)
        content["stack"] = traceback.format_exception(exc)
    return JSONResponse(status_code=500, content=content)


# ---------- Health & Test ----------

@app.get("/")
async def root():
    return {"message": "Bonne Affaire 78 backend running"}


@app.get("/api")
async def api_info():
    return {
        "message": "Bonne Affaire 78 API",
        "version": "1.0.0",
        "status": "active",
        "timestamp": database.utcnow().isoformat(),
        "environment": settings.ENVIRONMENT,
    }


@app.get("/api/test")
async def test():
    return {
        "success": True,
        "message": "API operational",
        "data": {"server": "Bonne Affaire 78", "uptime": round(time.monotonic() - STARTED_AT, 3)},
    }


# ---------- Product Catalog ----------

SEED_PRODUCTS: list[dict] = [
    {"name": "Canapé-Lit 3 Places Convertible", "description": "Canapé-lit moderne en tissu, conversion facile, matelas confort inclus.", "price": 649, "oldPrice": 999, "category": "salon", "stock": 8, "featured": True},
    {"name": "Table + 6 Chaises Design Moderne", "description": "Ensemble complet table rectangulaire avec 6 chaises assorties.", "price": 449, "oldPrice": 640, "category": "cuisine", "stock": 5, "featured": True},
    {"name": "Set 3 Tables Gigognes Tendance", "description": "Trio de tables gigognes au design épuré, parfait gain de place.", "price": 169, "oldPrice": 309, "category": "gigogne", "stock": 12, "featured": True},
    {"name": "Lit Double 160x200 + Sommier", "description": "Lit double avec tête de lit et sommier à lattes inclus.", "price": 359, "oldPrice": 599, "category": "chambre", "stock": 6, "featured": True},
    {"name": "Canapé-Lit d'Angle XXL", "description": "Grand canapé d'angle convertible avec rangement intégré.", "price": 799, "oldPrice": 1065, "category": "salon", "stock": 3, "featured": True},
    {"name": "Table Ronde + 6 Chaises", "description": "Table ronde extensible en bois massif avec 6 chaises.", "price": 389, "oldPrice": 599, "category": "cuisine", "stock": 4, "featured": True},
    {"name": "Tables Gigognes Marbre & Or (Set de 2)", "description": "Duo de tables gigognes avec plateau effet marbre et pieds dorés.", "price": 119, "oldPrice": 199, "category": "gigogne", "stock": 15, "featured": True},
    {"name": "Lit Simple 90x200 Ado", "description": "Lit simple moderne pour chambre d'ado. Structure robuste.", "price": 179, "oldPrice": 359, "category": "chambre", "stock": 10, "featured": True},
]


@app.post("/seed", response_model=SeedResponse)
async def seed_products():
    # Insert only if products collection is empty
    count = await database.count_documents("product")
    if count == 0:
        for p in SEED_PRODUCTS:
            await products.create_product(Product(**p))
        return SeedResponse(inserted=len(SEED_PRODUCTS))
    return SeedResponse(inserted=0)


@app.get("/api/products")
async def list_products(
    featured: Optional[bool] = Query(None),
    category: Optional[str] = Query(None),
    q: Optional[str] = Query(None),
):
    found = await products.list_products(featured=featured, category=category, q=q)
    return {"success": True, "count": len(found), "data": [p.to_client() for p in found]}


@app.get("/api/products/slug/{slug}")
async def get_product_by_slug(slug: str):
    product = await products.get_product_by_slug(slug)
    return {"success": True, "data": product.to_client()}


@app.get("/api/products/{product_id}")
async def get_product(product_id: str):
    product = await products.increment_views(await products.get_product(product_id))
    return {"success": True, "data": product.to_client()}


@app.post("/api/products", status_code=201)
async def create_product(payload: Product):
    product = await products.create_product(payload)
    return {"success": True, "data": product.to_client()}


@app.patch("/api/products/{product_id}/stock")
async def update_stock(product_id: str, payload: StockUpdate):
    product = await products.update_stock(await products.get_product(product_id), payload.delta)
    return {"success": True, "data": product.to_client()}


@app.post("/api/products/{product_id}/cart")
async def product_added_to_cart(product_id: str):
    product = await products.add_to_cart_count(await products.get_product(product_id))
    return {"success": True, "data": {"addedToCart": product.analytics.added_to_cart}}


# ---------- Orders ----------

@app.post("/api/orders", status_code=201)
async def create_order(payload: OrderCreate):
    order = await orders.create_order(orders.order_from_request(payload))
    return {"success": True, "message": "Order created", "data": order.to_client()}


@app.get("/api/orders/number/{order_number}")
async def get_order_by_number(order_number: str):
    order = await orders.get_order_by_number(order_number)
    return {"success": True, "data": order.to_client()}


@app.get("/api/orders/{order_id}")
async def get_order(order_id: str):
    order = await orders.get_order(order_id)
    return {"success": True, "data": order.to_client()}


@app.put("/api/orders/{order_id}/status")
async def update_order_status(order_id: str, payload: StatusUpdate):
    order = await orders.update_status(await orders.get_order(order_id), payload.status, payload.note)
    return {"success": True, "data": order.to_client()}


@app.post("/api/orders/{order_id}/pay")
async def mark_order_paid(order_id: str, payload: PaymentConfirmation):
    order = await orders.mark_as_paid(await orders.get_order(order_id), payload.transaction_id)
    return {"success": True, "data": order.to_client()}


@app.post("/api/orders/{order_id}/tracking")
async def add_order_tracking(order_id: str, payload: TrackingUpdate):
    order = await orders.add_tracking_number(
        await orders.get_order(order_id), payload.tracking_number, payload.carrier
    )
    return {"success": True, "data": order.to_client()}


@app.post("/api/orders/{order_id}/deliver")
async def mark_order_delivered(order_id: str):
    order = await orders.mark_as_delivered(await orders.get_order(order_id))
    return {"success": True, "data": order.to_client()}
