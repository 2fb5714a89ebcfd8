import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from auth import (
    Identity,
    PasswordHasher,
    TokenService,
    get_password_hasher,
    get_token_service,
    require_identity,
)
from config import get_settings
from database import Store, get_store, parse_object_id, serialize_doc
from errors import (
    AuthenticationFailedError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
    ShopError,
    StorageError,
)
from observability import setup_logging
from relations import RelationshipManager, average_rating
from schemas import (
    ChangePasswordInput,
    Customer as CustomerSchema,
    CustomerUpdate,
    Item as ItemSchema,
    ItemIn,
    ItemUpdate,
    LoginInput,
    Order as OrderSchema,
    OrderIn,
    RegisterInput,
    ReviewIn,
    ValidatePasswordInput,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    logger.info("Shop API started")
    yield
    logger.info("Shop API shutting down")


def get_relations(store: Store = Depends(get_store)) -> RelationshipManager:
    return RelationshipManager(store)


# Error handlers

async def shop_error_handler(request: Request, exc: ShopError):
    log = logger.warning if exc.http_status < 500 else logger.error
    log(f"{exc.code}: {exc.message}", extra={"error_code": exc.code, "path": request.url.path})
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "message": "Invalid request data",
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Invalid request data",
                "category": "validation",
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in e["loc"]),
                        "message": e["msg"],
                        "type": e["type"],
                    }
                    for e in exc.errors()
                ],
            },
        },
    )


async def generic_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "message": "Internal Server Error",
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "category": "internal",
            },
        },
    )


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Shop API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ShopError, shop_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)
    return app


app = create_app()


# Utilities

def _customer_or_404(store: Store, customer_id: str) -> Dict[str, Any]:
    customer = store.customers.find_by_id(parse_object_id(customer_id, "customer id"))
    if not customer:
        raise NotFoundError("Customer", customer_id)
    return customer


def _item_or_404(store: Store, item_id: str) -> Dict[str, Any]:
    item = store.items.find_by_id(parse_object_id(item_id, "item id"))
    if not item:
        raise NotFoundError("Item", item_id)
    return item


def _ensure_email_free(store: Store, email: str, except_id=None):
    existing = store.customers.find_one({"email": email})
    if existing and existing["_id"] != except_id:
        raise ConflictError("Email already in use")


# Routes
@app.get("/")
def read_root():
    return {"message": "Shop API"}


@app.get("/health")
def health(store: Store = Depends(get_store)):
    try:
        store.customers.ping()
    except StorageError:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "reason": "database_unavailable"},
        )
    return {"status": "healthy", "database": "ok"}


# Customers / auth
@app.post("/customers", status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterInput,
    store: Store = Depends(get_store),
    hasher: PasswordHasher = Depends(get_password_hasher),
    tokens: TokenService = Depends(get_token_service),
):
    _ensure_email_free(store, payload.email)
    customer_model = CustomerSchema(
        email=payload.email,
        password_hash=hasher.hash(payload.password),
        name=payload.name,
        last_name=payload.last_name,
    )
    customer_id = store.customers.create(customer_model.model_dump())
    logger.info("Customer registered", extra={"customer_id": str(customer_id)})
    token = tokens.issue(str(customer_id))
    customer = store.customers.find_by_id(customer_id)
    return {"customer": serialize_doc(customer), "token": token}


@app.post("/login/customers")
def login(
    payload: LoginInput,
    store: Store = Depends(get_store),
    hasher: PasswordHasher = Depends(get_password_hasher),
    tokens: TokenService = Depends(get_token_service),
):
    customer = store.customers.find_one({"email": payload.email})
    if not customer or not hasher.verify(payload.password, customer.get("password_hash")):
        raise AuthenticationFailedError()
    token = tokens.issue(str(customer["_id"]))
    return {"token": token, "customer": serialize_doc(customer)}


@app.post("/customers/validate-password")
def validate_password(
    payload: ValidatePasswordInput,
    identity: Identity = Depends(require_identity),
    store: Store = Depends(get_store),
    hasher: PasswordHasher = Depends(get_password_hasher),
):
    customer = store.customers.find_by_id(parse_object_id(payload.customer_id, "customer id"))
    if not customer or not hasher.verify(payload.old_password, customer.get("password_hash")):
        raise AuthenticationFailedError("Invalid old password")
    return {"message": "Password validation successful"}


@app.get("/customers")
def list_customers(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    store: Store = Depends(get_store),
):
    limit = limit or get_settings().customers_page_size
    customers = store.customers.find_many(skip=(page - 1) * limit, limit=limit)
    return [serialize_doc(c) for c in customers]


@app.get("/customers/{customer_id}")
def get_customer(customer_id: str, store: Store = Depends(get_store)):
    return serialize_doc(_customer_or_404(store, customer_id))


@app.put("/customers/{customer_id}")
def change_password(
    customer_id: str,
    payload: ChangePasswordInput,
    identity: Identity = Depends(require_identity),
    store: Store = Depends(get_store),
    hasher: PasswordHasher = Depends(get_password_hasher),
):
    customer = _customer_or_404(store, customer_id)
    if not hasher.verify(payload.old_password, customer.get("password_hash")):
        raise AuthenticationFailedError("Invalid old password")
    store.customers.update_fields(customer["_id"], {"password_hash": hasher.hash(payload.new_password)})
    logger.info("Password changed", extra={"customer_id": customer_id})
    return {"message": "Password updated"}


@app.patch("/customers/{customer_id}")
def update_customer(
    customer_id: str,
    data: CustomerUpdate,
    identity: Identity = Depends(require_identity),
    store: Store = Depends(get_store),
):
    oid = parse_object_id(customer_id, "customer id")
    update_dict = data.model_dump(exclude_unset=True)
    if not update_dict:
        raise InvalidInputError("No fields to update")
    if "email" in update_dict:
        _ensure_email_free(store, update_dict["email"], except_id=oid)
    updated = store.customers.update_fields(oid, update_dict)
    if not updated:
        raise NotFoundError("Customer", customer_id)
    return serialize_doc(updated)


@app.delete("/customers/{customer_id}")
def delete_customer(
    customer_id: str,
    identity: Identity = Depends(require_identity),
    store: Store = Depends(get_store),
):
    removed = store.customers.delete_by_id(parse_object_id(customer_id, "customer id"))
    if not removed:
        raise NotFoundError("Customer", customer_id)
    return {"message": "Customer deleted successfully", "customer": serialize_doc(removed)}


@app.delete("/customers", status_code=status.HTTP_204_NO_CONTENT)
def delete_all_customers(
    identity: Identity = Depends(require_identity),
    relations: RelationshipManager = Depends(get_relations),
):
    relations.delete_all_customers()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Orders
@app.get("/customers/{customer_id}/orders")
def list_orders(customer_id: str, relations: RelationshipManager = Depends(get_relations)):
    orders = relations.list_orders(parse_object_id(customer_id, "customer id"))
    return {"orders": [serialize_doc(o) for o in orders]}


@app.post("/customers/{customer_id}/orders", status_code=status.HTTP_201_CREATED)
def add_order(
    customer_id: str,
    data: OrderIn,
    identity: Identity = Depends(require_identity),
    relations: RelationshipManager = Depends(get_relations),
):
    order = relations.add_order(
        parse_object_id(customer_id, "customer id"), OrderSchema(**data.model_dump()),
    )
    return {"order": serialize_doc(order)}


@app.delete("/customers/{customer_id}/orders/{order_id}")
def remove_order(
    customer_id: str,
    order_id: str,
    identity: Identity = Depends(require_identity),
    relations: RelationshipManager = Depends(get_relations),
):
    relations.remove_order(parse_object_id(customer_id, "customer id"), order_id)
    return {"message": "Order deleted successfully"}


# Items
@app.post("/items", status_code=status.HTTP_201_CREATED)
def create_item(data: ItemIn, store: Store = Depends(get_store)):
    item = ItemSchema(**data.model_dump())
    item_id = store.items.create(item.model_dump())
    return {"item": serialize_doc(store.items.find_by_id(item_id))}


@app.get("/items")
def list_items(store: Store = Depends(get_store)):
    results = []
    for item in store.items.find_many():
        populated = store.items.populate(item, "reviews", store.reviews)
        doc = serialize_doc(item)
        doc["average_rating"] = average_rating(populated["reviews"])
        results.append(doc)
    return results


@app.get("/items/{item_id}")
def get_item(item_id: str, store: Store = Depends(get_store)):
    return serialize_doc(_item_or_404(store, item_id))


@app.patch("/items/{item_id}")
def update_item(item_id: str, data: ItemUpdate, store: Store = Depends(get_store)):
    oid = parse_object_id(item_id, "item id")
    update_dict = data.model_dump(exclude_unset=True)
    if not update_dict:
        raise InvalidInputError("No fields to update")
    updated = store.items.update_fields(oid, update_dict)
    if not updated:
        raise NotFoundError("Item", item_id)
    return serialize_doc(updated)


@app.delete("/items", status_code=status.HTTP_204_NO_CONTENT)
def delete_all_items(relations: RelationshipManager = Depends(get_relations)):
    relations.delete_all_items()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.delete("/items/{item_id}")
def delete_item(item_id: str, store: Store = Depends(get_store)):
    removed = store.items.delete_by_id(parse_object_id(item_id, "item id"))
    if not removed:
        raise NotFoundError("Item", item_id)
    return {"message": "Item deleted successfully", "item": serialize_doc(removed)}


# Reviews
@app.get("/items/{item_id}/reviews")
def list_reviews(item_id: str, relations: RelationshipManager = Depends(get_relations)):
    reviews = relations.list_reviews(parse_object_id(item_id, "item id"))
    return {"reviews": [serialize_doc(r) for r in reviews]}


@app.post("/items/{item_id}/reviews", status_code=status.HTTP_201_CREATED)
def add_review(item_id: str, data: ReviewIn, relations: RelationshipManager = Depends(get_relations)):
    review = relations.add_review(parse_object_id(item_id, "item id"), data.rating, data.comment)
    return serialize_doc(review)


@app.delete("/items/{item_id}/reviews/{review_id}")
def remove_review(item_id: str, review_id: str, relations: RelationshipManager = Depends(get_relations)):
    relations.remove_review(parse_object_id(item_id, "item id"), review_id)
    return {"message": "Review deleted successfully"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
