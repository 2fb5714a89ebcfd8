"""
Database Schemas

MongoDB collection documents and API request bodies, as Pydantic models.
Reference lists (Customer.orders, Item.reviews) hold child ids only; they are
changed exclusively through relations.py.
"""

from typing import Annotated, Any, Dict, List, Optional

from bson import ObjectId
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.networks import validate_email


def _check_email(value: str) -> str:
    # EmailStr would lowercase the domain; emails are matched exactly as typed
    validate_email(value)
    return value


Email = Annotated[str, AfterValidator(_check_email)]


# Stored documents

class Customer(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    email: Email = Field(..., description="Unique, case-sensitive login key")
    password_hash: str = Field(..., description="BCrypt hashed password")
    name: str
    last_name: Optional[str] = None
    orders: List[ObjectId] = Field(default_factory=list, description="Order ids, oldest first")


class Order(BaseModel):
    title: str
    date: Optional[str] = None
    items: List[Dict[str, Any]] = Field(default_factory=list, description="Opaque line items")


class Item(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    price: float = Field(..., ge=0)
    image: Optional[str] = None
    reviews: List[ObjectId] = Field(default_factory=list, description="Review ids, oldest first")


class Review(BaseModel):
    rating: float = Field(..., ge=0, le=5)
    comment: str


# Auth bodies

class RegisterInput(BaseModel):
    email: Email
    password: str = Field(..., min_length=1)
    name: str
    last_name: Optional[str] = None


class LoginInput(BaseModel):
    email: Email
    password: str


class ValidatePasswordInput(BaseModel):
    customer_id: str
    old_password: str


class ChangePasswordInput(BaseModel):
    old_password: str
    new_password: str = Field(..., min_length=1)


class CustomerUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: Optional[Email] = None
    name: Optional[str] = None
    last_name: Optional[str] = None

    @field_validator("email", "name")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


# Catalog / order bodies

class OrderIn(BaseModel):
    title: str
    date: Optional[str] = None
    items: List[Dict[str, Any]] = Field(default_factory=list)


class ItemIn(BaseModel):
    name: str
    price: float = Field(..., ge=0)
    image: Optional[str] = None


class ItemUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    image: Optional[str] = None

    @field_validator("name", "price")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class ReviewIn(BaseModel):
    # Checked by relations.validate_rating, not here.
    rating: Any = None
    comment: str
