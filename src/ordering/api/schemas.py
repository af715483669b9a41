"""Pydantic request/response schemas for the Ordering API.

These are external contracts (anti-corruption layer), separate from the
internal Protean commands.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    name: str | None = None
    phone: str | None = None
    street: str
    landmark: str | None = None
    city: str
    state: str
    postal_code: str
    country: str = "India"


class OrderLineRequest(BaseModel):
    product_id: str
    variant_id: str | None = None
    size_id: str | None = None
    quantity: int = Field(ge=1)
    rental_days: int | None = Field(default=None, ge=1)
    start_date: date | None = None
    end_date: date | None = None


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    customer_id: str
    items: list[OrderLineRequest]
    shipping_address: AddressSchema
    billing_address: AddressSchema | None = None
    shipping_charge: float = 0.0
    discount: float = 0.0
    tax: float = 0.0
    payment_method: str = "cod"
    customer_note: str | None = Field(default=None, max_length=500)
    delivery_date: date | None = None
    return_date: date | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer_id": "cust-001",
                    "items": [{"product_id": "prod-001", "quantity": 2}],
                    "shipping_address": {
                        "street": "12 MG Road",
                        "city": "Bengaluru",
                        "state": "Karnataka",
                        "postal_code": "560001",
                        "country": "India",
                    },
                    "shipping_charge": 100.0,
                }
            ]
        }
    }


class UpdateStatusRequest(BaseModel):
    status: str
    reason: str | None = None
    cancelled_by: str = "admin"
    tracking_number: str | None = None
    courier: str | None = None
    expected_delivery: str | None = None
    admin_note: str | None = Field(default=None, max_length=1000)
    expected_status: str | None = None
    expected_version: int | None = None


class CancelOrderRequest(BaseModel):
    customer_id: str
    reason: str
    expected_version: int | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class OrderItemResponse(BaseModel):
    product_id: str
    variant_id: str | None = None
    size_id: str | None = None
    sku: str | None = None
    product_name: str
    size_label: str | None = None
    color: str | None = None
    unit_price: float
    quantity: int
    line_total: float
    rental_days: int | None = None
    start_date: date | None = None
    end_date: date | None = None


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    customer_id: str
    status: str
    payment_status: str
    payment_method: str
    items: list[OrderItemResponse]
    item_count: int
    subtotal: float
    shipping_charge: float
    discount: float
    tax: float
    total_amount: float
    currency: str
    shipping_address: AddressSchema | None = None
    billing_address: AddressSchema | None = None
    tracking_number: str | None = None
    courier: str | None = None
    expected_delivery: str | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    cancelled_by: str | None = None
    refunded_at: datetime | None = None
    customer_note: str | None = None
    admin_note: str | None = None
    delivery_date: date | None = None
    return_date: date | None = None
    rental_duration: int = 0
    is_active: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int
    next_statuses: list[str]


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    count: int


class NextStatusesResponse(BaseModel):
    order_id: str
    status: str
    next_statuses: list[str]
