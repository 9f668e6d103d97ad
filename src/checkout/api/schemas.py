"""Pydantic request/response schemas for the Checkout API.

These are external contracts (anti-corruption layer), separate from
internal Protean commands and settlement value objects.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from checkout.cart.lines import CartLine, Customer


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    recipient: str | None = None
    street: str
    city: str
    state: str | None = None
    postal_code: str | None = None
    country: str = Field(min_length=2, max_length=2)
    phone: str | None = None


class CartLineSchema(BaseModel):
    id: str
    listing_id: str
    merchant_id: str
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)
    currency: str = "USD"
    variant_id: str | None = None
    title: str = ""
    sku: str | None = None
    options: list[tuple[str, str]] = []

    def to_line(self) -> CartLine:
        return CartLine.from_dict(self.model_dump())


class CustomerSchema(BaseModel):
    id: str | None = None
    email: str | None = None

    def to_customer(self) -> Customer:
        return Customer(id=self.id, email=self.email)


class CartRequest(BaseModel):
    lines: list[CartLineSchema] = Field(min_length=1)
    customer: CustomerSchema = CustomerSchema()

    def cart_lines(self) -> list[CartLine]:
        return [line.to_line() for line in self.lines]

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "lines": [
                        {
                            "id": "line-a",
                            "listing_id": "lst-001",
                            "merchant_id": "mer-001",
                            "quantity": 2,
                            "unit_price": 10.0,
                        }
                    ],
                    "customer": {"id": "cust-001", "email": "shopper@example.com"},
                }
            ]
        }
    }


# ---------------------------------------------------------------------------
# Promotion schemas
# ---------------------------------------------------------------------------
class CreatePromotionRequest(BaseModel):
    name: str
    value_type: str
    value: float = Field(ge=0)
    code: str | None = None
    currency: str | None = None
    eligible_customers: list[str] = []
    target_product_ids: list[str] = []
    min_purchase_amount: float | None = Field(default=None, ge=0)
    min_purchase_quantity: int | None = Field(default=None, ge=1)
    usage_limit: int | None = Field(default=None, ge=1)
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    is_active: bool = True
    owner_type: str = "Platform"
    owner_id: str | None = None


class SetPromotionActiveRequest(BaseModel):
    is_active: bool


class PromotionIdResponse(BaseModel):
    promotion_id: str


class EvaluatePromotionsRequest(CartRequest):
    code: str | None = None


# ---------------------------------------------------------------------------
# Shipping schemas
# ---------------------------------------------------------------------------
class CreateShippingProfileRequest(BaseModel):
    merchant_id: str
    name: str
    is_default: bool = False
    currency: str = "USD"
    origin_country: str | None = None


class AddDestinationRequest(BaseModel):
    country_code: str | None = None
    everywhere_else: bool = False
    is_excluded: bool = False


class AddRateRequest(BaseModel):
    destination_id: str
    service_name: str
    first_item_price_minor: int = Field(default=0, ge=0)
    additional_item_price_minor: int = Field(default=0, ge=0)
    is_free: bool = False
    transit_days_min: int | None = Field(default=None, ge=0)
    transit_days_max: int | None = Field(default=None, ge=0)
    sort_order: int = 0


class AssignListingRequest(BaseModel):
    merchant_id: str


class IdResponse(BaseModel):
    id: str


class ShippingOptionsRequest(CartRequest):
    destination_country: str = Field(min_length=2, max_length=2)


# ---------------------------------------------------------------------------
# Inventory schemas
# ---------------------------------------------------------------------------
class SetStockLevelRequest(BaseModel):
    stock_key: str
    location_id: str = "default"
    available: int = Field(ge=0)
    listing_id: str | None = None
    reason: str | None = None


class StockAvailabilityResponse(BaseModel):
    stock_key: str
    available: int


# ---------------------------------------------------------------------------
# Checkout / order schemas
# ---------------------------------------------------------------------------
class PlaceOrdersRequest(CartRequest):
    shipping_address: AddressSchema
    billing_address: AddressSchema | None = None
    code: str | None = None
    service_name: str | None = None
    notes: str | None = None
    tax_amounts: dict[str, float] = {}


class PaymentSessionRequest(BaseModel):
    order_ids: list[str] = Field(min_length=1)


class PaymentCallbackRequest(BaseModel):
    payment_session_id: str
    payment_reference: str | None = None


class UpdateWorkflowStatusRequest(BaseModel):
    workflow_status: str
    hold_reason: str | None = None


class ReasonRequest(BaseModel):
    reason: str | None = None


class StatusResponse(BaseModel):
    status: str = "ok"
