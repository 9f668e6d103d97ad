"""FastAPI routes for checkout: promotions, shipping, stock, settlement and orders."""

import json

from fastapi import APIRouter, Header, HTTPException
from protean.utils.globals import current_domain

from checkout.api.schemas import (
    AddDestinationRequest,
    AddRateRequest,
    AssignListingRequest,
    CartRequest,
    CreatePromotionRequest,
    CreateShippingProfileRequest,
    EvaluatePromotionsRequest,
    IdResponse,
    PaymentCallbackRequest,
    PaymentSessionRequest,
    PlaceOrdersRequest,
    PromotionIdResponse,
    ReasonRequest,
    SetPromotionActiveRequest,
    SetStockLevelRequest,
    ShippingOptionsRequest,
    StatusResponse,
    StockAvailabilityResponse,
    UpdateWorkflowStatusRequest,
)
from checkout.gateway import get_gateway
from checkout.inventory.oracle import get_inventory_oracle
from checkout.inventory.stocking import SetStockLevel
from checkout.order.lifecycle import CancelOrder, FulfillOrder, RecordPayment, RefundOrder
from checkout.order.order import MerchantOrder
from checkout.order.workflow import UpdateWorkflowStatus
from checkout.promotion.management import CreatePromotionRule, DuplicatePromotionRule, SetPromotionActive
from checkout.settlement.service import CheckoutSettlement
from checkout.shipping.management import (
    AddShippingDestination,
    AddShippingRate,
    AssignListingShipping,
    CreateShippingProfile,
)

# ---------------------------------------------------------------------------
# Promotion Router
# ---------------------------------------------------------------------------
promotion_router = APIRouter(prefix="/promotions", tags=["promotions"])


@promotion_router.post("", status_code=201, response_model=PromotionIdResponse)
async def create_promotion(body: CreatePromotionRequest) -> PromotionIdResponse:
    command = CreatePromotionRule(
        name=body.name,
        value_type=body.value_type,
        value=body.value,
        code=body.code,
        currency=body.currency,
        eligible_customers=json.dumps(body.eligible_customers),
        target_product_ids=json.dumps(body.target_product_ids),
        min_purchase_amount=body.min_purchase_amount,
        min_purchase_quantity=body.min_purchase_quantity,
        usage_limit=body.usage_limit,
        starts_at=body.starts_at,
        ends_at=body.ends_at,
        is_active=body.is_active,
        owner_type=body.owner_type,
        owner_id=body.owner_id,
    )
    result = current_domain.process(command, asynchronous=False)
    return PromotionIdResponse(promotion_id=result)


@promotion_router.put("/{promotion_id}/active", response_model=StatusResponse)
async def set_promotion_active(promotion_id: str, body: SetPromotionActiveRequest) -> StatusResponse:
    command = SetPromotionActive(promotion_id=promotion_id, is_active=body.is_active)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@promotion_router.post("/{promotion_id}/duplicate", status_code=201, response_model=PromotionIdResponse)
async def duplicate_promotion(promotion_id: str) -> PromotionIdResponse:
    result = current_domain.process(DuplicatePromotionRule(promotion_id=promotion_id), asynchronous=False)
    return PromotionIdResponse(promotion_id=result)


# ---------------------------------------------------------------------------
# Shipping Profile Router
# ---------------------------------------------------------------------------
shipping_router = APIRouter(prefix="/shipping-profiles", tags=["shipping"])


@shipping_router.post("", status_code=201, response_model=IdResponse)
async def create_shipping_profile(body: CreateShippingProfileRequest) -> IdResponse:
    command = CreateShippingProfile(
        merchant_id=body.merchant_id,
        name=body.name,
        is_default=body.is_default,
        currency=body.currency,
        origin_country=body.origin_country,
    )
    return IdResponse(id=current_domain.process(command, asynchronous=False))


@shipping_router.post("/{profile_id}/destinations", status_code=201, response_model=IdResponse)
async def add_destination(profile_id: str, body: AddDestinationRequest) -> IdResponse:
    command = AddShippingDestination(
        profile_id=profile_id,
        country_code=body.country_code,
        everywhere_else=body.everywhere_else,
        is_excluded=body.is_excluded,
    )
    return IdResponse(id=current_domain.process(command, asynchronous=False))


@shipping_router.post("/{profile_id}/rates", status_code=201, response_model=IdResponse)
async def add_rate(profile_id: str, body: AddRateRequest) -> IdResponse:
    command = AddShippingRate(profile_id=profile_id, **body.model_dump())
    return IdResponse(id=current_domain.process(command, asynchronous=False))


@shipping_router.put("/{profile_id}/listings/{listing_id}", response_model=StatusResponse)
async def assign_listing(profile_id: str, listing_id: str, body: AssignListingRequest) -> StatusResponse:
    command = AssignListingShipping(listing_id=listing_id, merchant_id=body.merchant_id, profile_id=profile_id)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Stock Router
# ---------------------------------------------------------------------------
stock_router = APIRouter(prefix="/stock-levels", tags=["inventory"])


@stock_router.put("", response_model=IdResponse)
async def set_stock_level(body: SetStockLevelRequest) -> IdResponse:
    command = SetStockLevel(**body.model_dump())
    return IdResponse(id=current_domain.process(command, asynchronous=False))


@stock_router.get("/{stock_key}", response_model=StockAvailabilityResponse)
async def get_availability(stock_key: str) -> StockAvailabilityResponse:
    return StockAvailabilityResponse(stock_key=stock_key, available=get_inventory_oracle().get_available(stock_key))


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


@checkout_router.post("/promotions")
async def evaluate_promotions(body: EvaluatePromotionsRequest) -> dict:
    outcome = CheckoutSettlement().evaluate_promotions(body.cart_lines(), body.customer.to_customer(), body.code)
    return outcome.to_dict()


@checkout_router.post("/shippability")
async def check_shippability(body: ShippingOptionsRequest) -> dict:
    report = await CheckoutSettlement().check_shippability(body.cart_lines(), body.destination_country)
    return {
        "destination_country": report.destination_country,
        "shippable": report.shippable,
        "retryable": report.retryable,
        "blocked_lines": [line.to_dict() for line in report.blocked],
    }


@checkout_router.post("/shipping-options")
async def get_shipping_options(body: ShippingOptionsRequest) -> dict:
    options = await CheckoutSettlement().get_shipping_options(body.cart_lines(), body.destination_country)
    return options.to_dict()


@checkout_router.post("/orders", status_code=201)
async def place_orders(body: PlaceOrdersRequest) -> dict:
    """Run the whole settlement pipeline and commit the orders.

    Promotions and shipping are re-evaluated server-side; the storefront only
    names the code and the carrier service the shopper picked.
    """
    result = await CheckoutSettlement().settle(
        body.cart_lines(),
        body.customer.to_customer(),
        body.shipping_address.country,
        body.shipping_address.model_dump(),
        code=body.code,
        service_name=body.service_name,
        billing_address=body.billing_address.model_dump() if body.billing_address else None,
        notes=body.notes,
        tax_amounts=body.tax_amounts,
    )
    return result.to_dict()


@checkout_router.post("/payment-session")
async def start_payment_session(body: PaymentSessionRequest) -> dict:
    return CheckoutSettlement().start_payment_session(body.order_ids).to_dict()


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("/{order_id}")
async def get_order(order_id: str) -> dict:
    order = current_domain.repository_for(MerchantOrder).get(order_id)
    return {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "checkout_id": str(order.checkout_id),
        "merchant_id": str(order.merchant_id),
        "currency": order.currency,
        "subtotal": order.subtotal,
        "discount_amount": order.discount_amount,
        "shipping_amount": order.shipping_amount,
        "tax_amount": order.tax_amount,
        "total_amount": order.total_amount,
        "payment_status": order.payment_status,
        "fulfillment_status": order.fulfillment_status,
        "status": order.status,
        "workflow_status": order.workflow_status,
        "hold_reason": order.hold_reason,
        "items": [
            {
                "cart_line_id": item.cart_line_id,
                "listing_id": str(item.listing_id),
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "discount_amount": item.discount_amount,
            }
            for item in order.items
        ],
        "timeline": [
            {
                "event": entry.event,
                "previous_value": entry.previous_value,
                "new_value": entry.new_value,
                "occurred_at": entry.occurred_at.isoformat(),
            }
            for entry in sorted(order.timeline, key=lambda e: e.occurred_at)
        ],
    }


@order_router.put("/{order_id}/workflow-status", response_model=StatusResponse)
async def update_workflow_status(order_id: str, body: UpdateWorkflowStatusRequest) -> StatusResponse:
    command = UpdateWorkflowStatus(
        order_id=order_id,
        workflow_status=body.workflow_status,
        hold_reason=body.hold_reason,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@order_router.post("/{order_id}/fulfill", response_model=StatusResponse)
async def fulfill_order(order_id: str) -> StatusResponse:
    current_domain.process(FulfillOrder(order_id=order_id), asynchronous=False)
    return StatusResponse()


@order_router.post("/{order_id}/cancel", response_model=StatusResponse)
async def cancel_order(order_id: str, body: ReasonRequest) -> StatusResponse:
    current_domain.process(CancelOrder(order_id=order_id, reason=body.reason), asynchronous=False)
    return StatusResponse()


@order_router.post("/{order_id}/refund", response_model=StatusResponse)
async def refund_order(order_id: str, body: ReasonRequest) -> StatusResponse:
    current_domain.process(RefundOrder(order_id=order_id, reason=body.reason), asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Payment Callback Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/callback", response_model=StatusResponse)
async def payment_callback(
    body: PaymentCallbackRequest,
    x_signature: str = Header(default=""),
) -> StatusResponse:
    """Gateway webhook: the payment session was paid."""
    if not get_gateway().verify_webhook_signature(body.model_dump_json(), x_signature):
        raise HTTPException(status_code=401, detail="Invalid signature")

    command = RecordPayment(
        payment_session_id=body.payment_session_id,
        payment_reference=body.payment_reference,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()
