"""Pydantic request/response schemas for the Settlement API.

These are external contracts, separate from the internal Protean commands.
Every request body forbids unknown keys so a caller can never smuggle in a
field the handler did not expect (``payment_status``, ``payout_id``...).
"""

from datetime import datetime

from pydantic import BaseModel, Field


class _Request(BaseModel):
    model_config = {"extra": "forbid"}


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderItemSchema(_Request):
    item_id: str
    item_type: str = "product"
    seller_id: str
    seller_name: str | None = None
    name: str
    price: float = Field(ge=0)
    quantity: int = Field(ge=1)


class PlaceOrderRequest(_Request):
    buyer_id: str
    items: list[OrderItemSchema] = Field(min_length=1)
    shipping: float = Field(default=0.0, ge=0)
    tax: float = Field(default=0.0, ge=0)
    discount: float = Field(default=0.0, ge=0)
    promo_code: str | None = None
    payment_method: str = "razorpay"
    gateway_order_id: str | None = None

    model_config = {
        "extra": "forbid",
        "json_schema_extra": {
            "examples": [
                {
                    "buyer_id": "buyer-001",
                    "items": [
                        {
                            "item_id": "prod-001",
                            "item_type": "product",
                            "seller_id": "seller-001",
                            "seller_name": "Clay Studio",
                            "name": "Stoneware Mug",
                            "price": 450.0,
                            "quantity": 2,
                        }
                    ],
                    "shipping": 50.0,
                    "gateway_order_id": "order_N1a2b3c4",
                }
            ]
        },
    }


class ShippingUpdateRequest(_Request):
    seller_id: str
    status: str
    carrier: str | None = None
    tracking_number: str | None = None
    tracking_url: str | None = None


class CancelOrderRequest(_Request):
    cancelled_by: str
    reason: str | None = None


class OrderItemResponse(BaseModel):
    id: str
    item_id: str
    item_type: str
    seller_id: str
    seller_name: str | None = None
    name: str
    price: float
    quantity: int
    payout_status: str
    payout_id: str | None = None


class TrackingEntryResponse(BaseModel):
    status: str
    message: str
    updated_by: str | None = None
    timestamp: datetime


class OrderResponse(BaseModel):
    id: str
    order_number: str | None = None
    buyer_id: str
    items: list[OrderItemResponse]
    subtotal: float
    shipping: float
    discount: float
    tax: float
    total: float
    promo_code: str | None = None
    status: str
    payment_status: str
    payment_method: str | None = None
    gateway_order_id: str | None = None
    gateway_payment_id: str | None = None
    refunded_amount: float
    tracking_history: list[TrackingEntryResponse]
    created_at: datetime | None = None


class OrderIdResponse(BaseModel):
    order_id: str


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
class VerifyPaymentRequest(_Request):
    order_id: str
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str
    method: str | None = None


class VerifyPaymentResponse(BaseModel):
    order_id: str
    gateway_order_id: str | None = None
    gateway_payment_id: str | None = None
    amount: float | None = None
    currency: str | None = None
    method: str | None = None
    payment_status: str
    outcome: str


class WebhookAckResponse(BaseModel):
    received: bool = True


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------
class CreatePayoutRequest(_Request):
    seller_id: str
    period_start: datetime
    period_end: datetime
    payment_method: str = "bank_transfer"
    seller_name: str | None = None
    seller_email: str | None = None
    notes: str | None = None


class UpdatePayoutRequest(_Request):
    status: str
    processed_by: str | None = None
    transaction_id: str | None = None
    notes: str | None = None
    failure_reason: str | None = None


class PayoutResponse(BaseModel):
    id: str
    seller_id: str
    seller_name: str | None = None
    seller_email: str | None = None
    order_ids: list[str]
    order_count: int
    item_count: int
    gross_earnings: float
    platform_fees: float
    processing_fees: float
    net_earnings: float
    currency: str
    status: str
    payment_method: str
    transaction_id: str | None = None
    notes: str | None = None
    failure_reason: str | None = None
    period_start: datetime
    period_end: datetime
    processed_by: str | None = None
    processed_at: datetime | None = None
    created_at: datetime | None = None


class PayoutSummaryBucket(BaseModel):
    count: int
    net_total: float


class PayoutListResponse(BaseModel):
    payouts: list[PayoutResponse]
    summary: dict[str, PayoutSummaryBucket]


class PayoutOrderItem(BaseModel):
    order_item_id: str
    name: str
    price: float
    quantity: int
    line_total: float
    payout_status: str


class PayoutOrder(BaseModel):
    order_id: str
    order_number: str | None = None
    created_at: datetime | None = None
    payment_status: str
    items: list[PayoutOrderItem]


class PayoutDetailResponse(BaseModel):
    payout: PayoutResponse
    orders: list[PayoutOrder]


class PayoutIdResponse(BaseModel):
    payout_id: str


class SellerEarningsResponse(BaseModel):
    seller_id: str
    gross_sales: float
    pending_item_count: int
    pending_amount: float
    unclaimed_amount: float
    total_paid_out: float
    completed_payout_count: int


# ---------------------------------------------------------------------------
# Returns
# ---------------------------------------------------------------------------
class EvidenceSchema(_Request):
    media_type: str = Field(pattern="^(image|video)$")
    url: str
    filename: str | None = None


class FileReturnRequest(_Request):
    buyer_id: str
    order_id: str
    item_id: str
    return_type: str = "refund"
    reason: str
    description: str
    evidence: list[EvidenceSchema] = Field(default_factory=list)


class ReviewReturnRequest(_Request):
    admin_id: str


class DecideReturnRequest(_Request):
    admin_id: str
    decision: str = Field(pattern="^(approved|rejected)$")
    notes: str | None = None
    refund_amount: float | None = Field(default=None, gt=0)


class StudioFeedbackRequest(_Request):
    seller_id: str
    message: str


class ReturnItemResponse(BaseModel):
    order_item_id: str
    item_id: str
    name: str
    price: float
    quantity: int
    seller_id: str
    seller_name: str | None = None


class AdminReviewResponse(BaseModel):
    reviewed_by: str
    reviewed_at: datetime
    decision: str
    notes: str | None = None
    refund_amount: float | None = None


class StudioFeedbackResponse(BaseModel):
    seller_id: str
    message: str
    created_at: datetime


class ReturnResponse(BaseModel):
    id: str
    request_number: str | None = None
    order_id: str
    buyer_id: str
    item: ReturnItemResponse
    return_type: str
    reason: str
    description: str
    status: str
    refund_amount: float
    admin_review: AdminReviewResponse | None = None
    studio_feedback: list[StudioFeedbackResponse]
    evidence: list[EvidenceSchema]
    created_at: datetime | None = None


class ReturnDetailResponse(BaseModel):
    request: ReturnResponse
    order: dict
    order_item: dict | None = None


class ReturnIdResponse(BaseModel):
    return_id: str


class EligibleItemResponse(BaseModel):
    order_id: str
    order_number: str | None = None
    order_item_id: str
    item_id: str
    name: str
    price: float
    quantity: int
    seller_id: str
    payout_status: str


# ---------------------------------------------------------------------------
# Promo codes
# ---------------------------------------------------------------------------
class CreatePromoCodeRequest(_Request):
    code: str = Field(min_length=1, max_length=50)
    name: str | None = None
    description: str | None = None
    discount_type: str = Field(pattern="^(percentage|fixed)$")
    discount_value: float = Field(gt=0)
    max_discount: float | None = Field(default=None, ge=0)
    min_purchase_amount: float = Field(default=0.0, ge=0)
    start_date: datetime
    end_date: datetime
    usage_limit: int | None = Field(default=None, ge=1)
    usage_limit_per_user: int | None = Field(default=None, ge=1)


class ValidatePromoRequest(_Request):
    code: str
    cart_total: float = Field(ge=0)
    buyer_id: str | None = None


class PromoQuoteResponse(BaseModel):
    code: str
    discount_amount: float
    discount_type: str
    discount_value: float


class PromoCodeIdResponse(BaseModel):
    promo_code_id: str
