"""FastAPI routes for the Settlement domain.

Writes go through Protean commands processed synchronously; reads go through
the query modules. Domain errors are mapped to HTTP responses by Protean's
exception handlers, registered on the application.
"""

import json

import structlog
from fastapi import APIRouter, Header, HTTPException, Request
from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

from settlement.api.schemas import (
    AdminReviewResponse,
    CancelOrderRequest,
    CreatePayoutRequest,
    CreatePromoCodeRequest,
    DecideReturnRequest,
    EligibleItemResponse,
    EvidenceSchema,
    FileReturnRequest,
    OrderIdResponse,
    OrderItemResponse,
    OrderResponse,
    PayoutDetailResponse,
    PayoutIdResponse,
    PayoutListResponse,
    PayoutResponse,
    PlaceOrderRequest,
    PromoCodeIdResponse,
    PromoQuoteResponse,
    ReturnDetailResponse,
    ReturnIdResponse,
    ReturnItemResponse,
    ReturnResponse,
    ReviewReturnRequest,
    SellerEarningsResponse,
    ShippingUpdateRequest,
    StudioFeedbackRequest,
    StudioFeedbackResponse,
    TrackingEntryResponse,
    UpdatePayoutRequest,
    ValidatePromoRequest,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookAckResponse,
)
from settlement.order.cancellation import CancelOrder
from settlement.order.order import Order
from settlement.order.placement import PlaceOrder
from settlement.order.queries import orders_for_buyer
from settlement.order.shipping import ApplyShippingUpdate
from settlement.payment.capture import ConfirmPayment
from settlement.payment.gateway import get_gateway
from settlement.payment.webhook import handle_webhook_event
from settlement.payout.batching import CreatePayout
from settlement.payout.lifecycle import UpdatePayoutStatus
from settlement.payout.payout import Payout
from settlement.payout.queries import get_payout_detail, list_payouts, seller_earnings
from settlement.promo.validation import CreatePromoCode, validate_promo
from settlement.returns.completion import CompleteReturn
from settlement.returns.decision import DecideReturn
from settlement.returns.feedback import AddStudioFeedback
from settlement.returns.filing import FileReturn
from settlement.returns.queries import eligible_return_items, get_return_detail, list_returns
from settlement.returns.return_request import ReturnRequest
from settlement.returns.review import StartReturnReview

logger = structlog.get_logger(__name__)


def _str_or_none(value) -> str | None:
    return str(value) if value is not None else None


# ---------------------------------------------------------------------------
# Response builders
# ---------------------------------------------------------------------------
def _order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=str(order.id),
        order_number=order.order_number,
        buyer_id=str(order.buyer_id),
        items=[
            OrderItemResponse(
                id=str(i.id),
                item_id=str(i.item_id),
                item_type=i.item_type,
                seller_id=str(i.seller_id),
                seller_name=i.seller_name,
                name=i.name,
                price=i.price,
                quantity=i.quantity,
                payout_status=i.payout_status,
                payout_id=_str_or_none(i.payout_id),
            )
            for i in order.items or []
        ],
        subtotal=order.subtotal,
        shipping=order.shipping,
        discount=order.discount,
        tax=order.tax,
        total=order.total,
        promo_code=order.promo_code,
        status=order.status,
        payment_status=order.payment_status,
        payment_method=order.payment_method,
        gateway_order_id=order.gateway_order_id,
        gateway_payment_id=order.gateway_payment_id,
        refunded_amount=order.refunded_amount,
        tracking_history=[
            TrackingEntryResponse(
                status=t.status,
                message=t.message,
                updated_by=_str_or_none(t.updated_by),
                timestamp=t.timestamp,
            )
            for t in sorted(order.tracking_history or [], key=lambda t: t.timestamp)
        ],
        created_at=order.created_at,
    )


def _payout_response(payout: Payout) -> PayoutResponse:
    details = payout.payment_details
    return PayoutResponse(
        id=str(payout.id),
        seller_id=str(payout.seller_id),
        seller_name=payout.seller_name,
        seller_email=payout.seller_email,
        order_ids=payout.order_id_list,
        order_count=payout.order_count,
        item_count=payout.item_count,
        gross_earnings=payout.gross_earnings,
        platform_fees=payout.platform_fees,
        processing_fees=payout.processing_fees,
        net_earnings=payout.net_earnings,
        currency=payout.currency,
        status=payout.status,
        payment_method=payout.payment_method,
        transaction_id=details.transaction_id if details else None,
        notes=details.notes if details else None,
        failure_reason=payout.failure_reason,
        period_start=payout.period_start,
        period_end=payout.period_end,
        processed_by=_str_or_none(payout.processed_by),
        processed_at=payout.processed_at,
        created_at=payout.created_at,
    )


def _return_response(request: ReturnRequest) -> ReturnResponse:
    item = request.item
    review = request.admin_review
    return ReturnResponse(
        id=str(request.id),
        request_number=request.request_number,
        order_id=str(request.order_id),
        buyer_id=str(request.buyer_id),
        item=ReturnItemResponse(
            order_item_id=str(item.order_item_id),
            item_id=str(item.item_id),
            name=item.name,
            price=item.price,
            quantity=item.quantity,
            seller_id=str(item.seller_id),
            seller_name=item.seller_name,
        ),
        return_type=request.return_type,
        reason=request.reason,
        description=request.description,
        status=request.status,
        refund_amount=request.refund_amount,
        admin_review=AdminReviewResponse(
            reviewed_by=str(review.reviewed_by),
            reviewed_at=review.reviewed_at,
            decision=review.decision,
            notes=review.notes,
            refund_amount=review.refund_amount,
        )
        if review
        else None,
        studio_feedback=[
            StudioFeedbackResponse(seller_id=str(f.seller_id), message=f.message, created_at=f.created_at)
            for f in sorted(request.studio_feedback or [], key=lambda f: f.created_at)
        ],
        evidence=[EvidenceSchema(media_type=e.media_type, url=e.url, filename=e.filename) for e in request.evidence or []],
        created_at=request.created_at,
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderIdResponse)
async def place_order(body: PlaceOrderRequest) -> OrderIdResponse:
    """Record a checkout awaiting payment."""
    command = PlaceOrder(
        buyer_id=body.buyer_id,
        items=json.dumps([item.model_dump() for item in body.items]),
        shipping=body.shipping,
        tax=body.tax,
        discount=body.discount,
        promo_code=body.promo_code,
        payment_method=body.payment_method,
        gateway_order_id=body.gateway_order_id,
    )
    order_id = current_domain.process(command, asynchronous=False)
    return OrderIdResponse(order_id=order_id)


@order_router.get("", response_model=list[OrderResponse])
async def get_buyer_orders(buyer_id: str, status: str | None = None) -> list[OrderResponse]:
    """The buyer's orders, newest first."""
    return [_order_response(o) for o in orders_for_buyer(buyer_id, status=status)]


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    order = current_domain.repository_for(Order).get(order_id)
    return _order_response(order)


@order_router.put("/{order_id}/shipping", response_model=OrderResponse)
async def update_shipping(order_id: str, body: ShippingUpdateRequest) -> OrderResponse:
    """Seller moves the order forward, optionally attaching tracking details."""
    command = ApplyShippingUpdate(
        order_id=order_id,
        seller_id=body.seller_id,
        new_status=body.status,
        carrier=body.carrier,
        tracking_number=body.tracking_number,
        tracking_url=body.tracking_url,
    )
    current_domain.process(command, asynchronous=False)
    return _order_response(current_domain.repository_for(Order).get(order_id))


@order_router.put("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: str, body: CancelOrderRequest) -> OrderResponse:
    command = CancelOrder(order_id=order_id, cancelled_by=body.cancelled_by, reason=body.reason)
    current_domain.process(command, asynchronous=False)
    return _order_response(current_domain.repository_for(Order).get(order_id))


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/verify", response_model=VerifyPaymentResponse)
async def verify_payment(body: VerifyPaymentRequest) -> VerifyPaymentResponse:
    """Confirm a payment from the buyer's signed checkout return."""
    command = ConfirmPayment(
        order_id=body.order_id,
        gateway_order_id=body.razorpay_order_id,
        gateway_payment_id=body.razorpay_payment_id,
        signature=body.razorpay_signature,
        method=body.method,
    )
    result = current_domain.process(command, asynchronous=False)
    return VerifyPaymentResponse(**result)


# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@webhook_router.post("/razorpay", response_model=WebhookAckResponse)
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: str | None = Header(default=None),
    x_signature: str | None = Header(default=None),
) -> WebhookAckResponse:
    """Apply a gateway webhook delivery.

    The signature is checked over the exact bytes received, so the body is
    read raw rather than through a schema.
    """
    raw_body = await request.body()
    try:
        handle_webhook_event(raw_body, x_razorpay_signature or x_signature, get_gateway())
    except ExpectedVersionError as exc:
        logger.warning("webhook_concurrent_update", error=str(exc))
        raise HTTPException(status_code=409, detail="Order was updated concurrently, retry delivery") from exc
    return WebhookAckResponse(received=True)


# ---------------------------------------------------------------------------
# Payout Router
# ---------------------------------------------------------------------------
payout_router = APIRouter(prefix="/payouts", tags=["payouts"])


@payout_router.post("", status_code=201, response_model=PayoutIdResponse)
async def create_payout(body: CreatePayoutRequest) -> PayoutIdResponse:
    """Batch a seller's unsettled items in the period into a new payout."""
    command = CreatePayout(
        seller_id=body.seller_id,
        period_start=body.period_start,
        period_end=body.period_end,
        payment_method=body.payment_method,
        seller_name=body.seller_name,
        seller_email=body.seller_email,
        notes=body.notes,
    )
    payout_id = current_domain.process(command, asynchronous=False)
    return PayoutIdResponse(payout_id=payout_id)


@payout_router.get("", response_model=PayoutListResponse)
async def get_payouts(status: str | None = None, seller_id: str | None = None) -> PayoutListResponse:
    result = list_payouts(status=status, seller_id=seller_id)
    return PayoutListResponse(
        payouts=[_payout_response(p) for p in result["payouts"]],
        summary=result["summary"],
    )


@payout_router.get("/{payout_id}", response_model=PayoutDetailResponse)
async def get_payout(payout_id: str) -> PayoutDetailResponse:
    detail = get_payout_detail(payout_id)
    return PayoutDetailResponse(payout=_payout_response(detail["payout"]), orders=detail["orders"])


@payout_router.patch("/{payout_id}", response_model=PayoutResponse)
async def update_payout(payout_id: str, body: UpdatePayoutRequest) -> PayoutResponse:
    command = UpdatePayoutStatus(
        payout_id=payout_id,
        status=body.status,
        processed_by=body.processed_by,
        transaction_id=body.transaction_id,
        notes=body.notes,
        failure_reason=body.failure_reason,
    )
    current_domain.process(command, asynchronous=False)
    return _payout_response(current_domain.repository_for(Payout).get(payout_id))


seller_router = APIRouter(prefix="/sellers", tags=["payouts"])


@seller_router.get("/{seller_id}/earnings", response_model=SellerEarningsResponse)
async def get_seller_earnings(seller_id: str) -> SellerEarningsResponse:
    return SellerEarningsResponse(**seller_earnings(seller_id))


# ---------------------------------------------------------------------------
# Return Router
# ---------------------------------------------------------------------------
return_router = APIRouter(prefix="/returns", tags=["returns"])


@return_router.post("", status_code=201, response_model=ReturnIdResponse)
async def file_return(body: FileReturnRequest) -> ReturnIdResponse:
    command = FileReturn(
        buyer_id=body.buyer_id,
        order_id=body.order_id,
        item_ref=body.item_id,
        return_type=body.return_type,
        reason=body.reason,
        description=body.description,
        evidence=json.dumps([e.model_dump() for e in body.evidence]) if body.evidence else None,
    )
    return_id = current_domain.process(command, asynchronous=False)
    return ReturnIdResponse(return_id=return_id)


@return_router.get("", response_model=list[ReturnResponse])
async def get_returns(
    buyer_id: str | None = None,
    seller_id: str | None = None,
    status: str | None = None,
) -> list[ReturnResponse]:
    return [_return_response(r) for r in list_returns(buyer_id=buyer_id, seller_id=seller_id, status=status)]


@return_router.get("/eligible", response_model=list[EligibleItemResponse])
async def get_eligible_items(buyer_id: str) -> list[EligibleItemResponse]:
    """Items the buyer could still file a return for."""
    return [EligibleItemResponse(**item) for item in eligible_return_items(buyer_id)]


@return_router.get("/{return_id}", response_model=ReturnDetailResponse)
async def get_return(return_id: str) -> ReturnDetailResponse:
    detail = get_return_detail(return_id)
    return ReturnDetailResponse(
        request=_return_response(detail["request"]),
        order=detail["order"],
        order_item=detail["order_item"],
    )


@return_router.put("/{return_id}/review", response_model=ReturnResponse)
async def start_review(return_id: str, body: ReviewReturnRequest) -> ReturnResponse:
    current_domain.process(StartReturnReview(return_id=return_id, admin_id=body.admin_id), asynchronous=False)
    return _return_response(current_domain.repository_for(ReturnRequest).get(return_id))


@return_router.put("/{return_id}/decision", response_model=ReturnResponse)
async def decide_return(return_id: str, body: DecideReturnRequest) -> ReturnResponse:
    """Approve or reject a return. Approval refunds the order item."""
    command = DecideReturn(
        return_id=return_id,
        admin_id=body.admin_id,
        decision=body.decision,
        notes=body.notes,
        refund_amount=body.refund_amount,
    )
    current_domain.process(command, asynchronous=False)
    return _return_response(current_domain.repository_for(ReturnRequest).get(return_id))


@return_router.put("/{return_id}/complete", response_model=ReturnResponse)
async def complete_return(return_id: str) -> ReturnResponse:
    current_domain.process(CompleteReturn(return_id=return_id), asynchronous=False)
    return _return_response(current_domain.repository_for(ReturnRequest).get(return_id))


@return_router.post("/{return_id}/feedback", response_model=ReturnResponse)
async def add_feedback(return_id: str, body: StudioFeedbackRequest) -> ReturnResponse:
    command = AddStudioFeedback(return_id=return_id, seller_id=body.seller_id, message=body.message)
    current_domain.process(command, asynchronous=False)
    return _return_response(current_domain.repository_for(ReturnRequest).get(return_id))


# ---------------------------------------------------------------------------
# Promo Code Router
# ---------------------------------------------------------------------------
promo_router = APIRouter(prefix="/promo-codes", tags=["promo-codes"])


@promo_router.post("", status_code=201, response_model=PromoCodeIdResponse)
async def create_promo_code(body: CreatePromoCodeRequest) -> PromoCodeIdResponse:
    command = CreatePromoCode(**body.model_dump())
    promo_code_id = current_domain.process(command, asynchronous=False)
    return PromoCodeIdResponse(promo_code_id=promo_code_id)


@promo_router.post("/validate", response_model=PromoQuoteResponse)
async def validate_promo_code(body: ValidatePromoRequest) -> PromoQuoteResponse:
    """Quote a promo discount without consuming the code."""
    quote = validate_promo(body.code, body.cart_total, buyer_id=body.buyer_id)
    return PromoQuoteResponse(
        code=quote.code,
        discount_amount=quote.discount_amount,
        discount_type=quote.discount_type,
        discount_value=quote.discount_value,
    )
