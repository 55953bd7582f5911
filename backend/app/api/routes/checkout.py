"""Checkout endpoint - POST /api/create-checkout."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from backend.app.config import Settings, get_settings
from backend.app.errors import ErrorKind, GatewayError, InvalidInputError
from backend.app.models.requests import CheckoutRequest
from backend.app.models.responses import CheckoutResponse

router = APIRouter(prefix="/api", tags=["checkout"])
logger = logging.getLogger(__name__)

PURCHASABLE_PLAN = "pro"

# Markers left in an unedited payment-link template
_PLACEHOLDER_MARKERS = ("your_", "_here")


def payment_link_configured(link: str) -> bool:
    """True when the link is set and not a template placeholder."""
    return bool(link) and not any(marker in link for marker in _PLACEHOLDER_MARKERS)


@router.post("/create-checkout", response_model=CheckoutResponse)
async def create_checkout(
    body: CheckoutRequest,
    settings: Annotated[Settings, Depends(get_settings)],
) -> CheckoutResponse:
    """Return the payment link for the Pro plan.

    Raises:
        InvalidInputError: Missing fields (MISSING_INPUT) or unknown plan (INVALID_PLAN)
        GatewayError: CHECKOUT_UNAVAILABLE when no payment link is configured
    """
    if not body.user_id or not body.user_email or not body.plan:
        raise InvalidInputError(
            "Missing required fields: userId, userEmail, plan", kind=ErrorKind.MISSING_INPUT
        )

    link = settings.stripe_pro_payment_link
    if not payment_link_configured(link):
        raise GatewayError(ErrorKind.CHECKOUT_UNAVAILABLE, detail="STRIPE_PRO_PAYMENT_LINK unset")

    if body.plan != PURCHASABLE_PLAN:
        raise GatewayError(ErrorKind.INVALID_PLAN, detail=f"requested plan {body.plan!r}")

    # No user identifiers in logs
    logger.info(f"Checkout requested - plan: {body.plan}")
    return CheckoutResponse(
        checkoutUrl=link, plan=body.plan, message="Checkout session created successfully"
    )
