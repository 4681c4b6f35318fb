from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.deps import current_user, directions_service, khalti_gateway
from app.database.serializers import to_jsonable
from app.models.models import InitiatePaymentBody, VerifyPaymentBody
from app.services import payments as payment_service

router = APIRouter()


@router.post("/payments/initiate", tags=["payments"])  # /api/payments/initiate
async def initiate(
    body: InitiatePaymentBody,
    user: dict = Depends(current_user),
    khalti=Depends(khalti_gateway),
    directions=Depends(directions_service),
):
    """Create a pending booking and a Khalti payment session for it."""
    return await payment_service.initiate_payment(user, body, khalti, directions)


@router.post("/payments/verify", tags=["payments"])  # /api/payments/verify
async def verify(body: VerifyPaymentBody, user: dict = Depends(current_user), khalti=Depends(khalti_gateway)):
    """Reconcile a booking with Khalti after the user returns from the payment page."""
    result = await payment_service.verify_payment(user, body.pidx, body.booking_id, khalti)
    return to_jsonable(result)


# Stripe was replaced by Khalti; the old routes stay to answer legacy clients
@router.post("/payments/create-deposit", tags=["payments"])
def stripe_create_deposit():
    return JSONResponse(
        status_code=410,
        content={"detail": "Stripe payment integration is deprecated. Use POST /api/payments/initiate for Khalti payments instead."},
    )


@router.post("/payments/webhook", tags=["payments"])
def stripe_webhook():
    return JSONResponse(
        status_code=410,
        content={"detail": "Stripe webhook is deprecated. Payment system has been consolidated to Khalti. See /api/payments/verify"},
    )
