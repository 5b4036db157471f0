from __future__ import annotations
import stripe
import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request

from launchspace.config import settings
from launchspace.deps import get_submissions
from launchspace.errors import LaunchError
from launchspace.services.submissions import SubmissionService

router = APIRouter(tags=["stripe"])
log = structlog.get_logger()

@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    svc: SubmissionService = Depends(get_submissions),
):
    if not settings.stripe_webhook_secret or not settings.stripe_secret_key:
        raise HTTPException(status_code=500, detail="Stripe not configured")

    payload = await request.body()
    try:
        event = stripe.Webhook.construct_event(
            payload=payload.decode("utf-8"),
            sig_header=stripe_signature or "",
            secret=settings.stripe_webhook_secret,
        )
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Invalid webhook: {e}")

    # A paid checkout confirms the premium draft named in its metadata.
    if event["type"] == "checkout.session.completed":
        sess = event["data"]["object"]
        project_id = (sess.get("metadata") or {}).get("project_id") or sess.get("client_reference_id")
        if sess.get("payment_status") != "paid" or not project_id:
            return {"ignored": "unpaid_or_unlinked"}
        try:
            project = await svc.confirm_payment(project_id, order_id=sess.get("payment_intent") or sess.get("id"))
        except LaunchError as e:
            # Acknowledged; needs a manual refund or reschedule.
            log.error("payment_confirmation_failed", project_id=project_id, code=e.code, error=e.message)
            return {"ok": False, "code": e.code}
        return {"ok": True, "project_id": project["id"], "status": project["status"]}

    # Ignore other events
    return {"ignored": event["type"]}
