"""Discount API router: evaluation, compliance and audit endpoints.

Follows the standard router pattern:
- Request bodies validated by Pydantic, converted to domain dataclasses
- Recorder/repository injection via FastAPI Depends
- Tenant isolation via the request-context middleware
- Contract errors (malformed discounts, carts, amounts) become 422
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from core.request_context import get_current_tenant
from discounts.audit import AUDIT_QUEUE, AuditRecorder, dead_letters
from discounts.compliance import validate_compliance
from discounts.config import config
from discounts.errors import DiscountError
from discounts.repository import DiscountAuditRepository, get_audit_repository
from discounts.schemas import (
    AuditTrailResponse,
    EvaluateRequest,
    EvaluateResponse,
    ReplayRequest,
    ReportRequest,
    ValidateRequest,
    ValidateResponse,
)
from discounts.service import DiscountStackingService

router = APIRouter()


def get_audit_recorder(
    repo: DiscountAuditRepository = Depends(get_audit_repository),
) -> AuditRecorder:
    """FastAPI dependency for AuditRecorder."""
    return AuditRecorder(repo, dead_letters, config.audit)


def unprocessable(error: DiscountError) -> HTTPException:
    return HTTPException(status_code=422, detail=str(error))


# ============================================================================
# Evaluation
# ============================================================================

@router.post("/evaluate", response_model=EvaluateResponse)
async def evaluate(
    request: EvaluateRequest,
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    """Resolve and stack the candidate discounts for a cart.

    With ``record`` set, the applications are also written to the audit
    trail (a failed write is parked for replay and does not fail the call).
    """
    service = DiscountStackingService(config, recorder=recorder)
    try:
        cart = request.cart.to_domain()
        discounts = [d.to_domain() for d in request.discounts]
        entries: list[dict] = []
        if request.record:
            result, entries = await service.evaluate_and_record(
                discounts, cart, request.base_amount, request.scope
            )
        else:
            result = service.evaluate(discounts, cart, request.base_amount, request.scope)
    except DiscountError as e:
        raise unprocessable(e) from e

    return {
        "cart_id": cart.id,
        **result.to_dict(),
        "distribution": service.distribute(result, cart),
        "audit_entries": len(entries),
    }


# ============================================================================
# Compliance
# ============================================================================

@router.post("/compliance/validate", response_model=ValidateResponse)
async def validate(request: ValidateRequest):
    """Run the compliance checks for one discount against a cart."""
    try:
        discount = request.discount.to_domain()
        violations = validate_compliance(discount, request.cart.to_domain())
    except DiscountError as e:
        raise unprocessable(e) from e

    return {
        "discount_id": discount.id,
        "compliant": not any(v.blocking for v in violations),
        "violations": [v.to_dict() for v in violations],
    }


@router.post("/compliance/report")
async def compliance_report(
    request: ReportRequest,
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    """Compliance summary built from the cart's audit trail."""
    try:
        cart = request.cart.to_domain()
    except DiscountError as e:
        raise unprocessable(e) from e
    return await recorder.compliance_report(cart)


# ============================================================================
# Audit trail
# ============================================================================

@router.get("/audit/discounts/{discount_id}", response_model=AuditTrailResponse)
async def discount_trail(
    discount_id: str,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    """Most recent applications of a discount, newest first."""
    entries = await recorder.trail_for_discount(discount_id, limit)
    return {"data": entries, "count": len(entries)}


@router.get("/audit/carts/{cart_id}", response_model=AuditTrailResponse)
async def cart_trail(
    cart_id: str,
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    """Every application recorded for a cart, in order."""
    entries = await recorder.trail_for_cart(cart_id)
    return {"data": entries, "count": len(entries)}


@router.get("/audit/jurisdictions/{jurisdiction}", response_model=AuditTrailResponse)
async def jurisdiction_trail(
    jurisdiction: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    """Applications recorded for a jurisdiction within an optional window."""
    if start and end and start > end:
        raise HTTPException(status_code=422, detail="start must not be after end")
    entries = await recorder.trail_for_jurisdiction(jurisdiction, start, end)
    return {"data": entries, "count": len(entries)}


# ============================================================================
# Failed audit writes
# ============================================================================

@router.get("/audit/failed")
async def failed_writes(
    limit: int = Query(50, ge=1, le=500),
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    """Pending dead letters for the current tenant, oldest first."""
    letters = recorder.dlq.list_pending(
        queue_name=AUDIT_QUEUE, tenant_id=get_current_tenant(), limit=limit
    )
    return {
        "data": [letter.to_dict() for letter in letters],
        "count": len(letters),
        "stats": recorder.dlq.get_stats(AUDIT_QUEUE).to_dict(),
    }


@router.post("/audit/failed/replay")
async def replay_failed_writes(
    request: ReplayRequest,
    recorder: AuditRecorder = Depends(get_audit_recorder),
):
    """Re-attempt pending dead letters once each."""
    return await recorder.replay_failed_writes(limit=request.limit)
