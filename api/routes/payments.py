"""
Payments API routes.

Three variants of the payment update cycle. Keep this thin: authentication
happens in the dependency, the cycle lives in the application service.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, status

from api.dependencies import get_payment_service
from application.dtos.payments import PaymentEnvelope
from application.services.payment_service import PaymentUpdateService
from core.response import success_response


router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("", summary="Handle payment", status_code=status.HTTP_201_CREATED)
async def handle_payment(
    payload: PaymentEnvelope,
    service: PaymentUpdateService = Depends(get_payment_service),
):
    record = await service.handle_payment(payload)
    return success_response(data=record.to_dict(), message="Payment updated")


@router.post("/{payment_id}/makePayment", summary="Make payment", status_code=status.HTTP_201_CREATED)
async def make_payment(
    payment_id: str,
    request: dict[str, Any] = Body(...),
    service: PaymentUpdateService = Depends(get_payment_service),
):
    record = await service.make_payment(payment_id, request)
    return success_response(data=record.to_dict(), message="Payment made")


@router.post("/{payment_id}/additional", summary="Submit additional payment details", status_code=status.HTTP_201_CREATED)
async def submit_additional_details(
    payment_id: str,
    request: dict[str, Any] = Body(...),
    service: PaymentUpdateService = Depends(get_payment_service),
):
    record = await service.submit_additional_details(payment_id, request)
    return success_response(data=record.to_dict(), message="Additional payment details submitted")
