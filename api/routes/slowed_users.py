"""
Admin routes for the throttling denylist.

Not tenant-authenticated; optionally guarded by ADMIN__TOKEN.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_denylist, require_admin
from application.dtos.payments import SlowedUserChange, SlowedUserRequest
from core.logging_config import get_logger
from core.response import success_response
from domain.common.exceptions import DenylistEntryNotFoundException
from domain.throttle.denylist import Denylist


router = APIRouter(prefix="/slowed-users", tags=["Throttling"], dependencies=[Depends(require_admin)])
logger = get_logger(__name__)


@router.post("", summary="Slow down a shopper")
async def add_slowed_user(payload: SlowedUserRequest, denylist: Denylist = Depends(get_denylist)):
    added = await denylist.add(payload.shopper_reference)
    logger.info("slowed_user_added", shopper_reference=payload.shopper_reference, added=added)
    change = SlowedUserChange(shopper_reference=payload.shopper_reference, added=added)
    return success_response(data=change.model_dump(by_alias=True, exclude_none=True))


@router.get("", summary="List slowed shoppers")
async def list_slowed_users(denylist: Denylist = Depends(get_denylist)):
    return success_response(data=await denylist.list())


@router.delete("", summary="Stop slowing a shopper")
async def remove_slowed_user(payload: SlowedUserRequest, denylist: Denylist = Depends(get_denylist)):
    if not await denylist.remove(payload.shopper_reference):
        raise DenylistEntryNotFoundException(payload.shopper_reference)
    logger.info("slowed_user_removed", shopper_reference=payload.shopper_reference)
    change = SlowedUserChange(shopper_reference=payload.shopper_reference, removed=True)
    return success_response(data=change.model_dump(by_alias=True, exclude_none=True))
