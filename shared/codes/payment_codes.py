"""
Payment synchronization codes (gateway and platform side).
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Downstream errors (6xxxx)
    GATEWAY_ERROR = 60000
    PLATFORM_ERROR = 60001
    VERSION_CONFLICT = 60002
    TIMEOUT = 60003
    # platform write timed out or was cut off after sending; outcome unknown
    WRITE_INDETERMINATE = 60004
