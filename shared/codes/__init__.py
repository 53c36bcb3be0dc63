"""
Business codes returned in the `code` field of every response envelope.

Gateway/platform failures of the update cycle have their own range in
`shared.codes.payment_codes`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    # Request validation (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_VALIDATION_ERROR = 10003

    # Admin operations (2xxxx)
    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006  # shopper reference not on the denylist

    # Tenant authentication (3xxxx)
    UNAUTHORIZED = 30001  # credential mismatch
    FORBIDDEN = 30002
    MISSING_CREDENTIAL = 30003  # no credential configured for the project key

    # Service-side failures (4xxxx)
    SYSTEM_ERROR = 40000
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003


__all__ = ["BusinessCode"]
