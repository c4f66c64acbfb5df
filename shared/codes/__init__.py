"""
业务码（各层共用）

响应体中的 code 字段取自这里；支付服务商相关的码在 payment_codes。
号段：1xxxx 参数，2xxxx 业务，3xxxx 认证授权，4xxxx 系统，5xxxx 限流。
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    PARAM_ERROR = 10000
    PARAM_VALIDATION_ERROR = 10003

    BUSINESS_ERROR = 20000
    TOKEN_INVALID = 20004
    TOKEN_EXPIRED = 20005
    NOT_FOUND = 20006
    # 活动与票据
    EVENT_NOT_FOUND = 20101
    TICKET_NOT_FOUND = 20102
    INVALID_STATE = 20110
    TICKET_ALREADY_USED = 20111
    REFUND_NOT_ELIGIBLE = 20112
    EVENT_NOT_ON_SALE = 20113
    # 库存
    INSUFFICIENT_INVENTORY = 20120
    INVENTORY_EXHAUSTED = 20121
    # 支付核实
    INTENT_EXPIRED_OR_UNKNOWN = 20130
    PAYMENT_NOT_SUCCESSFUL = 20131
    # 钱包
    WALLET_INACTIVE = 20140

    UNAUTHORIZED = 30001
    FORBIDDEN = 30002
    NOT_TICKET_OWNER = 30010
    REFUND_APPROVAL_REQUIRED = 30011

    SYSTEM_ERROR = 40000
    SERVICE_UNAVAILABLE = 40003
    # Redis / 支付网关暂时不可用，可稍后重试
    UPSTREAM_TRANSIENT = 40010

    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode"]
