"""支付服务商错误码与交易状态归一化"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    SUCCESS = 0
    PROVIDER_ERROR = 60000
    SIGNATURE_ERROR = 60002


# 服务商交易状态 -> success | failed | pending；表中没有的状态按 pending 处理
PROVIDER_STATUS_TO_INTERNAL = {
    "paystack": {
        "success": "success",
        "failed": "failed",
        "abandoned": "failed",
        "reversed": "failed",
        "ongoing": "pending",
        "pending": "pending",
        "processing": "pending",
        "queued": "pending",
    },
}
