"""
自定义异常映射与全局异常处理器
"""
from typing import Optional
from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import traceback
import uuid
from starlette import status as http_status

from .response import error_response
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from core.i18n import t


class UnauthorizedException(BusinessException):
    """未授权异常"""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            code=BusinessCode.UNAUTHORIZED,
            message=message,
            error_type="Unauthorized",
            message_key="auth.unauthorized",
        )


class TokenExpiredException(BusinessException):
    """Token过期异常"""

    def __init__(self):
        super().__init__(
            code=BusinessCode.TOKEN_EXPIRED,
            message="Token expired",
            error_type="TokenExpired",
            message_key="auth.token.expired",
        )


class TokenInvalidException(BusinessException):
    def __init__(self, message: str = "Invalid authentication credentials"):
        super().__init__(
            code=BusinessCode.TOKEN_INVALID,
            message=message,
            error_type="TokenInvalid",
            message_key="auth.token.invalid",
        )


class ForbiddenException(BusinessException):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message=message,
            error_type="Forbidden",
            message_key="auth.forbidden",
        )


_STATUS_BY_CODE: dict[int, int] = {
    BusinessCode.PARAM_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PARAM_VALIDATION_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,

    BusinessCode.BUSINESS_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.TOKEN_INVALID: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.TOKEN_EXPIRED: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.EVENT_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.TICKET_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.INTENT_EXPIRED_OR_UNKNOWN: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.INVALID_STATE: http_status.HTTP_409_CONFLICT,
    BusinessCode.TICKET_ALREADY_USED: http_status.HTTP_409_CONFLICT,
    BusinessCode.REFUND_NOT_ELIGIBLE: http_status.HTTP_409_CONFLICT,
    BusinessCode.EVENT_NOT_ON_SALE: http_status.HTTP_409_CONFLICT,
    BusinessCode.WALLET_INACTIVE: http_status.HTTP_409_CONFLICT,
    BusinessCode.INSUFFICIENT_INVENTORY: http_status.HTTP_409_CONFLICT,
    BusinessCode.INVENTORY_EXHAUSTED: http_status.HTTP_409_CONFLICT,
    BusinessCode.PAYMENT_NOT_SUCCESSFUL: http_status.HTTP_402_PAYMENT_REQUIRED,

    BusinessCode.UNAUTHORIZED: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.FORBIDDEN: http_status.HTTP_403_FORBIDDEN,
    BusinessCode.NOT_TICKET_OWNER: http_status.HTTP_403_FORBIDDEN,
    BusinessCode.REFUND_APPROVAL_REQUIRED: http_status.HTTP_403_FORBIDDEN,

    BusinessCode.SYSTEM_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.SERVICE_UNAVAILABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    BusinessCode.UPSTREAM_TRANSIENT: http_status.HTTP_503_SERVICE_UNAVAILABLE,

    BusinessCode.TOO_MANY_REQUESTS: http_status.HTTP_429_TOO_MANY_REQUESTS,

    PaymentCode.PROVIDER_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.SIGNATURE_ERROR: http_status.HTTP_401_UNAUTHORIZED,
}


def business_code_to_http_status(code: int) -> int:
    """根据业务码映射HTTP状态码（默认400）。"""
    return _STATUS_BY_CODE.get(int(code), http_status.HTTP_400_BAD_REQUEST)


def render_message(exc: BusinessException) -> str:
    """按 message_key 翻译；缺少翻译时回退到异常原始消息"""
    key = getattr(exc, "message_key", None)
    if not key:
        return exc.message
    params = exc.format_params if isinstance(exc.format_params, dict) else {}
    return t(key, default=exc.message, **params)


def register_exception_handlers(app: FastAPI):
    """
    注册全局异常处理器

    Args:
        app: FastAPI应用实例
    """

    # logger
    logger = get_logger(__name__)

    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        """处理业务异常"""
        request_id = getattr(getattr(request, "state", object()), "request_id", None) or str(uuid.uuid4())
        response = error_response(
            code=exc.code,
            message=render_message(exc),
            error_type=exc.error_type,
            details=exc.details,
            field=exc.field,
            request_id=request_id,
        )
        status_code = business_code_to_http_status(exc.code)
        if status_code >= 500:
            logger.warning("business_exception", request_id=request_id, code=int(exc.code), error_type=exc.error_type)
        headers: Optional[dict] = None
        if status_code == http_status.HTTP_401_UNAUTHORIZED:
            headers = {"WWW-Authenticate": "Bearer"}
        elif status_code == http_status.HTTP_503_SERVICE_UNAVAILABLE:
            headers = {"Retry-After": "5"}
        return JSONResponse(status_code=status_code, content=response.model_dump(mode='json'), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """处理参数验证异常"""
        request_id = getattr(getattr(request, "state", object()), "request_id", None) or str(uuid.uuid4())
        errors = exc.errors()

        # 提取第一个错误的详细信息
        first_error = errors[0] if errors else {}
        field = ".".join(str(loc) for loc in first_error.get("loc", [])[1:])

        reason = first_error.get('msg', 'unknown')
        message = t("validation.failed", default="Validation failed: {reason}", reason=reason)
        response = error_response(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="ValidationError",
            details={"errors": [
                {"loc": list(e.get("loc", [])), "msg": e.get("msg"), "type": e.get("type")} for e in errors
            ]},
            field=field,
            request_id=request_id,
        )
        return JSONResponse(
            status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=response.model_dump(mode='json')
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """处理HTTP异常"""
        request_id = getattr(getattr(request, "state", object()), "request_id", None) or str(uuid.uuid4())

        # 映射HTTP状态码到业务码
        code_mapping = {
            400: BusinessCode.PARAM_ERROR,
            401: BusinessCode.UNAUTHORIZED,
            403: BusinessCode.FORBIDDEN,
            404: BusinessCode.NOT_FOUND,
            429: BusinessCode.TOO_MANY_REQUESTS,
            500: BusinessCode.SYSTEM_ERROR,
            503: BusinessCode.SERVICE_UNAVAILABLE
        }
        code = code_mapping.get(exc.status_code, BusinessCode.SYSTEM_ERROR)

        response = error_response(
            code=code,
            message=str(exc.detail),
            error_type="HTTPError",
            details={"status_code": exc.status_code},
            request_id=request_id,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=response.model_dump(mode='json'),
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """处理所有未捕获的异常"""
        request_id = getattr(getattr(request, "state", object()), "request_id", None) or str(uuid.uuid4())

        # 在开发环境可以返回详细错误信息
        details = None
        if app.debug:
            details = {
                "exception": str(exc),
                "traceback": traceback.format_exc()
            }

        message = t("error.internal", default="Internal server error")
        response = error_response(
            code=BusinessCode.SYSTEM_ERROR,
            message=message,
            error_type="SystemError",
            details=details,
            request_id=request_id,
        )

        # 记录日志（使用结构化日志）
        logger.error(
            "unhandled_exception",
            request_id=request_id,
            error=str(exc),
            exc_info=True,
        )

        return JSONResponse(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response.model_dump(mode='json')
        )
