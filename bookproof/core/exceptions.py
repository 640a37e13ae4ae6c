"""
业务异常定义

优惠券校验失败不走异常（以数据形式返回原因），
这里只定义前置条件违反、资源不存在、状态冲突等需要中断请求的错误。
"""

from typing import Any, Dict, Optional


class BusinessException(Exception):
    """业务异常基类"""

    status_code: int = 400
    error_code: str = "BUSINESS_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.details = details or {}


class InvalidInputError(BusinessException, ValueError):
    """前置条件违反：负数金额、缺失费率等畸形输入"""

    status_code = 400
    error_code = "INVALID_INPUT"


class NotFoundError(BusinessException):
    status_code = 404
    error_code = "NOT_FOUND"


class ConflictError(BusinessException):
    status_code = 409
    error_code = "CONFLICT"


class InvalidStateTransitionError(BusinessException):
    """状态机中不允许的流转"""

    status_code = 409
    error_code = "INVALID_STATE_TRANSITION"


class ForbiddenError(BusinessException):
    status_code = 403
    error_code = "FORBIDDEN"
