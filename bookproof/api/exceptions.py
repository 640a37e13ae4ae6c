"""
全局异常处理器
统一错误响应格式：success / message / error_code / timestamp
"""

import logging
import uuid
from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from bookproof.core.clock import utcnow
from bookproof.core.exceptions import BusinessException

logger = logging.getLogger(__name__)


def _error_body(message: str, error_code: str, **extra) -> dict:
    body = {
        "success": False,
        "message": message,
        "error_code": error_code,
        "timestamp": utcnow().isoformat()
    }
    body.update({key: value for key, value in extra.items() if value})
    return jsonable_encoder(body)


async def business_exception_handler(request: Request, exc: BusinessException) -> JSONResponse:
    """业务异常"""
    if exc.status_code >= 500:
        logger.error(f"业务异常 {exc.error_code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, exc.error_code, details=exc.details)
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """标准HTTP异常"""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail), f"HTTP_{exc.status_code}")
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """请求参数校验失败"""
    errors = {}
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"][1:])  # 去掉 body/query 前缀
        errors[field] = error["msg"]

    return JSONResponse(
        status_code=422,
        content=_error_body("Validation failed", "VALIDATION_ERROR", errors=errors)
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """数据库异常"""
    correlation_id = str(uuid.uuid4())
    logger.exception(f"数据库异常 [{correlation_id}]: {exc}")

    return JSONResponse(
        status_code=500,
        content=_error_body("A database error occurred", "DATABASE_ERROR", correlation_id=correlation_id)
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """未预期的异常"""
    correlation_id = str(uuid.uuid4())
    logger.exception(f"未处理异常 [{correlation_id}]: {exc}")

    return JSONResponse(
        status_code=500,
        content=_error_body("An unexpected error occurred", "INTERNAL_ERROR", correlation_id=correlation_id)
    )
