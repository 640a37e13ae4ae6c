from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from bookproof.core.config import settings
from bookproof.core.redis import redis_manager
from bookproof.core.database import init_database, close_database
from bookproof.core.exceptions import BusinessException
from bookproof.services.common_cache import coupon_cache, credit_cache, affiliate_cache
from bookproof.api.health import router as health_router
from bookproof.api.coupons import router as coupons_router
from bookproof.api.credits import router as credits_router
from bookproof.api.affiliates import router as affiliates_router
from bookproof.api.exceptions import (
    validation_exception_handler,
    http_exception_handler,
    database_exception_handler,
    general_exception_handler,
    business_exception_handler
)

# 简化日志配置
import logging

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info("正在启动BookProof计费服务")

    try:
        await init_database()
        logger.info("PostgreSQL数据库初始化成功")

        await redis_manager.init_redis()
        for cache in (coupon_cache, credit_cache, affiliate_cache):
            cache.bind(redis_manager.redis_pool)
        logger.info("Redis初始化成功")

        logger.info("应用启动完成")

    except Exception as e:
        logger.error(f"应用启动失败: {e}")
        raise

    yield

    logger.info("正在关闭应用")
    for cache in (coupon_cache, credit_cache, affiliate_cache):
        cache.bind(None)
    await close_database()
    await redis_manager.close_redis()
    logger.info("应用关闭完成")


def configure_middleware(app: FastAPI) -> None:
    """启动时显式组装中间件与异常处理器"""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(BusinessException, business_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)


def create_app() -> FastAPI:
    """创建FastAPI应用"""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="BookProof 计费规则服务 - 优惠券、积分账本与联盟佣金",
        debug=settings.debug,
        lifespan=lifespan
    )

    configure_middleware(app)

    # 注册路由
    app.include_router(health_router)
    app.include_router(coupons_router)
    app.include_router(credits_router)
    if settings.feature_affiliate_program:
        app.include_router(affiliates_router)

    @app.get("/")
    async def root():
        """根路径"""
        return {
            "message": f"欢迎使用 {settings.app_name}",
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "bookproof.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
