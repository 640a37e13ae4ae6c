"""
测试配置文件 - pytest fixtures和共用配置
"""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from bookproof.core.database import Base
from bookproof.models import database  # noqa: F401  注册全部ORM表
from bookproof.models.coupon import Coupon, CouponType


# 固定的测试时间点，避免用例依赖系统时钟
NOW = datetime(2024, 6, 15, 12, 0, 0)


@pytest_asyncio.fixture(scope="function")
async def test_db_engine():
    """测试数据库引擎 - 内存SQLite"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,  # 设为True可以看到SQL语句
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )

    # 创建表结构
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_db_engine) -> AsyncSession:
    """测试数据库会话，用例结束后回滚"""
    session_maker = async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest.fixture
def mock_cache():
    """模拟缓存，默认全部未命中"""
    cache = AsyncMock()
    cache.get = AsyncMock(return_value=None)
    cache.set = AsyncMock(return_value=True)
    cache.delete = AsyncMock(return_value=True)
    return cache


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def summer_coupon(now):
    """SUMMER2024：8折，满100可用，每人限用1次"""
    return Coupon(
        coupon_id="coupon_summer",
        code="SUMMER2024",
        coupon_type=CouponType.PERCENTAGE,
        discount_percent=Decimal("20"),
        minimum_purchase=Decimal("100"),
        max_uses_per_user=1,
        current_uses=0,
        is_active=True,
        valid_from=now - timedelta(days=30),
        valid_until=now + timedelta(days=30)
    )
