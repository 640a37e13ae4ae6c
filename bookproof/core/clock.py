"""
时间工具

数据库列为不带时区的 timestamp，统一存储 UTC 时间；带时区的输入在进入业务逻辑前先转换为 UTC 再去掉时区。
"""

from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic import AfterValidator


def utcnow() -> datetime:
    """当前 UTC 时间（不带时区）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """带时区的时间转换为 UTC 并去掉时区，不带时区的视为 UTC 原样返回"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def resolve_now(now: Optional[datetime] = None) -> datetime:
    """调用方未提供时间时取当前时间"""
    if now is None:
        return utcnow()
    return to_naive_utc(now)


# 模型中的时间字段统一使用该类型
UtcDateTime = Annotated[datetime, AfterValidator(to_naive_utc)]
