from decimal import Decimal
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from enum import Enum


class Environment(str, Enum):

    """运行环境枚举"""
    TESTING = "testing"
    PRODUCTION = "production"


class Settings(BaseSettings):

    # 应用基础配置
    app_name: str = "BookProof Billing"
    app_version: str = "1.0.0"
    environment: Environment = Environment.TESTING
    debug: bool = True

    # 数据库配置
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "bookproof_db"
    db_user: str = "bookproof_user"
    db_password: str = "bookproof_password"

    # Redis配置 (业务缓存)
    redis_url: Optional[str] = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    # 跨域配置
    cors_origins: list[str] = ["*"]

    # 联盟推广配置
    affiliate_commission_percentage: Decimal = Decimal("20")
    commission_holding_days: int = 30  # 与退款窗口一致
    minimum_payout_amount: Decimal = Decimal("50.00")

    # 积分配置
    credit_expiry_look_ahead_days: int = 7

    # 功能开关
    feature_affiliate_program: bool = True

    # 日志配置
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING

    @property
    def database_url_computed(self) -> str:
        """计算数据库URL"""
        if self.database_url:
            return self.database_url
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def redis_url_computed(self) -> str:
        """计算Redis URL"""
        if self.redis_url:
            return self.redis_url
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"


# 全局配置实例
settings = Settings()
