"""
数据库配置和连接管理

Database 句柄持有引擎与会话工厂，由应用生命周期显式打开/关闭，
通过依赖注入传给需要它的组件（不使用模块级全局引擎）。
"""
from typing import AsyncGenerator, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core.config import settings
from core.logging_config import get_logger
from infrastructure.models import Base


logger = get_logger(__name__)


def _build_async_url(database_url: str) -> str:
    """确保数据库URL使用异步驱动"""
    url = make_url(database_url)
    drivername = url.drivername

    if "+" in drivername:
        return database_url

    driver_map = {
        "postgresql": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }

    if drivername not in driver_map:
        raise ValueError(f"不支持的数据库驱动: {drivername}. 请使用 async 驱动或更新 DATABASE__URL")

    async_driver = driver_map[drivername]
    return url.set(drivername=async_driver).render_as_string(hide_password=False)


class Database:
    """数据库句柄：connect() 创建引擎，dispose() 释放连接池"""

    def __init__(self, url: Optional[str] = None, *, echo: Optional[bool] = None, **engine_kwargs) -> None:
        self.url = _build_async_url(url or settings.database.url)
        self.echo = settings.database.echo if echo is None else echo
        self._engine_kwargs = engine_kwargs
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not connected")
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            raise RuntimeError("Database is not connected")
        return self._session_factory

    def connect(self) -> "Database":
        if self._engine is not None:
            return self
        kwargs = dict(self._engine_kwargs)
        if not self.url.startswith("sqlite"):
            kwargs.setdefault("pool_size", settings.database.pool_size)
            kwargs.setdefault("pool_pre_ping", True)
        self._engine = create_async_engine(self.url, echo=self.echo, future=True, **kwargs)
        # 提交后不过期对象，便于在事务外继续读取实体字段
        self._session_factory = async_sessionmaker(bind=self._engine, expire_on_commit=False)
        logger.info("database_connected", dialect=self._engine.dialect.name)
        return self

    async def dispose(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        logger.info("database_disposed")
        self._engine = None
        self._session_factory = None

    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """获取数据库会话（不自动提交，由调用方控制事务）"""
        async with self.session_factory() as session:
            yield session

    async def create_tables(self) -> None:
        """根据 models 中定义的所有模型创建对应的数据库表"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self) -> None:
        """
        删除所有表

        警告：仅用于测试环境，会删除所有数据！
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
