#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
持久化键值存储适配层

缓存管理器只依赖 get / set / remove 三个异步接口：
- MemoryDurableStore：进程内字典（默认，测试用）
- RedisDurableStore：redis.asyncio 客户端
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class DurableStore(ABC):
    """持久化存储接口（值为 UTF-8 JSON 字节）"""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """读取，不存在返回 None"""

    @abstractmethod
    async def set(self, key: str, value: bytes) -> None:
        """写入（覆盖）"""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """删除，不存在时忽略"""


class MemoryDurableStore(DurableStore):
    """进程内存储"""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self._data: Dict[str, bytes] = dict(initial or {})

    async def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        if isinstance(value, str):
            value = value.encode('utf-8')
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data.keys())

    def __len__(self):
        return len(self._data)


class RedisDurableStore(DurableStore):
    """
    Redis 存储

    Args:
        client: redis.asyncio.Redis 实例（decode_responses=False）
    """

    def __init__(self, client):
        self.client = client

    async def get(self, key: str) -> Optional[bytes]:
        value = await self.client.get(key)
        if isinstance(value, str):
            value = value.encode('utf-8')
        return value

    async def set(self, key: str, value: bytes) -> None:
        await self.client.set(key, value)

    async def remove(self, key: str) -> None:
        await self.client.delete(key)


def create_durable_store(redis_config=None) -> DurableStore:
    """
    按配置创建存储

    BAZI_CACHE_BACKEND=redis 时使用 Redis，否则使用内存存储
    """
    from server.config.app_config import RedisConfig

    redis_config = redis_config or RedisConfig.from_env()
    if redis_config.enabled:
        from server.config.redis_config import get_redis_client
        logger.info("八字缓存持久化后端: redis")
        return RedisDurableStore(get_redis_client(redis_config))
    logger.info("八字缓存持久化后端: memory")
    return MemoryDurableStore()
