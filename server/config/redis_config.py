#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Redis 配置模块

按需创建异步 Redis 客户端，导入时不建立连接
"""

import logging
from typing import Optional

from redis import asyncio as aioredis

from server.config.app_config import RedisConfig

logger = logging.getLogger(__name__)

_redis_client: Optional[aioredis.Redis] = None


def create_redis_client(config: Optional[RedisConfig] = None) -> aioredis.Redis:
    """
    创建异步 Redis 客户端（连接池惰性建立）

    Args:
        config: Redis 配置，为空时从环境变量读取

    Returns:
        redis.asyncio.Redis 实例
    """
    config = config or RedisConfig.from_env()
    pool = aioredis.ConnectionPool(
        host=config.host,
        port=config.port,
        db=config.db,
        password=config.password,
        max_connections=config.max_connections,
        decode_responses=False,
    )
    logger.info(f"Redis 客户端已创建: {config.host}:{config.port}/{config.db}")
    return aioredis.Redis(connection_pool=pool)


def get_redis_client(config: Optional[RedisConfig] = None) -> aioredis.Redis:
    """获取全局异步 Redis 客户端（首次调用时创建）"""
    global _redis_client
    if _redis_client is None:
        _redis_client = create_redis_client(config)
    return _redis_client


async def close_redis_client():
    """关闭全局 Redis 客户端"""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
