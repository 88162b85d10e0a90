#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
统一应用配置管理
缓存、计算器、Redis 配置统一从这里读取
"""

from dataclasses import dataclass, field
from typing import Optional

from core.data.constants import DEFAULT_BIRTH_TIME, DEFAULT_LONGITUDE
from server.config.env_config import get_env_config


@dataclass
class CacheConfig:
    """八字缓存配置（TTL 单位：秒）"""
    min_ttl: int = 600
    max_ttl: int = 43200
    default_ttl: int = 21600
    sweep_interval: int = 300
    key_prefix: str = 'bazi_cache_v2'
    strict_validation: bool = True

    def __post_init__(self):
        if self.min_ttl > self.max_ttl:
            raise ValueError(f"min_ttl({self.min_ttl}) 不能大于 max_ttl({self.max_ttl})")

    def clamp_ttl(self, ttl: Optional[float]) -> float:
        """TTL 限制在 [min_ttl, max_ttl]，未指定时使用默认值"""
        if ttl is None:
            ttl = self.default_ttl
        return max(self.min_ttl, min(self.max_ttl, ttl))

    @classmethod
    def from_env(cls) -> 'CacheConfig':
        """从环境变量创建配置"""
        env_config = get_env_config()
        return cls(
            min_ttl=env_config.get_int_config('BAZI_CACHE_MIN_TTL', 600),
            max_ttl=env_config.get_int_config('BAZI_CACHE_MAX_TTL', 43200),
            default_ttl=env_config.get_int_config('BAZI_CACHE_DEFAULT_TTL', 21600),
            sweep_interval=env_config.get_int_config('BAZI_CACHE_SWEEP_INTERVAL', 300),
            key_prefix=env_config.get_config('BAZI_CACHE_KEY_PREFIX', default='bazi_cache_v2'),
            strict_validation=env_config.get_bool_config('BAZI_VALIDATOR_STRICT', default=True),
        )


@dataclass
class CalculatorConfig:
    """四柱计算默认参数"""
    default_birth_time: str = DEFAULT_BIRTH_TIME
    default_longitude: float = DEFAULT_LONGITUDE
    timezone: str = 'Asia/Shanghai'

    @classmethod
    def from_env(cls) -> 'CalculatorConfig':
        env_config = get_env_config()
        return cls(
            default_birth_time=env_config.get_config('BAZI_DEFAULT_BIRTH_TIME', default=DEFAULT_BIRTH_TIME),
            default_longitude=env_config.get_float_config('BAZI_DEFAULT_LONGITUDE', DEFAULT_LONGITUDE),
            timezone=env_config.get_config('BAZI_TIMEZONE', default='Asia/Shanghai'),
        )


@dataclass
class RedisConfig:
    """Redis 配置"""
    host: str = 'localhost'
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    max_connections: int = 20
    backend: str = 'memory'

    @property
    def enabled(self) -> bool:
        return self.backend == 'redis'

    @classmethod
    def from_env(cls) -> 'RedisConfig':
        """从环境变量创建配置"""
        env_config = get_env_config()
        return cls(
            host=env_config.get_config('REDIS_HOST', default='localhost'),
            port=env_config.get_int_config('REDIS_PORT', 6379),
            db=env_config.get_int_config('REDIS_DB', 0),
            password=env_config.get_config('REDIS_PASSWORD'),
            max_connections=env_config.get_int_config('REDIS_MAX_CONNECTIONS', 20),
            backend=env_config.get_config('BAZI_CACHE_BACKEND', default='memory').lower(),
        )


@dataclass
class AppConfig:
    """应用配置"""
    env: str = 'local'
    log_level: str = 'INFO'

    # 子配置
    cache: CacheConfig = field(default_factory=CacheConfig)
    calculator: CalculatorConfig = field(default_factory=CalculatorConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """从环境变量创建完整配置"""
        env_config = get_env_config()
        return cls(
            env=env_config.env,
            log_level=env_config.get_config('LOG_LEVEL', default='INFO'),
            cache=CacheConfig.from_env(),
            calculator=CalculatorConfig.from_env(),
            redis=RedisConfig.from_env(),
        )


# 全局配置实例（单例模式）
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """获取全局配置实例（单例）"""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def reload_config() -> AppConfig:
    """重新加载配置（环境变量变化后调用）"""
    global _config
    _config = AppConfig.from_env()
    return _config
