#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
统一环境配置管理

环境判断与环境变量读取的唯一入口
"""

import logging
import os
from typing import Literal, Optional

logger = logging.getLogger(__name__)

# 环境类型定义
Environment = Literal["local", "staging", "production"]


class EnvConfig:
    """
    统一环境配置管理器

    ENV / APP_ENV 决定运行环境，其余配置项均从环境变量读取
    """

    # 生产环境使用 Redis 持久化时必需的环境变量
    PRODUCTION_REQUIRED_VARS = [
        "REDIS_HOST",
    ]

    def __init__(self):
        self._env: Environment = "local"
        self._detect_environment()

    def _detect_environment(self):
        """检测当前环境"""
        env_value = os.getenv("ENV", os.getenv("APP_ENV", "local")).lower()

        if env_value in ["staging", "stage"]:
            self._env = "staging"
        elif env_value in ["prod", "production"]:
            self._env = "production"
        else:
            # local / dev / development 以及未知值均视为本地开发
            self._env = "local"

        if self.is_production and self.get_config("BAZI_CACHE_BACKEND", "memory") == "redis":
            self._validate_production_vars()

    def _validate_production_vars(self):
        """生产环境启动时校验必需环境变量"""
        missing = [var for var in self.PRODUCTION_REQUIRED_VARS if not os.getenv(var)]
        if missing:
            logger.error(f"❌ 生产环境缺少必需环境变量: {', '.join(missing)}")

    @property
    def env(self) -> Environment:
        return self._env

    @property
    def is_local_dev(self) -> bool:
        """是否为本地开发环境"""
        return self._env == "local"

    @property
    def is_production(self) -> bool:
        """是否为生产环境"""
        return self._env == "production"

    def get_config(self, key: str, default: str = None, required: bool = False) -> Optional[str]:
        """
        获取配置值（从环境变量）

        Args:
            key: 配置键
            default: 默认值
            required: 是否必需

        Returns:
            配置值

        Raises:
            ValueError: 如果 required=True 且配置不存在
        """
        value = os.getenv(key, default)
        if required and value is None:
            raise ValueError(f"必需的环境变量 {key} 未设置")
        return value

    def get_bool_config(self, key: str, default: bool = False) -> bool:
        """获取布尔类型配置"""
        value = os.getenv(key, str(default)).lower()
        return value in ("true", "1", "yes", "on")

    def get_int_config(self, key: str, default: int = 0) -> int:
        """
        获取整数类型配置

        Args:
            key: 配置键
            default: 默认值（解析失败时同样返回）

        Returns:
            整数值
        """
        value = os.getenv(key, str(default))
        try:
            return int(value)
        except ValueError:
            logger.warning(f"环境变量 {key}={value!r} 不是整数，使用默认值 {default}")
            return default

    def get_float_config(self, key: str, default: float = 0.0) -> float:
        """获取浮点类型配置，解析失败返回默认值"""
        value = os.getenv(key, str(default))
        try:
            return float(value)
        except ValueError:
            logger.warning(f"环境变量 {key}={value!r} 不是数字，使用默认值 {default}")
            return default


# 全局单例实例
_env_config: Optional[EnvConfig] = None


def get_env_config() -> EnvConfig:
    """
    获取环境配置实例（全局单例）

    Returns:
        EnvConfig: 环境配置实例
    """
    global _env_config
    if _env_config is None:
        _env_config = EnvConfig()
    return _env_config


def reset_env_config():
    """重置环境配置单例（环境变量变化后重新检测）"""
    global _env_config
    _env_config = None


def is_local_dev() -> bool:
    """是否为本地开发环境（便捷函数）"""
    return get_env_config().is_local_dev


def is_production() -> bool:
    """是否为生产环境（便捷函数）"""
    return get_env_config().is_production
