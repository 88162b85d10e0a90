#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
缓存键生成器 - 统一管理八字缓存键的生成逻辑

缓存键由出生日期、出生时间、经度（保留 2 位小数）组成，日期与时间先规范化：
    1990-1-1 8:30 116.4  ->  1990-01-01_08:30_116.40
"""

from typing import Any, Dict, Optional, Union

from core.calculators.calendar_math import parse_birth_date, parse_birth_time, validate_longitude
from core.data.constants import DEFAULT_BIRTH_TIME, DEFAULT_LONGITUDE


class CacheKeyGenerator:
    """缓存键生成器"""

    @staticmethod
    def normalize_date(birth_date: str) -> str:
        """YYYY-M-D -> YYYY-MM-DD"""
        return parse_birth_date(birth_date).isoformat()

    @staticmethod
    def normalize_time(birth_time: str) -> str:
        """H:MM -> HH:MM"""
        hour, minute = parse_birth_time(birth_time)
        return f"{hour:02d}:{minute:02d}"

    @staticmethod
    def generate_birth_key(birth_date: str,
                           birth_time: Optional[str] = None,
                           longitude: Optional[float] = None) -> str:
        """
        生成出生信息缓存键

        Args:
            birth_date: 出生日期 YYYY-MM-DD
            birth_time: 出生时间 HH:MM，缺省 12:30
            longitude: 经度，缺省 116.40

        Returns:
            str: 缓存键

        Raises:
            InputError: 日期、时间或经度格式错误
        """
        date_str = CacheKeyGenerator.normalize_date(birth_date)
        time_str = CacheKeyGenerator.normalize_time(birth_time or DEFAULT_BIRTH_TIME)
        longitude = DEFAULT_LONGITUDE if longitude is None else validate_longitude(longitude)
        return f"{date_str}_{time_str}_{longitude:.2f}"

    @staticmethod
    def generate_from_birth_info(birth_info: Union[Dict[str, Any], Any]) -> str:
        """从 BirthInfo 模型或字典生成缓存键"""
        if isinstance(birth_info, dict):
            return CacheKeyGenerator.generate_birth_key(
                birth_info.get('date'), birth_info.get('time'), birth_info.get('longitude')
            )
        return CacheKeyGenerator.generate_birth_key(birth_info.date, birth_info.time, birth_info.longitude)

    @staticmethod
    def storage_key(prefix: str, *parts: str) -> str:
        """持久化存储键，冒号分隔：{prefix}:entry:{cache_key}"""
        return ':'.join((prefix,) + tuple(parts))
