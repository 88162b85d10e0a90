#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
缓存预热模块

在冷启动时主动填充八字缓存，降低首次请求延迟。
- 热门出生信息：warmup_hot_bazi_combinations()
- 启动时一次性加载 + 预热 + 启动定时清理：warmup_on_startup()
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from core.exceptions import BaziEngineError

logger = logging.getLogger(__name__)

# 热门出生信息（基于常见查询）：(birth_date, birth_time, longitude)
DEFAULT_HOT_BAZI_COMBINATIONS: List[Tuple[str, str, float]] = [
    ("1990-01-01", "12:30", 116.40),
    ("1995-05-15", "08:30", 116.40),
    ("1988-08-08", "06:00", 121.47),
    ("1992-12-25", "14:00", 113.26),
    ("1985-03-20", "10:00", 104.07),
    ("1998-07-01", "00:00", 116.40),
]


async def warmup_hot_bazi_combinations(service,
                                       combinations: Optional[List[Tuple[str, str, float]]] = None,
                                       force_refresh: bool = False) -> Dict[str, int]:
    """
    预热热门出生信息

    Args:
        service: BaziService（需已注入缓存）
        combinations: 出生信息列表，默认 DEFAULT_HOT_BAZI_COMBINATIONS
        force_refresh: 覆盖已存在的缓存

    Returns:
        {'applied', 'skipped', 'failed'}
    """
    if service.cache is None:
        logger.warning("预热热门八字: 服务未配置缓存，跳过")
        return {'applied': 0, 'skipped': 0, 'failed': 0}

    items: List[Dict[str, Any]] = []
    failed = 0
    for birth_date, birth_time, longitude in combinations or DEFAULT_HOT_BAZI_COMBINATIONS:
        birth_info = {'date': birth_date, 'time': birth_time, 'longitude': longitude}
        try:
            info = service.normalize_birth_info(birth_info)
            if not force_refresh and service.cache.has(info):
                items.append({'birth_info': info, 'record': None})
                continue
            items.append({'birth_info': info, 'record': service.calculate_record(info)})
        except BaziEngineError as e:
            failed += 1
            logger.warning("预热热门八字失败: %s %s, %s", birth_date, birth_time, e.message)

    counts = await service.cache.warm(
        [item for item in items if item['record'] is not None], force_refresh=force_refresh
    )
    counts['skipped'] += sum(1 for item in items if item['record'] is None)
    counts['failed'] += failed
    logger.info("预热热门八字完成: %s", counts)
    return counts


async def warmup_on_startup(service, start_sweeper: bool = True) -> Dict[str, int]:
    """
    启动时调用：加载持久化缓存、预热热门组合并启动定时清理

    Returns:
        预热统计，额外包含 'loaded'
    """
    cache = service.cache
    if cache is None:
        return {'loaded': 0, 'applied': 0, 'skipped': 0, 'failed': 0}

    loaded = await cache.initialize()
    counts = await warmup_hot_bazi_combinations(service)
    if start_sweeper:
        cache.start_sweeper()
    counts['loaded'] = loaded
    return counts
