#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pytest 全局配置

提供：
- 共享 fixtures（时钟、存储、校验器、缓存、服务）
- 标准测试数据
"""

import os
import sys
from typing import Any, Dict

import pytest

# 添加项目根目录到路径
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from tests.fixtures.sample_data import SAMPLE_BIRTH_INFO, SAMPLE_CHINESE, SAMPLE_NUMERIC


class FakeClock:
    """可手动推进的时钟（epoch 秒）"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


# ==================== 基础 Fixtures ====================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store():
    from server.utils.durable_store import MemoryDurableStore
    return MemoryDurableStore()


@pytest.fixture
def validator():
    """严格模式校验器"""
    from server.services.bazi_data_validator import BaziDataValidator
    return BaziDataValidator(strict_mode=True)


@pytest.fixture
def migration_manager(validator):
    from server.services.bazi_migration_service import BaziMigrationManager
    return BaziMigrationManager(validator)


@pytest.fixture
def cache_config():
    from server.config.app_config import CacheConfig
    return CacheConfig(key_prefix='test_bazi')


@pytest.fixture
def bazi_cache(memory_store, validator, migration_manager, cache_config, clock):
    """
    使用内存存储和可控时钟的缓存实例

    Returns:
        BaziDataCache
    """
    from server.services.bazi_data_cache import BaziDataCache
    return BaziDataCache(
        store=memory_store,
        validator=validator,
        migration_manager=migration_manager,
        config=cache_config,
        clock=clock,
    )


@pytest.fixture
def bazi_service(bazi_cache):
    from server.services.bazi_service import BaziService
    return BaziService(cache=bazi_cache)


# ==================== 记录 Fixtures ====================

@pytest.fixture
def dual_record() -> Dict[str, Any]:
    """标准双格式记录（2.0.0）"""
    from server.services.bazi_data_validator import BaziDataValidator
    record = {
        'meta': {
            'schemaVersion': '2.0.0',
            'producedAt': '2024-01-01T00:00:00',
            'source': 'calculate',
            'nickname': None,
            'birthInfo': dict(SAMPLE_BIRTH_INFO),
        },
        'numeric': dict(SAMPLE_NUMERIC),
        'chinese': dict(SAMPLE_CHINESE),
    }
    record['validation'] = BaziDataValidator().validate(record).to_dict()
    return record


@pytest.fixture
def flat_record() -> Dict[str, Any]:
    """1.0.0 扁平结构记录"""
    return {
        'year': '己巳',
        'month': '丙子',
        'day': '丙寅',
        'hour': '甲午',
        'shichen': '午时',
        'birthDate': '1990-01-01',
        'birthTime': '12:30',
        'longitude': 116.4,
        'nickname': '小明',
        'calculatedAt': '2023-06-01T08:00:00',
    }


@pytest.fixture
def nested_record() -> Dict[str, Any]:
    """1.1.0 嵌套结构记录"""
    return {
        'birth': {
            'date': '1990-01-01',
            'time': '12:30',
            'location': {'longitude': 116.4},
            'shichen': {'ganzhi': '午时'},
        },
        'bazi': {
            'year': {'gan': '己', 'zhi': '巳', 'ganZhi': '己巳'},
            'month': {'ganZhi': '丙子'},
            'day': '丙寅',
            'hour': {'gan': '甲', 'zhi': '午'},
        },
        'meta': {'version': '1.1.0', 'calculatedAt': '2023-09-09T09:00:00', 'nickname': '小红'},
    }
