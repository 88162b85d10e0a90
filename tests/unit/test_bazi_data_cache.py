#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
tests/unit/test_bazi_data_cache.py
BaziDataCache 单元测试（内存存储 + 可控时钟）
"""

import asyncio
import copy
import json
import logging

import pytest
from unittest.mock import AsyncMock

from core.exceptions import ConsistencyError, MigrationError
from server.services.bazi_data_cache import BaziDataCache
from server.services.bazi_dual_format_service import RecordFormat
from server.utils.durable_store import DurableStore, MemoryDurableStore
from tests.fixtures.sample_data import SAMPLE_BIRTH_INFO, SAMPLE_CHINESE, SAMPLE_NUMERIC

SAMPLE_KEY = '1990-01-01_12:30_116.40'


class HangingStore(DurableStore):
    """set 永不返回的存储"""

    def __init__(self):
        self.data = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        await asyncio.Event().wait()

    async def remove(self, key):
        self.data.pop(key, None)


# ════════════════════ 读写 ════════════════════


class TestPutAndGet:

    @pytest.mark.asyncio
    async def test_round_trip_dual(self, bazi_cache, dual_record):
        await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record)
        assert await bazi_cache.get(SAMPLE_BIRTH_INFO) == dual_record

    @pytest.mark.asyncio
    async def test_key_from_birth_info(self, bazi_cache, dual_record):
        entry = await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record)
        assert entry.key == SAMPLE_KEY
        assert await bazi_cache.get(SAMPLE_KEY) is not None

    @pytest.mark.asyncio
    async def test_single_side_formats(self, bazi_cache, dual_record):
        await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record)
        assert await bazi_cache.get(SAMPLE_BIRTH_INFO, RecordFormat.NUMERIC) == SAMPLE_NUMERIC
        assert await bazi_cache.get(SAMPLE_BIRTH_INFO, RecordFormat.CHINESE) == SAMPLE_CHINESE
        legacy = await bazi_cache.get(SAMPLE_BIRTH_INFO, RecordFormat.LEGACY)
        assert legacy['year'] == {'gan': '己', 'zhi': '巳', 'ganzhi': '己巳'}
        assert legacy['shichen'] == '午时'

    @pytest.mark.asyncio
    async def test_returns_copy(self, bazi_cache, dual_record):
        await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record)
        fetched = await bazi_cache.get(SAMPLE_BIRTH_INFO)
        fetched['numeric']['year'] = 0
        assert (await bazi_cache.get(SAMPLE_BIRTH_INFO))['numeric']['year'] == 5

    @pytest.mark.asyncio
    async def test_miss(self, bazi_cache):
        assert await bazi_cache.get('nonexist') is None

    @pytest.mark.asyncio
    async def test_nickname_lookup(self, bazi_cache, dual_record):
        await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record, nickname='小明')
        assert await bazi_cache.get('小明') is not None

    @pytest.mark.asyncio
    async def test_unpadded_birth_info_shares_key(self, bazi_cache, dual_record):
        """1990-1-1 8:30 与 1990-01-01 08:30 命中同一条目"""
        await bazi_cache.put({'date': '1990-1-1', 'time': '8:30', 'longitude': 116.4}, dual_record)
        assert bazi_cache.keys() == ['1990-01-01_08:30_116.40']
        assert await bazi_cache.get({'date': '1990-01-01', 'time': '08:30', 'longitude': 116.4}) is not None
        entry = bazi_cache._entries['1990-01-01_08:30_116.40']
        assert entry.birth_info == {'date': '1990-01-01', 'time': '08:30', 'longitude': 116.4}

    @pytest.mark.asyncio
    async def test_nickname_rebind_releases_old_entry(self, bazi_cache, memory_store, cache_config, clock,
                                                      dual_record):
        """昵称改绑后旧条目不再持有昵称，重新加载时不会绑回旧记录"""
        other = {'date': '2000-01-01', 'time': '08:00', 'longitude': 120}
        await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record, nickname='A')
        await bazi_cache.put(other, dual_record, nickname='A')
        assert bazi_cache._entries[SAMPLE_KEY].nickname is None
        stored = json.loads(await memory_store.get(f'test_bazi:entry:{SAMPLE_KEY}'))
        assert stored['nickname'] is None

        # 新条目丢失后重新加载
        await memory_store.remove('test_bazi:entry:2000-01-01_08:00_120.00')
        fresh = BaziDataCache(store=memory_store, config=cache_config, clock=clock)
        assert await fresh.initialize() == 1
        assert await fresh.get('A') is None

    @pytest.mark.asyncio
    async def test_legacy_record_migrated_on_put(self, bazi_cache, flat_record):
        await bazi_cache.put(SAMPLE_BIRTH_INFO, flat_record)
        record = await bazi_cache.get(SAMPLE_BIRTH_INFO)
        assert record['meta']['schemaVersion'] == '2.0.0'
        assert record['numeric'] == SAMPLE_NUMERIC

    @pytest.mark.asyncio
    async def test_unknown_shape_rejected(self, bazi_cache):
        with pytest.raises(MigrationError):
            await bazi_cache.put(SAMPLE_BIRTH_INFO, {'foo': 1})
        assert len(bazi_cache) == 0

    @pytest.mark.asyncio
    async def test_persisted(self, bazi_cache, memory_store, dual_record):
        await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record, nickname='小明')
        raw = await memory_store.get(f'test_bazi:entry:{SAMPLE_KEY}')
        assert json.loads(raw)['record'] == dual_record
        assert json.loads(await memory_store.get('test_bazi:manifest')) == [SAMPLE_KEY]
        assert json.loads(await memory_store.get('test_bazi:index')) == {'小明': SAMPLE_KEY}


# ════════════════════ TTL ════════════════════


class TestTTL:

    @pytest.mark.asyncio
    async def test_ttl_clamped_to_minimum(self, bazi_cache, clock, dual_record):
        entry = await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record, ttl=1)
        assert entry.expires_at - entry.cached_at == 600

    @pytest.mark.asyncio
    async def test_ttl_clamped_to_maximum(self, bazi_cache, dual_record):
        entry = await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record, ttl=10 ** 9)
        assert entry.expires_at - entry.cached_at == 43200

    @pytest.mark.asyncio
    async def test_expiry_is_lazy_and_final(self, bazi_cache, clock, memory_store, dual_record):
        await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record, ttl=1)
        clock.advance(600)
        assert await bazi_cache.get(SAMPLE_BIRTH_INFO) is not None
        clock.advance(1)
        assert await bazi_cache.get(SAMPLE_BIRTH_INFO) is None
        assert await bazi_cache.get(SAMPLE_BIRTH_INFO) is None
        assert await memory_store.get(f'test_bazi:entry:{SAMPLE_KEY}') is None
        assert bazi_cache.stats()['evictions'] == 1

    @pytest.mark.asyncio
    async def test_sweep(self, bazi_cache, clock, dual_record):
        await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record, ttl=600, nickname='a')
        await bazi_cache.put({'date': '2000-01-01', 'time': '08:00', 'longitude': 120}, dual_record, ttl=3600)
        clock.advance(601)
        assert await bazi_cache.sweep() == 1
        assert len(bazi_cache) == 1
        assert bazi_cache.stats()['nicknames'] == 0

    @pytest.mark.asyncio
    async def test_sweeper_task(self, bazi_cache, clock, dual_record):
        await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record)
        clock.advance(10 ** 6)
        task = bazi_cache.start_sweeper(interval=0.01)
        for _ in range(50):
            if len(bazi_cache) == 0:
                break
            await asyncio.sleep(0.01)
        await bazi_cache.stop_sweeper()
        assert len(bazi_cache) == 0
        assert task.cancelled() or task.done()


# ════════════════════ 持久化失败 ════════════════════


class TestStoreFailures:

    @pytest.mark.asyncio
    async def test_store_error_does_not_fail_put(self, cache_config, clock, dual_record):
        store = AsyncMock(spec=DurableStore)
        store.set.side_effect = ConnectionError("redis down")
        cache = BaziDataCache(store=store, config=cache_config, clock=clock)
        await cache.put(SAMPLE_BIRTH_INFO, dual_record)
        assert await cache.get(SAMPLE_BIRTH_INFO) == dual_record
        assert cache.stats()['store_failures'] >= 1

    @pytest.mark.asyncio
    async def test_hanging_store_keeps_memory_update(self, cache_config, clock, dual_record):
        cache = BaziDataCache(store=HangingStore(), config=cache_config, clock=clock)
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(cache.put(SAMPLE_BIRTH_INFO, dual_record), timeout=0.05)
        assert await cache.get(SAMPLE_BIRTH_INFO) == dual_record


# ════════════════════ 启动加载 ════════════════════


class TestInitialize:

    @pytest.mark.asyncio
    async def test_reload_from_store(self, bazi_cache, memory_store, cache_config, clock, dual_record):
        await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record, nickname='小明')
        fresh = BaziDataCache(store=memory_store, config=cache_config, clock=clock)
        assert await fresh.initialize() == 1
        assert await fresh.get('小明') == dual_record

    @pytest.mark.asyncio
    async def test_migrates_legacy_bytes(self, memory_store, cache_config, clock, flat_record):
        await memory_store.set('test_bazi:manifest', json.dumps(['old']).encode('utf-8'))
        await memory_store.set('test_bazi:entry:old', json.dumps(flat_record).encode('utf-8'))
        cache = BaziDataCache(store=memory_store, config=cache_config, clock=clock)
        assert await cache.initialize() == 1

        record = await cache.get('old')
        assert record['meta']['migratedFrom'] == '1.0.0'
        assert record['chinese'] == SAMPLE_CHINESE
        assert await cache.get('小明') is not None
        rewritten = json.loads(await memory_store.get('test_bazi:entry:old'))
        assert rewritten['record']['meta']['schemaVersion'] == '2.0.0'

    @pytest.mark.asyncio
    async def test_unknown_shape_left_untouched(self, memory_store, cache_config, clock):
        original = json.dumps({'mystery': True}).encode('utf-8')
        await memory_store.set('test_bazi:manifest', json.dumps(['odd']).encode('utf-8'))
        await memory_store.set('test_bazi:entry:odd', original)
        cache = BaziDataCache(store=memory_store, config=cache_config, clock=clock)
        assert await cache.initialize() == 0
        assert await cache.get('odd') is None
        assert await memory_store.get('test_bazi:entry:odd') == original

    @pytest.mark.asyncio
    async def test_expired_entries_dropped(self, bazi_cache, memory_store, cache_config, clock, dual_record):
        await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record)
        clock.advance(10 ** 6)
        fresh = BaziDataCache(store=memory_store, config=cache_config, clock=clock)
        assert await fresh.initialize() == 0
        assert await memory_store.get(f'test_bazi:entry:{SAMPLE_KEY}') is None

    @pytest.mark.asyncio
    async def test_manifest_read_failure_starts_empty(self, cache_config, clock):
        store = AsyncMock(spec=DurableStore)
        store.get.side_effect = ConnectionError("redis down")
        cache = BaziDataCache(store=store, config=cache_config, clock=clock)
        assert await cache.initialize() == 0


# ════════════════════ 修复 ════════════════════


class TestRepair:

    @pytest.mark.asyncio
    async def test_transparent_repair_on_read(self, bazi_cache, dual_record):
        await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record)
        entry = bazi_cache._entries[SAMPLE_KEY]
        entry.record['numeric']['day'] = 7
        assert await bazi_cache.get(SAMPLE_BIRTH_INFO, RecordFormat.NUMERIC) == SAMPLE_NUMERIC
        assert bazi_cache.stats()['repairs'] == 1

    @pytest.mark.asyncio
    async def test_unrepairable_single_side_raises(self, bazi_cache, flat_record):
        flat_record['hour'] = '甲丑'
        await bazi_cache.put(SAMPLE_BIRTH_INFO, flat_record)
        dual = await bazi_cache.get(SAMPLE_BIRTH_INFO)
        assert dual['meta']['needsRepair'] is True
        with pytest.raises(ConsistencyError):
            await bazi_cache.get(SAMPLE_BIRTH_INFO, RecordFormat.CHINESE)

    @pytest.mark.asyncio
    async def test_repair_one_with_defaults(self, bazi_cache, flat_record):
        flat_record['hour'] = '甲丑'
        await bazi_cache.put(SAMPLE_BIRTH_INFO, flat_record)
        assert not (await bazi_cache.repair_one(SAMPLE_BIRTH_INFO)).is_valid
        result = await bazi_cache.repair_one(SAMPLE_BIRTH_INFO, allow_defaults=True)
        assert result.is_valid
        record = await bazi_cache.get(SAMPLE_BIRTH_INFO, RecordFormat.CHINESE)
        assert record['hour'] == '甲子'

    @pytest.mark.asyncio
    async def test_repair_one_missing(self, bazi_cache):
        assert await bazi_cache.repair_one('nonexist') is None

    @pytest.mark.asyncio
    async def test_repair_all(self, bazi_cache, dual_record, flat_record):
        await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record)
        flat_record['hour'] = '甲丑'
        await bazi_cache.put('broken', flat_record)
        counts = await bazi_cache.repair_all(allow_defaults=True)
        assert counts == {'repaired': 1, 'still_invalid': 0, 'untouched': 1}


# ════════════════════ 预热 / 管理 ════════════════════


class TestWarmAndManage:

    @pytest.mark.asyncio
    async def test_warm_counts(self, bazi_cache, dual_record):
        await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record)
        counts = await bazi_cache.warm([
            {'birth_info': SAMPLE_BIRTH_INFO, 'record': dual_record},
            {'birth_info': {'date': '2000-01-01', 'time': '08:00', 'longitude': 120}, 'record': dual_record},
            {'birth_info': {'date': '2001-01-01'}, 'record': {'foo': 1}},
            {'record': dual_record},
        ])
        assert counts == {'applied': 1, 'skipped': 1, 'failed': 2}

    @pytest.mark.asyncio
    async def test_warm_replaces_entry_needing_repair(self, bazi_cache, dual_record, flat_record):
        """待修复的条目不算已存在，预热时用新记录覆盖"""
        flat_record['day'] = '无效'
        await bazi_cache.put(SAMPLE_BIRTH_INFO, flat_record)
        assert bazi_cache.stats()['needs_repair'] == 1

        counts = await bazi_cache.warm([{'birth_info': SAMPLE_BIRTH_INFO, 'record': dual_record}])
        assert counts == {'applied': 1, 'skipped': 0, 'failed': 0}
        record = await bazi_cache.get(SAMPLE_BIRTH_INFO)
        assert 'needsRepair' not in record['meta']
        assert record['chinese'] == SAMPLE_CHINESE

    @pytest.mark.asyncio
    async def test_warm_logs_counts(self, bazi_cache, dual_record, caplog):
        with caplog.at_level(logging.INFO, logger='server.services.bazi_data_cache'):
            await bazi_cache.warm([{'birth_info': SAMPLE_BIRTH_INFO, 'record': dual_record}])
        assert "缓存预热完成: applied=1 skipped=0 failed=0" in caplog.text

    @pytest.mark.asyncio
    async def test_warm_force_refresh(self, bazi_cache, dual_record):
        await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record)
        counts = await bazi_cache.warm([{'birth_info': SAMPLE_BIRTH_INFO, 'record': dual_record}], force_refresh=True)
        assert counts['applied'] == 1

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, bazi_cache, memory_store, dual_record):
        await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record, nickname='小明')
        await bazi_cache.put('other', copy.deepcopy(dual_record))
        assert await bazi_cache.delete('小明') is True
        assert await bazi_cache.delete('小明') is False
        await bazi_cache.clear()
        assert len(bazi_cache) == 0
        assert json.loads(await memory_store.get('test_bazi:manifest')) == []

    @pytest.mark.asyncio
    async def test_stats(self, bazi_cache, clock, dual_record):
        await bazi_cache.put(SAMPLE_BIRTH_INFO, dual_record)
        clock.advance(5)
        await bazi_cache.put('later', dual_record)
        await bazi_cache.get('later')
        await bazi_cache.get('missing')
        stats = bazi_cache.stats()
        assert stats['entries'] == 2
        assert stats['oldest']['key'] == SAMPLE_KEY
        assert stats['newest']['key'] == 'later'
        assert (stats['hits'], stats['misses']) == (1, 1)

    def test_instances_are_isolated(self, cache_config):
        first = BaziDataCache(config=cache_config)
        second = BaziDataCache(config=cache_config)
        assert first.store is not second.store
        assert isinstance(first.store, MemoryDurableStore)
