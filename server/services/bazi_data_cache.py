#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
八字双格式记录缓存管理器

内存字典为权威数据，持久化存储为备份：
- 写入先更新内存，再写持久化存储；存储失败只记日志，不影响业务
- 读取时惰性过期，过期条目删除后返回 None
- 启动时从存储加载并迁移旧结构记录，无法识别的记录跳过且不改动存储
- 昵称索引：昵称 -> 缓存键

持久化键：
    {prefix}:manifest        缓存键列表
    {prefix}:index           昵称索引
    {prefix}:entry:{key}     CacheEntry JSON
"""

import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union

from pydantic import ValidationError

from core.exceptions import BaziEngineError, ConsistencyError, MigrationError
from server.config.app_config import CacheConfig
from server.models.bazi_record import BirthInfo, CacheEntry, ValidationResult
from server.services.bazi_data_validator import BaziDataValidator
from server.services.bazi_dual_format_service import RecordFormat, format_record
from server.services.bazi_migration_service import BaziMigrationManager
from server.utils.cache_key_generator import CacheKeyGenerator
from server.utils.durable_store import DurableStore, MemoryDurableStore

logger = logging.getLogger(__name__)

Identifier = Union[str, BirthInfo, Dict[str, Any]]


class BaziDataCache:
    """八字双格式记录缓存（每个实例独占自己的条目与昵称索引）"""

    def __init__(self,
                 store: Optional[DurableStore] = None,
                 validator: Optional[BaziDataValidator] = None,
                 migration_manager: Optional[BaziMigrationManager] = None,
                 config: Optional[CacheConfig] = None,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            store: 持久化存储，默认进程内存储
            validator: 校验器，默认按配置的严格模式创建
            migration_manager: 迁移管理器
            config: 缓存配置
            clock: 时间源（epoch 秒），测试中可替换
        """
        self.config = config or CacheConfig()
        self.store = store or MemoryDurableStore()
        self.validator = validator or BaziDataValidator(strict_mode=self.config.strict_validation)
        self.migration_manager = migration_manager or BaziMigrationManager(self.validator)
        self.clock = clock

        self._entries: Dict[str, CacheEntry] = {}
        self._nickname_index: Dict[str, str] = {}
        # 结构无法识别、保留在存储中的条目键
        self._unreadable_keys: Set[str] = set()
        self._sweeper_task: Optional[asyncio.Task] = None
        self._stats = {'hits': 0, 'misses': 0, 'evictions': 0, 'repairs': 0, 'store_failures': 0}

    # ==================== 键 ====================

    def _store_key(self, *parts: str) -> str:
        return CacheKeyGenerator.storage_key(self.config.key_prefix, *parts)

    @property
    def manifest_key(self) -> str:
        return self._store_key('manifest')

    @property
    def index_key(self) -> str:
        return self._store_key('index')

    def entry_key(self, cache_key: str) -> str:
        return self._store_key('entry', cache_key)

    def resolve_key(self, identifier: Identifier) -> str:
        """
        解析缓存键

        Args:
            identifier: 出生信息（BirthInfo / dict）、昵称或缓存键
        """
        if isinstance(identifier, (BirthInfo, dict)):
            return CacheKeyGenerator.generate_from_birth_info(identifier)
        if isinstance(identifier, str):
            return self._nickname_index.get(identifier, identifier)
        raise TypeError(f"不支持的缓存标识类型: {type(identifier).__name__}")

    @staticmethod
    def _birth_info_of(identifier: Identifier) -> Optional[Dict[str, Any]]:
        if isinstance(identifier, BirthInfo):
            return identifier.to_record_dict()
        if isinstance(identifier, dict):
            return BirthInfo.model_validate(identifier).to_record_dict()
        return None

    # ==================== 加载 ====================

    async def initialize(self) -> int:
        """
        从持久化存储加载条目

        旧结构记录迁移后回写；已过期条目删除；无法识别的记录跳过，存储中的原始数据保持不变。

        Returns:
            加载到内存的条目数
        """
        try:
            keys = await self._load_json(self.manifest_key) or []
            index = await self._load_json(self.index_key) or {}
        except Exception as e:
            logger.error(f"加载缓存清单失败，以空缓存启动: {e}")
            return 0

        now = self.clock()
        loaded = 0
        for cache_key in keys:
            try:
                raw = await self.store.get(self.entry_key(cache_key))
            except Exception as e:
                self._unreadable_keys.add(cache_key)
                logger.warning(f"读取缓存条目失败，已跳过: key={cache_key}, {e}")
                continue
            if raw is None:
                continue
            entry = self._parse_entry(cache_key, raw, now)
            if entry is None:
                self._unreadable_keys.add(cache_key)
                continue

            if entry.is_expired(now):
                self._stats['evictions'] += 1
                await self._safe_remove(self.entry_key(cache_key))
                continue

            try:
                migrated = self.migration_manager.migrate(entry.record)
            except MigrationError as e:
                self._unreadable_keys.add(cache_key)
                logger.warning(f"缓存条目结构无法识别，已跳过: key={cache_key}, {e.message}")
                continue

            self._entries[cache_key] = entry
            if migrated.log.steps or migrated.record != entry.record:
                entry.record = migrated.record
                entry.schema_version = migrated.record['meta']['schemaVersion']
                await self._persist_entry(entry)
            loaded += 1

        self._nickname_index = {
            nickname: key for nickname, key in index.items() if key in self._entries
        }
        for entry in self._entries.values():
            if entry.nickname and entry.nickname not in self._nickname_index:
                self._nickname_index[entry.nickname] = entry.key
        await self._persist_manifest()
        logger.info(f"八字缓存加载完成: {loaded} 条，昵称 {len(self._nickname_index)} 个")
        return loaded

    async def _load_json(self, store_key: str) -> Any:
        raw = await self.store.get(store_key)
        if raw is None:
            return None
        return json.loads(raw)

    def _parse_entry(self, cache_key: str, raw: bytes, now: float) -> Optional[CacheEntry]:
        """解析存储内容：CacheEntry 结构，或早期直接保存的记录"""
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning(f"缓存条目不是合法 JSON，已跳过: key={cache_key}, {e}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"缓存条目结构无法识别，已跳过: key={cache_key}")
            return None

        if 'record' in data and 'expires_at' in data:
            try:
                return CacheEntry.model_validate(data)
            except ValidationError as e:
                logger.warning(f"缓存条目字段错误，已跳过: key={cache_key}, {e.error_count()} 个错误")
                return None

        # 早期版本只保存记录本身，按默认 TTL 重新计时
        meta = data.get('meta') if isinstance(data.get('meta'), dict) else {}
        return CacheEntry(
            key=cache_key,
            nickname=data.get('nickname') or meta.get('nickname'),
            record=data,
            cached_at=now,
            expires_at=now + self.config.clamp_ttl(None),
            schema_version=self.migration_manager.detect_version(data),
        )

    # ==================== 读写 ====================

    async def get(self, identifier: Identifier, fmt: RecordFormat = RecordFormat.DUAL) -> Optional[Dict[str, Any]]:
        """
        读取记录

        Args:
            identifier: 出生信息、昵称或缓存键
            fmt: 输出格式

        Returns:
            记录（副本），不存在或已过期返回 None

        Raises:
            ConsistencyError: 请求单侧格式但记录无法修复为一致
        """
        fmt = RecordFormat(fmt)
        cache_key = self.resolve_key(identifier)
        entry = self._entries.get(cache_key)
        if entry is None:
            self._stats['misses'] += 1
            return None
        if entry.is_expired(self.clock()):
            self._stats['misses'] += 1
            await self._evict(cache_key)
            return None

        self._stats['hits'] += 1
        result = self.validator.validate(entry.record)
        if entry.record.get('meta', {}).get('needsRepair') or not result.is_valid or result.fixes:
            result = await self._try_repair(entry, allow_defaults=False)
        record = entry.record

        if fmt is not RecordFormat.DUAL:
            if not result.is_valid or result.fixes:
                raise ConsistencyError(
                    f"缓存记录两种编码不一致，无法输出 {fmt.value} 格式: key={cache_key}",
                    errors=result.errors + result.warnings,
                )
        return format_record(record, fmt)

    async def put(self,
                  identifier: Identifier,
                  record: Dict[str, Any],
                  ttl: Optional[float] = None,
                  nickname: Optional[str] = None) -> CacheEntry:
        """
        写入记录（旧结构会先迁移）

        Args:
            identifier: 出生信息或缓存键
            record: 记录
            ttl: 有效期（秒），限制在 [min_ttl, max_ttl]
            nickname: 昵称，写入昵称索引

        Raises:
            MigrationError: 记录结构无法识别
        """
        cache_key = self.resolve_key(identifier)
        # 迁移同时完成校验与可推导修复（返回副本）
        record = self.migration_manager.migrate(record).record

        now = self.clock()
        birth_info = self._birth_info_of(identifier)
        if birth_info is None and cache_key in self._entries:
            birth_info = self._entries[cache_key].birth_info
        entry = CacheEntry(
            key=cache_key,
            nickname=nickname,
            birth_info=birth_info,
            record=record,
            cached_at=now,
            expires_at=now + self.config.clamp_ttl(ttl),
            schema_version=record.get('meta', {}).get('schemaVersion', self.migration_manager.detect_version(record)),
        )

        # 内存先行：即使持久化挂起或失败，读取也能拿到新值
        self._entries[cache_key] = entry
        stale = None
        if nickname:
            previous_key = self._nickname_index.get(nickname)
            self._nickname_index[nickname] = cache_key
            # 昵称改绑：旧条目同时清除该昵称
            stale = self._entries.get(previous_key) if previous_key != cache_key else None
            if stale is not None and stale.nickname == nickname:
                stale.nickname = None
            else:
                stale = None

        await self._persist_entry(entry)
        if stale is not None:
            await self._persist_entry(stale)
        await self._persist_manifest()
        return entry

    async def delete(self, identifier: Identifier) -> bool:
        """删除条目，返回是否存在"""
        cache_key = self.resolve_key(identifier)
        if cache_key not in self._entries:
            return False
        await self._evict(cache_key, count_eviction=False)
        return True

    def has(self, identifier: Identifier) -> bool:
        """是否存在未过期条目（不触发删除）"""
        entry = self._entries.get(self.resolve_key(identifier))
        return entry is not None and not entry.is_expired(self.clock())

    def _is_settled(self, identifier: Identifier) -> bool:
        """存在未过期、校验通过且未标记待修复的条目"""
        if not self.has(identifier):
            return False
        record = self._entries[self.resolve_key(identifier)].record
        if record.get('meta', {}).get('needsRepair'):
            return False
        result = self.validator.validate(record)
        return result.is_valid and not result.fixes

    async def clear(self):
        """清空缓存（含持久化存储）"""
        keys = list(self._entries.keys())
        self._entries.clear()
        self._nickname_index.clear()
        for cache_key in keys:
            await self._safe_remove(self.entry_key(cache_key))
        await self._persist_manifest()
        logger.info(f"八字缓存已清空: {len(keys)} 条")

    # ==================== 预热 / 清理 / 修复 ====================

    async def warm(self, items: Iterable[Dict[str, Any]], force_refresh: bool = False) -> Dict[str, int]:
        """
        批量预热

        Args:
            items: [{'birth_info', 'record', 'nickname'?, 'ttl'?}, ...]
            force_refresh: 已存在且有效的条目也覆盖（无效或待修复的条目总是覆盖）

        Returns:
            {'applied', 'skipped', 'failed'}
        """
        counts = {'applied': 0, 'skipped': 0, 'failed': 0}
        for item in items:
            try:
                identifier = item.get('birth_info') or item['key']
                if not force_refresh and self._is_settled(identifier):
                    counts['skipped'] += 1
                    continue
                await self.put(identifier, item['record'], ttl=item.get('ttl'), nickname=item.get('nickname'))
                counts['applied'] += 1
            except (BaziEngineError, KeyError, TypeError, ValueError, AttributeError) as e:
                counts['failed'] += 1
                logger.warning(f"缓存预热条目失败: {e}")
        logger.info(f"缓存预热完成: applied={counts['applied']} skipped={counts['skipped']} failed={counts['failed']}")
        return counts

    async def sweep(self) -> int:
        """清理过期条目，返回清理数量"""
        now = self.clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for cache_key in expired:
            await self._evict(cache_key, persist_manifest=False)
        if expired:
            await self._persist_manifest()
            logger.info(f"清理过期缓存: {len(expired)} 条")
        return len(expired)

    def start_sweeper(self, interval: Optional[float] = None) -> asyncio.Task:
        """启动定时清理任务（需在事件循环中调用）"""
        if self._sweeper_task is not None and not self._sweeper_task.done():
            return self._sweeper_task
        interval = interval if interval is not None else self.config.sweep_interval
        self._sweeper_task = asyncio.create_task(self._sweep_loop(interval))
        return self._sweeper_task

    async def stop_sweeper(self):
        """停止定时清理任务"""
        task, self._sweeper_task = self._sweeper_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_loop(self, interval: float):
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"定时清理缓存失败: {e}", exc_info=True)

    async def repair_one(self, identifier: Identifier, allow_defaults: bool = False) -> Optional[ValidationResult]:
        """
        修复单个条目

        Args:
            identifier: 出生信息、昵称或缓存键
            allow_defaults: 是否允许回退默认值（会丢失原始数据）

        Returns:
            修复后的校验结果，条目不存在返回 None
        """
        entry = self._entries.get(self.resolve_key(identifier))
        if entry is None:
            return None
        return await self._try_repair(entry, allow_defaults=allow_defaults)

    async def repair_all(self, allow_defaults: bool = False) -> Dict[str, int]:
        """
        修复全部待修复条目

        Returns:
            {'repaired', 'still_invalid', 'untouched'}
        """
        counts = {'repaired': 0, 'still_invalid': 0, 'untouched': 0}
        for entry in list(self._entries.values()):
            before = self.validator.validate(entry.record)
            if before.is_valid and not before.fixes and not entry.record.get('meta', {}).get('needsRepair'):
                counts['untouched'] += 1
                continue
            result = await self._try_repair(entry, allow_defaults=allow_defaults)
            counts['repaired' if result.is_valid else 'still_invalid'] += 1
        return counts

    async def _try_repair(self, entry: CacheEntry, allow_defaults: bool) -> ValidationResult:
        repaired = self.validator.auto_repair(entry.record, allow_defaults=allow_defaults)
        result = self.validator.validate(repaired)
        if result.is_valid:
            repaired['meta'].pop('needsRepair', None)
        else:
            repaired['meta']['needsRepair'] = True

        if repaired != entry.record:
            entry.record = repaired
            self._stats['repairs'] += 1
            await self._persist_entry(entry)
            logger.info(f"缓存条目已修复: key={entry.key}, valid={result.is_valid}")
        return result

    # ==================== 统计 ====================

    def stats(self) -> Dict[str, Any]:
        """缓存统计"""
        entries = list(self._entries.values())
        oldest = min(entries, key=lambda e: e.cached_at) if entries else None
        newest = max(entries, key=lambda e: e.cached_at) if entries else None
        return {
            'entries': len(entries),
            'nicknames': len(self._nickname_index),
            'needs_repair': sum(1 for e in entries if e.record.get('meta', {}).get('needsRepair')),
            'oldest': {'key': oldest.key, 'cached_at': oldest.cached_at} if oldest else None,
            'newest': {'key': newest.key, 'cached_at': newest.cached_at} if newest else None,
            **self._stats,
        }

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    def __len__(self):
        return len(self._entries)

    # ==================== 持久化 ====================

    async def _evict(self, cache_key: str, count_eviction: bool = True, persist_manifest: bool = True):
        self._entries.pop(cache_key, None)
        for nickname in [n for n, k in self._nickname_index.items() if k == cache_key]:
            del self._nickname_index[nickname]
        if count_eviction:
            self._stats['evictions'] += 1
        await self._safe_remove(self.entry_key(cache_key))
        if persist_manifest:
            await self._persist_manifest()

    async def _persist_entry(self, entry: CacheEntry):
        try:
            await self.store.set(self.entry_key(entry.key), entry.to_bytes())
        except Exception as e:
            self._stats['store_failures'] += 1
            logger.warning(f"缓存条目持久化失败（不影响业务）: key={entry.key}, {e}")

    async def _persist_manifest(self):
        try:
            manifest = json.dumps(sorted(set(self._entries) | self._unreadable_keys), ensure_ascii=False)
            index = json.dumps(self._nickname_index, ensure_ascii=False, sort_keys=True)
            await self.store.set(self.manifest_key, manifest.encode('utf-8'))
            await self.store.set(self.index_key, index.encode('utf-8'))
        except Exception as e:
            self._stats['store_failures'] += 1
            logger.warning(f"缓存清单持久化失败（不影响业务）: {e}")

    async def _safe_remove(self, store_key: str):
        try:
            await self.store.remove(store_key)
        except Exception as e:
            self._stats['store_failures'] += 1
            logger.warning(f"缓存条目删除失败（不影响业务）: key={store_key}, {e}")
