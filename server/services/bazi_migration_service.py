#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
八字记录结构迁移

按结构特征识别记录版本，沿固定路径升级到当前结构：
    1.0.0（扁平） -> 1.1.0（嵌套） -> 2.0.0（双格式）

迁移后立即校验，只应用可由数据推导的修复；仍不一致的记录保留并标记
meta.needsRepair，不会被丢弃。对同一记录重复迁移结果不变。
"""

import copy
import logging
import time
from collections import Counter, deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from core.data.constants import (
    CURRENT_SCHEMA_VERSION,
    PILLAR_FIELDS,
    SHICHEN_TABLE,
)
from core.calculators.ganzhi_codec import CodecKind, NOT_FOUND, label_to_numeric, numeric_to_label
from core.exceptions import MigrationError
from server.models.bazi_record import MigrationLog, MigrationResult
from server.services.bazi_data_validator import BaziDataValidator

logger = logging.getLogger(__name__)

VERSION_FLAT = '1.0.0'
VERSION_NESTED = '1.1.0'
VERSION_DUAL = CURRENT_SCHEMA_VERSION
VERSION_UNKNOWN = 'unknown'

MAX_HISTORY = 100


def _pillar_label(value: Any) -> Any:
    """从旧结构的柱值中取出干支文字（字符串 / {ganzhi|ganZhi|gan+zhi} / 索引）"""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return numeric_to_label(CodecKind.PILLAR, value)
    if isinstance(value, dict):
        for key in ('ganZhi', 'ganzhi'):
            if isinstance(value.get(key), str):
                return value[key].strip()
        gan, zhi = value.get('gan'), value.get('zhi')
        if isinstance(gan, str) and isinstance(zhi, str):
            return gan.strip() + zhi.strip()
        if isinstance(value.get('index'), int):
            return numeric_to_label(CodecKind.PILLAR, value['index'])
    return None


def _shichen_label(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict):
        for key in ('ganZhi', 'ganzhi', 'name', 'label'):
            if isinstance(value.get(key), str):
                return value[key].strip()
    return None


def flat_to_nested(record: Dict[str, Any]) -> Dict[str, Any]:
    """1.0.0 -> 1.1.0：扁平字段归入 birth / bazi / meta"""
    return {
        'birth': {
            'date': record.get('birthDate'),
            'time': record.get('birthTime'),
            'location': {'longitude': record.get('longitude')},
            'shichen': _shichen_label(record.get('shichen')),
        },
        'bazi': {field: {'ganZhi': _pillar_label(record.get(field))} for field in PILLAR_FIELDS},
        'meta': {
            'version': VERSION_NESTED,
            'calculatedAt': record.get('calculatedAt') or record.get('cachedAt'),
            'nickname': record.get('nickname'),
        },
    }


def nested_to_dual_format(record: Dict[str, Any]) -> Dict[str, Any]:
    """1.1.0 -> 2.0.0：干支文字补充数字索引，生成双格式记录"""
    birth = record.get('birth') if isinstance(record.get('birth'), dict) else {}
    bazi = record.get('bazi') if isinstance(record.get('bazi'), dict) else {}
    old_meta = record.get('meta') if isinstance(record.get('meta'), dict) else {}

    numeric: Dict[str, Any] = {}
    chinese: Dict[str, Any] = {}
    for field in PILLAR_FIELDS:
        raw = bazi.get(field)
        label = _pillar_label(raw)
        index = label_to_numeric(CodecKind.PILLAR, label)
        if index == NOT_FOUND:
            # 文字不可用时保留旧结构中的索引（如有），交由校验器处理
            index = raw.get('index') if isinstance(raw, dict) else None
        numeric[field] = index
        chinese[field] = label

    shichen_label = _shichen_label(birth.get('shichen')) or _shichen_label(bazi.get('shichen'))
    shichen_index = label_to_numeric(CodecKind.SHICHEN, shichen_label)
    if shichen_index == NOT_FOUND:
        # 时辰缺失时由时柱地支推出
        hour = numeric.get('hour')
        shichen_index = hour % 12 if numeric_to_label(CodecKind.PILLAR, hour) is not None else None
        if shichen_label is None and shichen_index is not None:
            shichen_label = SHICHEN_TABLE[shichen_index]
    numeric['shichen'] = shichen_index
    chinese['shichen'] = shichen_label

    location = birth.get('location') if isinstance(birth.get('location'), dict) else {}
    birth_info = None
    if birth.get('date'):
        birth_info = {
            'date': birth.get('date'),
            'time': birth.get('time'),
            'longitude': location.get('longitude', birth.get('longitude')),
        }

    return {
        'meta': {
            'schemaVersion': VERSION_DUAL,
            'producedAt': old_meta.get('calculatedAt') or old_meta.get('cachedAt'),
            'source': 'migrated',
            'nickname': old_meta.get('nickname'),
            'birthInfo': birth_info,
        },
        'numeric': numeric,
        'chinese': chinese,
    }


# 迁移边：起始版本 -> (目标版本, 名称, 转换函数)
MIGRATION_EDGES: Dict[str, Tuple[str, str, Callable[[Dict[str, Any]], Dict[str, Any]]]] = {
    VERSION_FLAT: (VERSION_NESTED, 'flat_to_nested', flat_to_nested),
    VERSION_NESTED: (VERSION_DUAL, 'nested_to_dual_format', nested_to_dual_format),
}


class BaziMigrationManager:
    """八字记录迁移管理器"""

    def __init__(self, validator: Optional[BaziDataValidator] = None):
        self.validator = validator or BaziDataValidator(strict_mode=True)
        self._history: Deque[MigrationLog] = deque(maxlen=MAX_HISTORY)

    @staticmethod
    def detect_version(record: Any) -> str:
        """
        按结构特征识别版本

        Returns:
            '2.0.0' / '1.1.0' / '1.0.0' / 'unknown'
        """
        if not isinstance(record, dict):
            return VERSION_UNKNOWN
        if all(key in record for key in ('meta', 'numeric', 'chinese')):
            return VERSION_DUAL
        if 'birth' in record and 'bazi' in record:
            return VERSION_NESTED
        if all(field in record for field in PILLAR_FIELDS):
            return VERSION_FLAT
        return VERSION_UNKNOWN

    @staticmethod
    def get_migration_path(version: str) -> List[str]:
        """
        从指定版本到当前版本的迁移步骤名称

        Raises:
            MigrationError: 版本未知
        """
        if version == VERSION_DUAL:
            return []
        if version not in MIGRATION_EDGES:
            raise MigrationError(f"无法识别的记录版本: {version}", version=version)
        steps = []
        current = version
        while current != VERSION_DUAL:
            target, name, _ = MIGRATION_EDGES[current]
            steps.append(name)
            current = target
        return steps

    def needs_migration(self, record: Any) -> bool:
        return self.detect_version(record) != VERSION_DUAL

    def migrate(self, record: Dict[str, Any]) -> MigrationResult:
        """
        迁移到当前结构并校验

        Raises:
            MigrationError: 记录结构无法识别
        """
        started = time.perf_counter()
        version = self.detect_version(record)
        log = MigrationLog(detected_version=version)

        if version == VERSION_UNKNOWN:
            log.error = "无法识别的记录结构"
            log.duration_ms = (time.perf_counter() - started) * 1000
            self._history.append(log)
            shape = sorted(record.keys()) if isinstance(record, dict) else type(record).__name__
            logger.warning(f"迁移失败: 无法识别的记录结构 keys={shape}")
            raise MigrationError("无法识别的记录结构", version=version)

        current = copy.deepcopy(record)
        while version != VERSION_DUAL:
            target, name, transform = MIGRATION_EDGES[version]
            current = transform(current)
            log.steps.append(name)
            version = target
        if log.steps:
            current['meta']['migratedFrom'] = log.detected_version

        current = self._settle(current)
        log.needs_repair = bool(current['meta'].get('needsRepair'))
        log.success = True
        log.duration_ms = (time.perf_counter() - started) * 1000
        self._history.append(log)

        if log.steps:
            suffix = '，待修复' if log.needs_repair else ''
            logger.info(f"记录迁移完成: {log.detected_version} -> {VERSION_DUAL} ({' -> '.join(log.steps)}){suffix}")
        return MigrationResult(record=current, log=log)

    def _settle(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """迁移后校验，仅应用数据可推导的修复，仍无效则打标记"""
        if not isinstance(record.get('meta'), dict):
            record['meta'] = {}
        result = self.validator.validate(record)
        if result.fixes:
            record = self.validator.auto_repair(record, allow_defaults=False)
            result = self.validator.validate(record)
        else:
            record['validation'] = result.to_dict()

        if result.is_valid:
            record['meta'].pop('needsRepair', None)
        else:
            record['meta']['needsRepair'] = True
            logger.warning(f"记录迁移后仍不一致，已标记待修复: {'; '.join(result.errors)}")
        return record

    def get_migration_statistics(self) -> Dict[str, Any]:
        """最近迁移的统计信息"""
        history = list(self._history)
        total = len(history)
        succeeded = [log for log in history if log.success]
        return {
            'total': total,
            'success': len(succeeded),
            'failed': total - len(succeeded),
            'needs_repair': sum(1 for log in succeeded if log.needs_repair),
            'by_version': dict(Counter(log.detected_version for log in history)),
            'average_duration_ms': (sum(log.duration_ms for log in history) / total) if total else 0.0,
        }

    def get_migration_history(self) -> List[MigrationLog]:
        return list(self._history)

    def clear_migration_history(self, keep: int = 0):
        """清理迁移历史，保留最近 keep 条"""
        recent = list(self._history)[-keep:] if keep > 0 else []
        self._history.clear()
        self._history.extend(recent)
