#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
八字双格式记录服务

- create_dual_format_record：由四柱结果生成 numeric + chinese 双格式记录
- decode_numeric / decode_chinese：任一侧解码回四柱结果
- format_record：按输出格式（DUAL / NUMERIC / CHINESE / LEGACY）导出
"""

import copy
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from core.data.constants import (
    CURRENT_SCHEMA_VERSION,
    PILLAR_FIELDS,
    STEMS,
    BRANCHES,
)
from core.calculators.ganzhi_codec import CodecKind, NOT_FOUND, Pillar, label_to_numeric, numeric_to_label
from core.calculators.pillar_calculator import FourPillarRecord
from core.exceptions import ConsistencyError
from server.services.bazi_data_validator import BaziDataValidator


class RecordFormat(str, Enum):
    """记录输出格式"""
    DUAL = "dual"
    NUMERIC = "numeric"
    CHINESE = "chinese"
    LEGACY = "legacy"


def create_dual_format_record(four_pillars: FourPillarRecord,
                              birth_info: Optional[Dict[str, Any]] = None,
                              nickname: Optional[str] = None,
                              produced_at: Optional[str] = None,
                              validator: Optional[BaziDataValidator] = None) -> Dict[str, Any]:
    """
    生成双格式记录

    Args:
        four_pillars: 四柱结果
        birth_info: 出生信息 {'date', 'time', 'longitude'}
        nickname: 昵称
        produced_at: 生成时间（ISO 8601），为空取当前时间
        validator: 校验器，为空使用严格模式

    Returns:
        schemaVersion 2.0.0 的双格式记录
    """
    validator = validator or BaziDataValidator(strict_mode=True)
    record = {
        'meta': {
            'schemaVersion': CURRENT_SCHEMA_VERSION,
            'producedAt': produced_at or datetime.now().isoformat(timespec='seconds'),
            'source': 'calculate',
            'nickname': nickname,
            'birthInfo': dict(birth_info) if birth_info else None,
        },
        'numeric': four_pillars.to_numeric(),
        'chinese': four_pillars.to_chinese(),
    }
    record['validation'] = validator.validate(record).to_dict()
    return record


def _decode(side: Dict[str, Any], from_labels: bool) -> FourPillarRecord:
    pillars = {}
    for field in PILLAR_FIELDS:
        value = side.get(field)
        index = label_to_numeric(CodecKind.PILLAR, value) if from_labels else value
        if index == NOT_FOUND or numeric_to_label(CodecKind.PILLAR, index) is None:
            raise ConsistencyError(f"无法解码 {field}: {value!r}")
        pillars[field] = Pillar(index)

    shichen_value = side.get('shichen')
    shichen = label_to_numeric(CodecKind.SHICHEN, shichen_value) if from_labels else shichen_value
    if shichen == NOT_FOUND or numeric_to_label(CodecKind.SHICHEN, shichen) is None:
        raise ConsistencyError(f"无法解码 shichen: {shichen_value!r}")
    return FourPillarRecord(shichen=shichen, **pillars)


def decode_numeric(record: Dict[str, Any]) -> FourPillarRecord:
    """从 numeric 一侧解码"""
    return _decode(record.get('numeric') or {}, from_labels=False)


def decode_chinese(record: Dict[str, Any]) -> FourPillarRecord:
    """从 chinese 一侧解码"""
    return _decode(record.get('chinese') or {}, from_labels=True)


def _legacy_view(record: Dict[str, Any]) -> Dict[str, Any]:
    chinese = record.get('chinese') or {}
    legacy = {}
    for field in PILLAR_FIELDS:
        label = chinese.get(field) or ''
        legacy[field] = {
            'gan': label[:1] if label[:1] in STEMS else '',
            'zhi': label[1:2] if label[1:2] in BRANCHES else '',
            'ganzhi': label,
        }
    legacy['shichen'] = chinese.get('shichen')
    return legacy


def format_record(record: Dict[str, Any], fmt: RecordFormat) -> Dict[str, Any]:
    """
    按输出格式导出记录（返回副本）

    Raises:
        ValueError: 未知格式
    """
    fmt = RecordFormat(fmt)
    if fmt is RecordFormat.DUAL:
        return copy.deepcopy(record)
    if fmt is RecordFormat.NUMERIC:
        return dict(record.get('numeric') or {})
    if fmt is RecordFormat.CHINESE:
        return dict(record.get('chinese') or {})
    if fmt is RecordFormat.LEGACY:
        return _legacy_view(record)
    raise ValueError(f"未知输出格式: {fmt!r}")
