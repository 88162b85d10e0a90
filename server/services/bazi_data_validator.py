#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
双格式数据一致性验证器

逐字段校验 numeric（六十甲子索引）与 chinese（干支文字）两套编码：
1. 字段存在性
2. 索引范围
3. 文字合法性
4. 两种编码互相对应

每个不一致的字段都会生成修复建议（RepairFix），修复优先采用合法的文字，
其次采用范围内的索引，都不可用时才回退到默认值（索引 0）。
"""

import copy
import logging
from typing import Any, Dict, Iterable, List, Optional

from core.data.constants import JIAZI_TABLE, SHICHEN_TABLE, PILLAR_FIELDS, RECORD_FIELDS
from core.calculators.ganzhi_codec import (
    CodecKind,
    NOT_FOUND,
    numeric_to_label,
    label_to_numeric,
)
from server.models.bazi_record import RepairFix, ValidationResult

logger = logging.getLogger(__name__)

FIX_FROM_LABEL = 'label'
FIX_FROM_NUMERIC = 'numeric'
FIX_DEFAULT = 'default'

TARGET_NUMERIC = 'numeric'
TARGET_CHINESE = 'chinese'
TARGET_BOTH = 'both'


def _kind_of(field: str) -> CodecKind:
    return CodecKind.SHICHEN if field == 'shichen' else CodecKind.PILLAR


def calculate_checksum(chinese: Dict[str, Any]) -> str:
    """
    计算四柱文字校验和

    32 位滚动哈希（h * 31 + 字符码，按有符号 32 位截断），取绝对值后输出 8 位十六进制。
    与历史数据中保存的校验和保持兼容。
    """
    text = ''.join(str(chinese.get(field) or '') for field in PILLAR_FIELDS)
    h = 0
    for char in text:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return format(abs(h), 'x').zfill(8)


class BaziDataValidator:
    """双格式记录验证器"""

    def __init__(self, strict_mode: bool = True):
        """
        Args:
            strict_mode: 严格模式下两种编码不一致记为错误，宽松模式下记为警告
        """
        self.strict_mode = strict_mode

    def validate(self, record: Dict[str, Any]) -> ValidationResult:
        """
        校验双格式记录

        Args:
            record: 包含 numeric / chinese 两部分的记录

        Returns:
            ValidationResult
        """
        result = ValidationResult(is_valid=False)
        if not isinstance(record, dict):
            result.errors.append("记录类型错误，应为 dict")
            return result

        numeric = record.get('numeric')
        chinese = record.get('chinese')
        if not isinstance(numeric, dict):
            result.errors.append("numeric 字段缺失或类型错误")
            numeric = {}
        if not isinstance(chinese, dict):
            result.errors.append("chinese 字段缺失或类型错误")
            chinese = {}

        for field in RECORD_FIELDS:
            self._check_field(field, numeric.get(field), chinese.get(field), result)

        self._check_shichen_alignment(numeric, chinese, result)

        result.checksum = calculate_checksum(chinese)
        result.is_valid = not result.errors
        return result

    def _check_field(self, field: str, numeric_value: Any, label: Any, result: ValidationResult):
        """单字段校验，必要时追加修复建议"""
        kind = _kind_of(field)
        problems = 0

        numeric_ok = numeric_to_label(kind, numeric_value) is not None
        label_index = label_to_numeric(kind, label)
        label_ok = label_index != NOT_FOUND

        if numeric_value is None:
            result.errors.append(f"numeric.{field} 缺失")
            problems += 1
        elif not numeric_ok:
            result.errors.append(f"numeric.{field} 越界或类型错误: {numeric_value!r}")
            problems += 1

        if label is None or label == '':
            result.errors.append(f"chinese.{field} 缺失")
            problems += 1
        elif not label_ok:
            result.errors.append(f"chinese.{field} 不是合法文字: {label!r}")
            problems += 1

        expected_label = numeric_to_label(kind, numeric_value)
        if numeric_ok and label_ok and expected_label != label:
            message = (f"{field} 两种编码不一致: numeric={numeric_value}"
                       f"({expected_label}) chinese={label}")
            if self.strict_mode:
                result.errors.append(message)
            else:
                result.warnings.append(message)
            problems += 1

        if problems:
            fix = self._propose_fix(field, kind, numeric_value, label, numeric_ok, label_ok, label_index)
            if fix is not None:
                result.fixes.append(fix)

    @staticmethod
    def _propose_fix(field, kind, numeric_value, label, numeric_ok, label_ok, label_index) -> Optional[RepairFix]:
        if label_ok:
            if numeric_value == label_index:
                return None
            return RepairFix(field, TARGET_NUMERIC, numeric_value, label_index, FIX_FROM_LABEL)
        if numeric_ok:
            return RepairFix(field, TARGET_CHINESE, label, numeric_to_label(kind, numeric_value), FIX_FROM_NUMERIC)
        return RepairFix(field, TARGET_BOTH, numeric_value, 0, FIX_DEFAULT)

    @staticmethod
    def _resolve_index(kind: CodecKind, numeric_value: Any, label: Any) -> Optional[int]:
        index = label_to_numeric(kind, label)
        if index != NOT_FOUND:
            return index
        if numeric_to_label(kind, numeric_value) is not None:
            return numeric_value
        return None

    def _check_shichen_alignment(self, numeric: Dict[str, Any], chinese: Dict[str, Any], result: ValidationResult):
        """时辰应与时柱地支一致（仅警告）"""
        hour = self._resolve_index(CodecKind.PILLAR, numeric.get('hour'), chinese.get('hour'))
        shichen = self._resolve_index(CodecKind.SHICHEN, numeric.get('shichen'), chinese.get('shichen'))
        if hour is not None and shichen is not None and hour % 12 != shichen:
            result.warnings.append(
                f"时辰与时柱地支不一致: {SHICHEN_TABLE[shichen]} vs {JIAZI_TABLE[hour]}"
            )

    def auto_repair(self, record: Dict[str, Any], allow_defaults: bool = True) -> Dict[str, Any]:
        """
        按修复建议生成修复后的新记录（不修改入参）

        Args:
            record: 双格式记录
            allow_defaults: 是否允许对无可用数据的字段回退到默认值

        Returns:
            修复后的记录，validation 块已刷新
        """
        repaired = copy.deepcopy(record) if isinstance(record, dict) else {}
        if not isinstance(repaired.get('numeric'), dict):
            repaired['numeric'] = {}
        if not isinstance(repaired.get('chinese'), dict):
            repaired['chinese'] = {}
        if not isinstance(repaired.get('meta'), dict):
            repaired['meta'] = {}

        before = self.validate(repaired)
        applied = []
        for fix in before.fixes:
            if fix.reason == FIX_DEFAULT and not allow_defaults:
                continue
            kind = _kind_of(fix.field)
            if fix.target in (TARGET_NUMERIC, TARGET_BOTH):
                repaired['numeric'][fix.field] = fix.to_value if fix.target == TARGET_NUMERIC else 0
            if fix.target in (TARGET_CHINESE, TARGET_BOTH):
                repaired['chinese'][fix.field] = (
                    fix.to_value if fix.target == TARGET_CHINESE else numeric_to_label(kind, 0)
                )
            applied.append(fix)

        after = self.validate(repaired)
        if applied:
            repaired['meta']['source'] = 'repaired'
            fields = ', '.join(f"{f.field}({f.reason})" for f in applied)
            logger.info(f"双格式记录已修复 {len(applied)} 个字段: {fields}")
        if after.is_valid:
            repaired['meta'].pop('needsRepair', None)
        repaired['validation'] = after.to_dict()
        return repaired

    def batch_validate(self, records: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
        """
        批量校验

        Returns:
            {'total', 'valid', 'invalid', 'warnings', 'results'}
        """
        results: List[ValidationResult] = [self.validate(record) for record in records]
        summary = {
            'total': len(results),
            'valid': sum(1 for r in results if r.is_valid),
            'invalid': sum(1 for r in results if not r.is_valid),
            'warnings': sum(len(r.warnings) for r in results),
            'results': results,
        }
        if summary['invalid']:
            logger.warning(f"批量校验: {summary['invalid']}/{summary['total']} 条记录无效")
        return summary

    @staticmethod
    def generate_report(result: ValidationResult) -> str:
        """生成可读的校验报告"""
        lines = [
            "=== 八字数据校验报告 ===",
            f"状态: {'通过' if result.is_valid else '未通过'}",
            f"校验和: {result.checksum or '-'}",
        ]
        if result.errors:
            lines.append(f"错误 ({len(result.errors)}):")
            lines.extend(f"  - {e}" for e in result.errors)
        if result.warnings:
            lines.append(f"警告 ({len(result.warnings)}):")
            lines.extend(f"  - {w}" for w in result.warnings)
        if result.fixes:
            lines.append(f"修复建议 ({len(result.fixes)}):")
            lines.extend(
                f"  - {f.field}.{f.target}: {f.from_value!r} -> {f.to_value!r} ({f.reason})"
                for f in result.fixes
            )
        return '\n'.join(lines)
