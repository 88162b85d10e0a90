#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
八字双格式记录相关数据模型

- BirthInfo / CacheEntry：pydantic 模型，对外输入与持久化结构
- RepairFix / ValidationResult / MigrationLog / MigrationResult：内部结果对象
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from core.calculators.calendar_math import parse_birth_date, parse_birth_time
from core.data.constants import CURRENT_SCHEMA_VERSION
from core.exceptions import InputError


class BirthInfo(BaseModel):
    """出生信息（缓存键的来源）"""
    date: str = Field(..., description="出生日期 YYYY-MM-DD", pattern=r'^\d{4}-\d{1,2}-\d{1,2}$')
    time: Optional[str] = Field(None, description="出生时间 HH:MM（24 小时制）", pattern=r'^\d{1,2}:\d{2}$')
    longitude: Optional[float] = Field(None, ge=-180, le=180, description="出生地经度，东经为正")

    @field_validator('date', 'time', mode='before')
    @classmethod
    def _strip(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator('date')
    @classmethod
    def _normalize_date(cls, value: str) -> str:
        """1990-1-1 -> 1990-01-01"""
        try:
            return parse_birth_date(value).isoformat()
        except InputError as e:
            raise ValueError(e.message) from e

    @field_validator('time')
    @classmethod
    def _normalize_time(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            hour, minute = parse_birth_time(value)
        except InputError as e:
            raise ValueError(e.message) from e
        return f"{hour:02d}:{minute:02d}"

    def to_record_dict(self) -> Dict[str, Any]:
        """写入记录 meta.birthInfo 的结构"""
        return {'date': self.date, 'time': self.time, 'longitude': self.longitude}


class CacheEntry(BaseModel):
    """缓存条目（内存与持久化共用）"""
    key: str = Field(..., description="缓存键")
    nickname: Optional[str] = Field(None, description="昵称")
    birth_info: Optional[Dict[str, Any]] = Field(None, description="出生信息")
    record: Dict[str, Any] = Field(..., description="双格式记录")
    cached_at: float = Field(..., description="写入时间（epoch 秒）")
    expires_at: float = Field(..., description="过期时间（epoch 秒）")
    schema_version: str = Field(CURRENT_SCHEMA_VERSION, description="记录结构版本")

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode('utf-8')

    @classmethod
    def from_bytes(cls, raw: bytes) -> 'CacheEntry':
        return cls.model_validate_json(raw)


@dataclass
class RepairFix:
    """单个字段的修复建议"""
    field: str
    target: str          # 'numeric' 或 'chinese'
    from_value: Any
    to_value: Any
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'field': self.field,
            'target': self.target,
            'from': self.from_value,
            'to': self.to_value,
            'reason': self.reason,
        }


@dataclass
class ValidationResult:
    """校验结果"""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    fixes: List[RepairFix] = field(default_factory=list)
    checksum: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """写入记录 validation 块的结构"""
        return {
            'isValid': self.is_valid,
            'errors': list(self.errors),
            'warnings': list(self.warnings),
            'checksum': self.checksum,
        }


@dataclass
class MigrationLog:
    """单次迁移日志（仅内存保留）"""
    detected_version: str
    steps: List[str] = field(default_factory=list)
    success: bool = False
    duration_ms: float = 0.0
    needs_repair: bool = False
    error: Optional[str] = None


@dataclass
class MigrationResult:
    """迁移结果"""
    record: Dict[str, Any]
    log: MigrationLog
