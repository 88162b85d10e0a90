#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
八字数据模型 - 统一的数据结构定义
"""

from server.models.bazi_record import (
    BirthInfo,
    CacheEntry,
    RepairFix,
    ValidationResult,
    MigrationLog,
    MigrationResult,
)

__all__ = [
    'BirthInfo',
    'CacheEntry',
    'RepairFix',
    'ValidationResult',
    'MigrationLog',
    'MigrationResult',
]
