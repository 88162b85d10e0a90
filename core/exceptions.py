#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
八字引擎异常定义

计算阶段的异常（InputError / CalculationError）不会写入缓存；
缓存与迁移阶段的异常以降级、打标记的方式处理，不删除数据。
"""


class BaziEngineError(Exception):
    """
    八字引擎异常基类

    Attributes:
        message: 错误描述
        error_type: 错误类型标识
    """
    def __init__(self, message: str, error_type: str = "engine_error"):
        self.message = message
        self.error_type = error_type
        super().__init__(message)


class InputError(BaziEngineError):
    """出生信息缺失或格式错误（对应状态 MISSING）"""
    def __init__(self, message: str, field: str = None):
        self.field = field
        error_type = f"input_error:{field}" if field else "input_error"
        super().__init__(message, error_type=error_type)


class CalculationError(BaziEngineError):
    """四柱推算失败，如日期超出支持范围（对应状态 ERROR）"""
    def __init__(self, message: str):
        super().__init__(message, error_type="calculation_error")


class ConsistencyError(BaziEngineError):
    """数字与中文两种编码无法修复为一致"""
    def __init__(self, message: str, errors: list = None):
        self.errors = list(errors or [])
        super().__init__(message, error_type="consistency_error")


class MigrationError(BaziEngineError):
    """无法识别的数据结构，迁移无法进行"""
    def __init__(self, message: str, version: str = None):
        self.version = version
        super().__init__(message, error_type="migration_error")
