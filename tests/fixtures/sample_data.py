#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
测试数据

提供标准化的出生信息与四柱结果，用于单元测试
"""

from typing import Any, Dict, List

# ==================== 出生信息 ====================

# 1990-01-01 12:30 北京（116.40°E）：己巳 丙子 丙寅 甲午，午时
SAMPLE_BIRTH_INFO: Dict[str, Any] = {'date': '1990-01-01', 'time': '12:30', 'longitude': 116.40}
SAMPLE_NUMERIC: Dict[str, int] = {'year': 5, 'month': 12, 'day': 2, 'hour': 30, 'shichen': 6}
SAMPLE_CHINESE: Dict[str, str] = {'year': '己巳', 'month': '丙子', 'day': '丙寅', 'hour': '甲午', 'shichen': '午时'}

# 无效出生日期
INVALID_DATES: List[str] = [
    "invalid",
    "2025-13-01",  # 月份无效
    "2025-02-30",  # 日期无效
]

# 超出支持范围
UNSUPPORTED_DATES: List[str] = [
    "1899-12-31",
    "2101-01-01",
]
