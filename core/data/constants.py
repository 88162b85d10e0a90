#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
八字基础常量表

天干、地支、六十甲子、十二时辰及四柱推算所需的固定参数。
所有表均为不可变元组，模块加载后不再修改。
"""

from types import MappingProxyType

# 天干 0..9
STEMS = ('甲', '乙', '丙', '丁', '戊', '己', '庚', '辛', '壬', '癸')

# 地支 0..11
BRANCHES = ('子', '丑', '寅', '卯', '辰', '巳', '午', '未', '申', '酉', '戌', '亥')

# 六十甲子：索引 i 对应 STEMS[i % 10] + BRANCHES[i % 12]
JIAZI_TABLE = tuple(STEMS[i % 10] + BRANCHES[i % 12] for i in range(60))

# 十二时辰，与地支索引对齐
SHICHEN_TABLE = tuple(branch + '时' for branch in BRANCHES)

JIAZI_COUNT = 60
SHICHEN_COUNT = 12

# 五虎遁：年干 -> 寅月天干
MONTH_STEM_ORIGIN = (2, 4, 6, 8, 0, 2, 4, 6, 8, 0)

# 五鼠遁：日干 -> 子时天干
HOUR_STEM_ORIGIN = (0, 2, 4, 6, 8, 0, 2, 4, 6, 8)

# 每月节气交接日（近似固定日期），节前沿用上一个月支
JIE_DAY = MappingProxyType({
    1: 6, 2: 4, 3: 6, 4: 5, 5: 6, 6: 6,
    7: 7, 8: 8, 9: 8, 10: 8, 11: 7, 12: 7,
})

# 月支槽位表：下标 2*(month-1) + (day >= JIE_DAY[month])
MONTH_BRANCH_SLOTS = (
    0, 1,    # 1月：小寒前子，小寒后丑
    1, 2,    # 2月：立春后寅
    2, 3,
    3, 4,
    4, 5,
    5, 6,
    6, 7,
    7, 8,
    8, 9,
    9, 10,
    10, 11,
    11, 0,   # 12月：大雪后子
)

# 立春（年柱交接）固定为 2 月 4 日
LICHUN_MONTH = 2
LICHUN_DAY = 4

# 日柱锚点：1900-01-01 为甲戌日
DAY_ANCHOR = (1900, 1, 1)
DAY_ANCHOR_INDEX = 10

# 支持的日期范围
MIN_SUPPORTED_DATE = (1900, 1, 1)
MAX_SUPPORTED_DATE = (2100, 12, 31)

# 默认出生信息
DEFAULT_BIRTH_TIME = '12:30'
DEFAULT_LONGITUDE = 116.40
DEFAULT_STANDARD_MERIDIAN = 120.0

# 双格式记录结构版本
CURRENT_SCHEMA_VERSION = '2.0.0'
SUPPORTED_SCHEMA_VERSIONS = ('1.0.0', '1.1.0', '2.0.0')

PILLAR_FIELDS = ('year', 'month', 'day', 'hour')
RECORD_FIELDS = PILLAR_FIELDS + ('shichen',)
