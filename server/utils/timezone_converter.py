#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
时区转换工具
根据时区求标准子午线（去除夏令时）
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

import pytz

from core.data.constants import DEFAULT_STANDARD_MERIDIAN
from core.calculators.calendar_math import parse_birth_date
from core.exceptions import InputError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Asia/Shanghai"


def get_standard_meridian(timezone_str: str = DEFAULT_TIMEZONE, on_date: Optional[date] = None) -> float:
    """
    获取时区标准子午线（度）

    标准子午线 = (UTC 偏移 - 夏令时偏移) 小时 * 15，
    夏令时只影响钟表，不改变标准子午线。

    Args:
        timezone_str: 时区字符串（如 "Asia/Shanghai"）
        on_date: 参考日期（历史时区规则可能不同），默认当天

    Returns:
        标准子午线经度，东为正

    Raises:
        InputError: 时区无法识别
    """
    try:
        tz = pytz.timezone(timezone_str)
    except pytz.UnknownTimeZoneError as e:
        raise InputError(f"无法识别的时区: {timezone_str}", field="timezone") from e

    on_date = on_date or date.today()
    local_dt = tz.localize(datetime(on_date.year, on_date.month, on_date.day, 12, 0))
    standard_offset = local_dt.utcoffset() - (local_dt.dst() or timedelta(0))
    meridian = standard_offset.total_seconds() / 3600.0 * 15.0
    logger.debug(f"时区标准子午线: {timezone_str} {on_date} -> {meridian}")
    return meridian


def standard_meridian_for_birth(birth_date: str, timezone_str: str = DEFAULT_TIMEZONE) -> float:
    """
    出生日期所在时区的标准子午线

    北京时间固定使用 120°E，不受 pytz 早期地方平时（LMT）规则影响。

    Raises:
        InputError: 日期格式错误或时区无法识别
    """
    if timezone_str == DEFAULT_TIMEZONE:
        return DEFAULT_STANDARD_MERIDIAN
    return get_standard_meridian(timezone_str, parse_birth_date(birth_date))
