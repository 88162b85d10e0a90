#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
历法计算工具

提供儒略日、均时差、真太阳时换算以及立春/日期范围判断。
均时差采用低精度太阳位置公式（平黄经、平近点角、黄赤交角、赤经），
精度约 ±0.5 分钟，满足时辰划分需要。
"""

import math
from datetime import date
from typing import Tuple, Union

from core.data.constants import (
    LICHUN_MONTH,
    LICHUN_DAY,
    DAY_ANCHOR,
    MIN_SUPPORTED_DATE,
    MAX_SUPPORTED_DATE,
    DEFAULT_STANDARD_MERIDIAN,
)
from core.exceptions import InputError, CalculationError

MINUTES_PER_DAY = 1440

# date.toordinal() 与儒略日的差值（0001-01-01 为序数 1）
_ORDINAL_TO_JD = 1721424.5
_J2000 = 2451545.0


def parse_birth_date(date_str: str) -> date:
    """
    解析出生日期字符串

    Args:
        date_str: "YYYY-MM-DD"

    Returns:
        date 对象

    Raises:
        InputError: 日期缺失或格式错误
    """
    if not date_str:
        raise InputError("出生日期缺失", field="birth_date")
    try:
        year, month, day = (int(part) for part in str(date_str).strip().split('-'))
        return date(year, month, day)
    except ValueError as e:
        raise InputError(f"出生日期格式错误: {date_str}", field="birth_date") from e


def parse_birth_time(time_str: str) -> Tuple[int, int]:
    """
    解析出生时间字符串（24 小时制 "HH:MM"）

    Returns:
        (hour, minute)

    Raises:
        InputError: 时间缺失或越界
    """
    if not time_str:
        raise InputError("出生时间缺失", field="birth_time")
    try:
        hour_str, minute_str = str(time_str).strip().split(':')[:2]
        hour, minute = int(hour_str), int(minute_str)
    except ValueError as e:
        raise InputError(f"出生时间格式错误: {time_str}", field="birth_time") from e
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise InputError(f"出生时间越界: {time_str}", field="birth_time")
    return hour, minute


def validate_longitude(longitude: Union[int, float]) -> float:
    """校验经度范围 [-180, 180]"""
    try:
        value = float(longitude)
    except (TypeError, ValueError) as e:
        raise InputError(f"经度格式错误: {longitude}", field="longitude") from e
    if math.isnan(value) or not -180.0 <= value <= 180.0:
        raise InputError(f"经度越界: {longitude}", field="longitude")
    return value


def julian_day(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> float:
    """
    计算儒略日（前推格里历）

    Args:
        year, month, day: 公历日期
        hour, minute: 当日时刻（与调用方时间基准一致）

    Returns:
        儒略日
    """
    ordinal = date(year, month, day).toordinal()
    return ordinal + _ORDINAL_TO_JD + (hour * 60 + minute) / MINUTES_PER_DAY


def equation_of_time_minutes(jd: float) -> float:
    """
    均时差（视太阳时 - 平太阳时），单位分钟

    11 月初约 +16 分钟，2 月中旬约 -14 分钟。
    """
    n = jd - _J2000
    mean_longitude = (280.460 + 0.9856474 * n) % 360.0
    mean_anomaly = math.radians((357.528 + 0.9856003 * n) % 360.0)
    ecliptic_longitude = math.radians(
        mean_longitude
        + 1.915 * math.sin(mean_anomaly)
        + 0.020 * math.sin(2 * mean_anomaly)
    )
    obliquity = math.radians(23.439 - 0.0000004 * n)
    right_ascension = math.degrees(math.atan2(
        math.cos(obliquity) * math.sin(ecliptic_longitude),
        math.cos(ecliptic_longitude),
    ))

    diff = mean_longitude - 0.0057183 - right_ascension
    # 归一化到 [-180, 180)
    diff = (diff + 180.0) % 360.0 - 180.0
    return diff * 4.0


def to_true_solar_minutes(birth_date: date,
                          clock_hour: int,
                          clock_minute: int,
                          longitude: float,
                          standard_meridian: float = DEFAULT_STANDARD_MERIDIAN) -> float:
    """
    钟表时间换算为真太阳时（当日分钟数）

    真太阳时 = 钟表时间 + 均时差 + (经度 - 标准子午线) * 4

    Args:
        birth_date: 出生日期
        clock_hour: 钟表小时
        clock_minute: 钟表分钟
        longitude: 出生地经度（东经为正）
        standard_meridian: 所在时区标准子午线，北京时间为 120

    Returns:
        [0, 1440) 范围内的分钟数，跨日时按当日回绕
    """
    if not (0 <= clock_hour <= 23 and 0 <= clock_minute <= 59):
        raise InputError(f"出生时间越界: {clock_hour}:{clock_minute}", field="birth_time")
    longitude = validate_longitude(longitude)

    clock_minutes = clock_hour * 60 + clock_minute
    # 时区偏移换算为世界时后再求均时差
    jd_ut = julian_day(birth_date.year, birth_date.month, birth_date.day,
                       clock_hour, clock_minute) - standard_meridian / 15.0 / 24.0
    eot = equation_of_time_minutes(jd_ut)
    longitude_correction = (longitude - standard_meridian) * 4.0

    return (clock_minutes + eot + longitude_correction) % MINUTES_PER_DAY


def is_on_or_after_spring_boundary(year: int, month: int, day: int) -> bool:
    """是否已过立春（固定 2 月 4 日），用于年柱交接"""
    return (month, day) >= (LICHUN_MONTH, LICHUN_DAY)


def ensure_supported_date(target: date) -> date:
    """
    校验日期在支持范围内

    Raises:
        CalculationError: 早于 1900-01-01 或晚于 2100-12-31
    """
    if not date(*MIN_SUPPORTED_DATE) <= target <= date(*MAX_SUPPORTED_DATE):
        raise CalculationError(f"日期超出支持范围: {target.isoformat()}")
    return target


def days_between(anchor: date, target: date) -> int:
    """两日期相差天数（target - anchor）"""
    return target.toordinal() - anchor.toordinal()


def days_since_anchor(target: date) -> int:
    """距日柱锚点（1900-01-01）的天数"""
    return days_between(date(*DAY_ANCHOR), target)
