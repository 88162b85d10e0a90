#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
四柱推算器

根据出生日期、钟表时间和经度推算年、月、日、时四柱：
- 年柱以立春（2 月 4 日）为界
- 月柱按每月固定节气日划分月支，五虎遁定月干
- 日柱以 1900-01-01 甲戌为锚点线性推算
- 时柱基于真太阳时，五鼠遁定时干

说明：节气日采用固定日期近似，在节气交接当天前后可能与精确天文算法相差一日。
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional

from core.data.constants import (
    MONTH_STEM_ORIGIN,
    HOUR_STEM_ORIGIN,
    JIE_DAY,
    MONTH_BRANCH_SLOTS,
    DAY_ANCHOR_INDEX,
    JIAZI_COUNT,
    SHICHEN_TABLE,
    DEFAULT_STANDARD_MERIDIAN,
)
from core.exceptions import CalculationError
from core.calculators.bazi_logging import logger
from core.calculators.calendar_math import (
    parse_birth_date,
    parse_birth_time,
    validate_longitude,
    to_true_solar_minutes,
    is_on_or_after_spring_boundary,
    ensure_supported_date,
    days_since_anchor,
)
from core.calculators.ganzhi_codec import Pillar


def year_pillar(year: int, month: int, day: int) -> Pillar:
    """年柱：立春前归上一年"""
    effective_year = year if is_on_or_after_spring_boundary(year, month, day) else year - 1
    return Pillar.from_stem_branch((effective_year - 4) % 10, (effective_year - 4) % 12)


def month_branch(month: int, day: int) -> int:
    """月支：按当月节气日判断取节前或节后月支"""
    slot = 2 * (month - 1) + (1 if day >= JIE_DAY[month] else 0)
    return MONTH_BRANCH_SLOTS[slot]


def month_pillar(year: int, month: int, day: int) -> Pillar:
    """月柱：月干自寅月起按五虎遁推算"""
    branch = month_branch(month, day)
    year_stem = year_pillar(year, month, day).stem
    stem = (MONTH_STEM_ORIGIN[year_stem] + (branch - 2) % 12) % 10
    return Pillar.from_stem_branch(stem, branch)


def day_pillar(year: int, month: int, day: int) -> Pillar:
    """日柱：(锚点索引 + 距锚点天数) mod 60"""
    target = ensure_supported_date(date(year, month, day))
    return Pillar((DAY_ANCHOR_INDEX + days_since_anchor(target)) % JIAZI_COUNT)


def shichen_of(true_solar_minutes: float) -> int:
    """时辰索引：子时跨 23:00-01:00，边界分钟归后一时辰"""
    return int((true_solar_minutes + 60) // 120) % 12


def hour_pillar(true_solar_minutes: float, day_stem: int) -> Pillar:
    """时柱：时支由真太阳时决定，时干按五鼠遁推算"""
    branch = shichen_of(true_solar_minutes)
    stem = (HOUR_STEM_ORIGIN[day_stem] + branch) % 10
    return Pillar.from_stem_branch(stem, branch)


@dataclass(frozen=True)
class FourPillarRecord:
    """四柱结果（不可变）"""
    year: Pillar
    month: Pillar
    day: Pillar
    hour: Pillar
    shichen: int
    true_solar_minutes: float = 0.0

    @property
    def shichen_label(self) -> str:
        return SHICHEN_TABLE[self.shichen]

    def pillars(self) -> Dict[str, Pillar]:
        return {'year': self.year, 'month': self.month, 'day': self.day, 'hour': self.hour}

    def to_numeric(self) -> Dict[str, int]:
        return {
            'year': self.year.index,
            'month': self.month.index,
            'day': self.day.index,
            'hour': self.hour.index,
            'shichen': self.shichen,
        }

    def to_chinese(self) -> Dict[str, str]:
        return {
            'year': self.year.label,
            'month': self.month.label,
            'day': self.day.label,
            'hour': self.hour.label,
            'shichen': self.shichen_label,
        }

    def __str__(self):
        return f"{self.year} {self.month} {self.day} {self.hour}"


class FourPillarCalculator:
    """
    四柱计算器

    纯函数式计算，无状态，可在任意线程/协程中复用。
    """

    def __init__(self, standard_meridian: float = DEFAULT_STANDARD_MERIDIAN):
        self.standard_meridian = standard_meridian

    def calculate(self,
                  birth_date: str,
                  birth_time: str,
                  longitude: float,
                  standard_meridian: Optional[float] = None) -> FourPillarRecord:
        """
        推算四柱

        Args:
            birth_date: 出生日期 "YYYY-MM-DD"
            birth_time: 出生时间 "HH:MM"（24 小时制钟表时间）
            longitude: 出生地经度
            standard_meridian: 时区标准子午线，默认使用实例配置

        Returns:
            FourPillarRecord

        Raises:
            InputError: 输入缺失或格式错误
            CalculationError: 日期超出支持范围
        """
        target = parse_birth_date(birth_date)
        hour, minute = parse_birth_time(birth_time)
        longitude = validate_longitude(longitude)
        ensure_supported_date(target)

        meridian = self.standard_meridian if standard_meridian is None else standard_meridian
        solar_minutes = to_true_solar_minutes(target, hour, minute, longitude, meridian)

        try:
            year = year_pillar(target.year, target.month, target.day)
            month = month_pillar(target.year, target.month, target.day)
            day = day_pillar(target.year, target.month, target.day)
            hour_p = hour_pillar(solar_minutes, day.stem)
        except ValueError as e:
            raise CalculationError(f"四柱推算失败: {e}") from e

        record = FourPillarRecord(
            year=year,
            month=month,
            day=day,
            hour=hour_p,
            shichen=hour_p.branch,
            true_solar_minutes=solar_minutes,
        )
        logger.debug("四柱推算完成: %s %s lng=%.2f -> %s (真太阳时 %.1f 分)",
                     birth_date, birth_time, longitude, record, solar_minutes)
        return record

    def calculate_from_info(self, birth_info: Dict[str, Any]) -> FourPillarRecord:
        """从出生信息字典推算（键：date / time / longitude）"""
        return self.calculate(
            birth_info.get('date'),
            birth_info.get('time'),
            birth_info.get('longitude'),
        )
