#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
八字计算服务

对调用方提供"查缓存 -> 计算 -> 写缓存"的统一入口，结果带状态：
- READY：计算或缓存命中成功
- MISSING：出生信息缺失或格式错误
- ERROR：推算失败或缓存记录无法修复

计算失败的结果不会写入缓存。
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from core.calculators.pillar_calculator import FourPillarCalculator
from core.exceptions import BaziEngineError, CalculationError, ConsistencyError, InputError
from server.config.app_config import CalculatorConfig
from server.models.bazi_record import BirthInfo
from server.services.bazi_data_cache import BaziDataCache
from server.services.bazi_dual_format_service import RecordFormat, create_dual_format_record, format_record
from server.utils.timezone_converter import standard_meridian_for_birth

logger = logging.getLogger(__name__)


class BaziStatus(str, Enum):
    """八字数据状态"""
    READY = "ready"
    MISSING = "missing"
    ERROR = "error"


@dataclass
class BaziResult:
    """计算结果"""
    status: BaziStatus
    record: Optional[Dict[str, Any]] = None
    from_cache: bool = False
    error_type: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_ok(self) -> bool:
        return self.status is BaziStatus.READY

    def get_display_info(self) -> Dict[str, Any]:
        """展示用摘要：四柱文字与时辰"""
        if not self.is_ok or not self.record:
            return {'status': self.status.value, 'message': self.error}
        chinese = self.record.get('chinese') or {}
        return {
            'status': self.status.value,
            'pillars': ' '.join(chinese.get(f) or '?' for f in ('year', 'month', 'day', 'hour')),
            'shichen': chinese.get('shichen'),
        }


class BaziService:
    """八字计算服务（缓存实例由调用方注入）"""

    def __init__(self,
                 cache: Optional[BaziDataCache] = None,
                 config: Optional[CalculatorConfig] = None,
                 calculator: Optional[FourPillarCalculator] = None):
        self.cache = cache
        self.config = config or CalculatorConfig()
        self.calculator = calculator or FourPillarCalculator()

    def normalize_birth_info(self, birth_info: Union[BirthInfo, Dict[str, Any]]) -> BirthInfo:
        """
        补全默认值（时间 12:30，经度 116.40）

        Raises:
            InputError: 出生信息缺失或格式错误
        """
        if birth_info is None:
            raise InputError("出生信息缺失", field="birth_info")
        if isinstance(birth_info, BirthInfo):
            data = birth_info.model_dump()
        else:
            data = dict(birth_info)
        if not data.get('date'):
            raise InputError("出生日期缺失", field="birth_date")
        if not data.get('time'):
            data['time'] = self.config.default_birth_time
        if data.get('longitude') is None:
            data['longitude'] = self.config.default_longitude
        try:
            return BirthInfo.model_validate(data)
        except ValidationError as e:
            fields = ','.join(str(err['loc'][0]) for err in e.errors() if err.get('loc'))
            raise InputError(f"出生信息格式错误: {fields}", field=fields or None) from e

    def calculate_record(self,
                         birth_info: Union[BirthInfo, Dict[str, Any]],
                         nickname: Optional[str] = None) -> Dict[str, Any]:
        """
        计算双格式记录（不访问缓存）

        Raises:
            InputError / CalculationError
        """
        info = self.normalize_birth_info(birth_info)
        four_pillars = self.calculator.calculate(
            info.date, info.time, info.longitude,
            standard_meridian=standard_meridian_for_birth(info.date, self.config.timezone),
        )
        validator = self.cache.validator if self.cache is not None else None
        return create_dual_format_record(
            four_pillars,
            birth_info=info.to_record_dict(),
            nickname=nickname,
            validator=validator,
        )

    async def get_or_calculate(self,
                               birth_info: Union[BirthInfo, Dict[str, Any]],
                               nickname: Optional[str] = None,
                               force_refresh: bool = False,
                               fmt: RecordFormat = RecordFormat.DUAL) -> BaziResult:
        """
        获取八字记录：优先缓存，未命中时计算并写入缓存

        Args:
            birth_info: 出生信息
            nickname: 昵称
            force_refresh: 忽略缓存重新计算
            fmt: 输出格式

        Returns:
            BaziResult
        """
        try:
            info = self.normalize_birth_info(birth_info)
            if self.cache is not None and not force_refresh:
                cached = await self.cache.get(info, fmt)
                if cached is not None:
                    return BaziResult(BaziStatus.READY, cached, from_cache=True)

            record = self.calculate_record(info, nickname=nickname)
            if self.cache is not None:
                await self.cache.put(info, record, nickname=nickname)
            return BaziResult(BaziStatus.READY, format_record(record, fmt))
        except InputError as e:
            logger.info(f"八字出生信息不完整: {e.message}")
            return BaziResult(BaziStatus.MISSING, error_type=e.error_type, error=e.message)
        except (CalculationError, ConsistencyError) as e:
            logger.warning(f"八字计算失败: {e.message}")
            return BaziResult(BaziStatus.ERROR, error_type=e.error_type, error=e.message)
        except BaziEngineError as e:
            logger.error(f"八字服务异常: {e.message}")
            return BaziResult(BaziStatus.ERROR, error_type=e.error_type, error=e.message)
