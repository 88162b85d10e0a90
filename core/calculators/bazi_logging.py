#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
四柱计算模块共享日志

calendar_math / ganzhi_codec / pillar_calculator 共用同一个 logger，
输出流被关闭（Broken pipe）时静默丢弃日志，不影响计算。
"""

import logging


class SafeStreamHandler(logging.StreamHandler):
    """捕获 Broken pipe 的 StreamHandler"""
    def emit(self, record):
        try:
            super().emit(record)
        except (BrokenPipeError, OSError):
            pass


logger = logging.getLogger("core.calculators")
if not logger.handlers:
    handler = SafeStreamHandler()
    handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
