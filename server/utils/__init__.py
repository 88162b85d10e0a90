# -*- coding: utf-8 -*-
"""
服务器工具模块
"""

from .cache_key_generator import CacheKeyGenerator
from .durable_store import DurableStore, MemoryDurableStore, RedisDurableStore, create_durable_store

__all__ = ['CacheKeyGenerator', 'DurableStore', 'MemoryDurableStore', 'RedisDurableStore',
           'create_durable_store']
