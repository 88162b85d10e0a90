# -*- coding: utf-8 -*-
"""
八字基础数据模块
"""
