#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
干支双格式编解码

六十甲子索引 <-> 干支文字，时辰索引 <-> 时辰文字。
编码方向越界返回 None，解码方向未知文字返回 NOT_FOUND，均不抛异常。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from core.data.constants import (
    STEMS,
    BRANCHES,
    JIAZI_TABLE,
    SHICHEN_TABLE,
    JIAZI_COUNT,
)

NOT_FOUND = -1

_JIAZI_INDEX = {label: i for i, label in enumerate(JIAZI_TABLE)}
_SHICHEN_INDEX = {label: i for i, label in enumerate(SHICHEN_TABLE)}


class CodecKind(Enum):
    """编码种类"""
    PILLAR = "pillar"
    SHICHEN = "shichen"


def _table_for(kind: CodecKind):
    if kind is CodecKind.PILLAR:
        return JIAZI_TABLE, _JIAZI_INDEX
    if kind is CodecKind.SHICHEN:
        return SHICHEN_TABLE, _SHICHEN_INDEX
    raise ValueError(f"未知编码种类: {kind!r}")


def numeric_to_label(kind: CodecKind, index) -> Optional[str]:
    """
    数字索引 -> 中文文字

    Args:
        kind: 编码种类
        index: 干支索引 [0, 60) 或时辰索引 [0, 12)

    Returns:
        中文文字；索引非法时返回 None
    """
    table, _ = _table_for(kind)
    if isinstance(index, bool) or not isinstance(index, int):
        return None
    if 0 <= index < len(table):
        return table[index]
    return None


def label_to_numeric(kind: CodecKind, label) -> int:
    """
    中文文字 -> 数字索引

    Returns:
        索引；文字未知时返回 NOT_FOUND
    """
    _, index_map = _table_for(kind)
    if not isinstance(label, str):
        return NOT_FOUND
    return index_map.get(label, NOT_FOUND)


def is_valid_index(kind: CodecKind, index) -> bool:
    return numeric_to_label(kind, index) is not None


def is_valid_ganzhi(label) -> bool:
    """是否为合法的六十甲子文字（天干 + 同阴阳地支）"""
    return label_to_numeric(CodecKind.PILLAR, label) != NOT_FOUND


def is_valid_shichen(label) -> bool:
    return label_to_numeric(CodecKind.SHICHEN, label) != NOT_FOUND


def index_from_stem_branch(stem: int, branch: int) -> int:
    """
    天干、地支索引合成六十甲子索引

    Raises:
        ValueError: 越界或阴阳不匹配（如 甲丑）
    """
    if not (0 <= stem < 10 and 0 <= branch < 12):
        raise ValueError(f"天干/地支索引越界: stem={stem}, branch={branch}")
    if stem % 2 != branch % 2:
        raise ValueError(f"天干地支阴阳不匹配: {STEMS[stem]}{BRANCHES[branch]}")
    return (6 * stem - 5 * branch) % JIAZI_COUNT


def stem_branch_of(index: int) -> Tuple[int, int]:
    """六十甲子索引拆分为 (天干索引, 地支索引)"""
    return index % 10, index % 12


def split_ganzhi(label: str) -> Tuple[Optional[str], Optional[str]]:
    """拆分干支文字为 (天干, 地支)，长度不符返回 (None, None)"""
    if not isinstance(label, str) or len(label) != 2:
        return None, None
    return label[0], label[1]


@dataclass(frozen=True)
class Pillar:
    """单柱：索引与文字同源于甲子表"""
    index: int

    def __post_init__(self):
        if not is_valid_index(CodecKind.PILLAR, self.index):
            raise ValueError(f"干支索引越界: {self.index}")

    @property
    def label(self) -> str:
        return JIAZI_TABLE[self.index]

    @property
    def stem(self) -> int:
        return self.index % 10

    @property
    def branch(self) -> int:
        return self.index % 12

    @property
    def stem_label(self) -> str:
        return STEMS[self.stem]

    @property
    def branch_label(self) -> str:
        return BRANCHES[self.branch]

    @classmethod
    def from_stem_branch(cls, stem: int, branch: int) -> 'Pillar':
        return cls(index_from_stem_branch(stem, branch))

    @classmethod
    def from_label(cls, label: str) -> 'Pillar':
        index = label_to_numeric(CodecKind.PILLAR, label)
        if index == NOT_FOUND:
            raise ValueError(f"非法干支: {label}")
        return cls(index)

    def __str__(self):
        return self.label
