#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
频道名称标准化与模糊匹配
  normalize_channel_name  名称 → 比较用的标准键
  calculate_similarity    两个标准键的相似度（0-100）
  match_channel           精确匹配 → 模糊匹配，低于阈值返回None
  channel_suggestions     单个数据源内的候选频道名
"""
import re
from collections import namedtuple
from functools import lru_cache

from rapidfuzz.distance import Levenshtein

from epg_config import EPG_CONFIG, COMMON_ALIASES, NAME_SUFFIXES

ChannelRecord = namedtuple("ChannelRecord", ["id", "name", "icon"])

# ===================== 名称标准化 =====================
# CCTV数字频道：命中后整个名称替换为 cctv<N>
_CCTV_PATTERN = re.compile(r'cctv[-\s_]*([0-9]+)')
# 中文/拆分写法的CCTV变体：只替换命中部分，取第一个命中的规则
_CCTV_VARIANT_PATTERNS = (
    re.compile(r'央视[-\s_]*([0-9]+)'),
    re.compile(r'中央[-\s_]*([0-9]+)'),
    re.compile(r'cc[-\s_]*tv[-\s_]*([0-9]+)'),
)
_CCTV_NUMBER_PATTERN = re.compile(r'cctv([0-9]+)')
_CCTV_ONLY_PATTERN = re.compile(r'^cctv([0-9]+)$')
_PUNCTUATION_PATTERN = re.compile(r'[()（）【】\[\].\-_+=|]')
_SUFFIX_PATTERNS = tuple(re.compile(re.escape(suffix) + '$') for suffix in NAME_SUFFIXES)


def _normalize_once(name):
    name = name.strip().lower()
    name = re.sub(r'\s+', '', name)

    # 1. CCTV数字频道（保留完整数字，不补零）
    match = _CCTV_PATTERN.search(name)
    if match:
        name = 'cctv' + match.group(1)
    else:
        # 2. 中文CCTV变体
        for pattern in _CCTV_VARIANT_PATTERNS:
            if pattern.search(name):
                name = pattern.sub(r'cctv\1', name)
                break

    # 3. 卫视系列
    name = name.replace('电视台', '卫视')
    name = re.sub(r'台$', '', name)

    # 4. 高清标识
    name = re.sub(r'高清$', '', name)
    name = re.sub(r'hd$', '', name)
    name = name.replace('(hd)', '')

    # 5. 常见后缀
    for pattern in _SUFFIX_PATTERNS:
        name = pattern.sub('', name)

    # 6. 特殊字符
    return _PUNCTUATION_PATTERN.sub('', name)


@lru_cache(maxsize=65536)
def normalize_channel_name(name):
    """标准化频道名称

    重复执行整套规则直到结果不再变化，保证 normalize(normalize(x)) == normalize(x)，
    例如 "湖南台高清" 第一轮只能去掉"高清"，第二轮才会去掉末尾的"台"。
    """
    name = str(name or "")
    # 每轮要么缩短名称，要么把CCTV变体统一为cctv<N>（下一轮即稳定），循环必然结束
    while True:
        normalized = _normalize_once(name)
        if normalized == name:
            return name
        name = normalized


# ===================== 相似度计算 =====================
def _similar_text(first, second):
    """贪心最长公共子串递归，返回公共字符数"""
    if not first or not second:
        return 0

    max_len = 0
    pos1 = pos2 = 0
    for i in range(len(first)):
        for j in range(len(second)):
            k = 0
            while i + k < len(first) and j + k < len(second) and first[i + k] == second[j + k]:
                k += 1
            if k > max_len:
                max_len, pos1, pos2 = k, i, j

    if max_len == 0:
        return 0
    return (max_len
            + _similar_text(first[:pos1], second[:pos2])
            + _similar_text(first[pos1 + max_len:], second[pos2 + max_len:]))


def similar_text_percent(first, second):
    total = len(first) + len(second)
    if total == 0:
        return 0.0
    return _similar_text(first, second) * 2 * 100.0 / total


def levenshtein_percent(first, second):
    max_len = max(len(first), len(second))
    if max_len == 0:
        return 0.0
    return (1 - Levenshtein.distance(first, second) / max_len) * 100


def _clamp_score(score):
    return max(0, min(100, int(round(score))))


def calculate_similarity(str1, str2):
    """计算两个标准化名称的相似度，返回0-100的整数"""
    if str1 == str2:
        return 100

    # CCTV数字频道特殊处理：cctv1 与 cctv11 是完全不同的频道
    matches1 = _CCTV_ONLY_PATTERN.match(str1)
    matches2 = _CCTV_ONLY_PATTERN.match(str2)
    if matches1 and matches2:
        return 100 if matches1.group(1) == matches2.group(1) else 30

    return _clamp_score(max(similar_text_percent(str1, str2), levenshtein_percent(str1, str2)))


# ===================== 频道匹配 =====================
def is_exact_number_match(query, channel_name):
    """两个标准化名称是否包含相同的CCTV数字"""
    query_match = _CCTV_NUMBER_PATTERN.search(query)
    channel_match = _CCTV_NUMBER_PATTERN.search(channel_name)
    if query_match and channel_match:
        return query_match.group(1) == channel_match.group(1)
    return False


def is_common_match(query, channel_name):
    """频道名包含别名表中的标准名，且查询词包含该频道的某个常用叫法"""
    for key, variants in COMMON_ALIASES:
        normalized_key = normalize_channel_name(key)
        if normalized_key not in channel_name:
            continue
        for variant in variants:
            normalized_variant = normalize_channel_name(variant)
            if normalized_variant and normalized_variant in query:
                return True
    return False


def exact_match_channel(query, channels):
    """原始名称完全一致（不做标准化）"""
    query = query.strip()
    for channel in channels:
        if query == channel.name:
            return channel
    return None


def fuzzy_match_channel(query, channels, threshold=None):
    """模糊匹配频道，返回 (channel, score)，低于阈值返回None"""
    if threshold is None:
        threshold = EPG_CONFIG['MATCH_THRESHOLD']
    query = normalize_channel_name(query)

    best_match = None
    best_score = 0
    for channel in channels:
        channel_name = normalize_channel_name(channel.name)
        score = calculate_similarity(query, channel_name)

        if is_exact_number_match(query, channel_name):
            score = 100
        elif is_common_match(query, channel_name):
            score += 15

        # 包含关系（双向）
        if query and channel_name and (query in channel_name or channel_name in query):
            score = max(score, 85)

        if query == channel_name:
            score = 100

        score = min(score, 100)
        # 分数相同保留先出现的频道
        if score > best_score:
            best_score = score
            best_match = channel

    if best_match is None or best_score < threshold:
        return None
    return best_match, best_score


def match_channel(query, channels, threshold=None):
    """先精确匹配原始名称，再做模糊匹配"""
    exact = exact_match_channel(query, channels)
    if exact is not None:
        return exact, 100
    return fuzzy_match_channel(query, channels, threshold)


def channel_suggestions(query, channels, threshold=None, limit=None):
    """获取单个数据源中的相似频道名，按分数降序（同分保持原顺序）"""
    if threshold is None:
        threshold = EPG_CONFIG['SUGGESTION_THRESHOLD']
    if limit is None:
        limit = EPG_CONFIG['SOURCE_SUGGESTION_LIMIT']

    query = normalize_channel_name(query)
    query_match = _CCTV_NUMBER_PATTERN.search(query)
    query_number = query_match.group(1) if query_match else None

    scored = []
    for channel in channels:
        normalized = normalize_channel_name(channel.name)
        channel_match = _CCTV_NUMBER_PATTERN.search(normalized) if query_number else None
        if channel_match:
            score = 100 if channel_match.group(1) == query_number else 30
        else:
            score = calculate_similarity(query, normalized)

        if score > threshold:
            scored.append((score, channel.name))

    scored.sort(key=lambda item: item[0], reverse=True)
    return [name for _, name in scored[:limit]]
