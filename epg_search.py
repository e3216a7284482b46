#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
多数据源EPG查找
  指定数据源：只查该数据源
  自动模式：按优先级依次查找，第一个找到当天节目的数据源即返回，
           失败次数达到 max_retry 后停止
  全部失败：汇总所有可用数据源的频道建议
每次请求的尝试记录保存在 SearchContext 中，随结果一起返回
"""
import re
import datetime
from collections import namedtuple

import epg_feed
from epg_config import EPG_CONFIG, get_source
from epg_errors import InputError, SourceError, ChannelNotFound
from epg_log import write_log
from channel_matcher import (
    match_channel,
    channel_suggestions,
    calculate_similarity,
    normalize_channel_name,
)

MatchResult = namedtuple(
    "MatchResult",
    ["channel_id", "channel_name", "icon", "score", "source_id", "source_name", "source_url"]
)
SearchResult = namedtuple("SearchResult", ["match", "programs", "tried_sources"])

_DATE_PATTERN = re.compile(r'[0-9]{4}-[0-9]{2}-[0-9]{2}')


# ===================== 请求参数 =====================
def validate_query(channel, date):
    """校验频道和日期参数，返回 (去掉首尾空白的channel, date)；date 不做任何修整"""
    channel = (channel or "").strip()
    date = date or ""
    if not channel or not date:
        raise InputError("参数缺失: ch和date为必填参数")
    if not _DATE_PATTERN.fullmatch(date):
        raise InputError("日期格式错误，应为YYYY-MM-DD")
    try:
        datetime.datetime.strptime(date, "%Y-%m-%d")
    except ValueError:
        raise InputError(f"日期无效：{date}") from None
    return channel, date


def parse_max_retry(value, default=None):
    """max_retry 非整数时使用默认值，小于1时按1处理"""
    if default is None:
        default = EPG_CONFIG['DEFAULT_MAX_RETRY']
    try:
        max_retry = int(value)
    except (TypeError, ValueError):
        return default
    return max(1, max_retry)


# ===================== 单次请求上下文 =====================
class TriedSourceLog:
    """单次请求中尝试过的数据源"""

    def __init__(self):
        self.entries = []

    def record(self, source, success, message):
        self.entries.append({
            "source_id": source.id,
            "source_name": source.name,
            "source_url": source.url,
            "success": success,
            "message": message
        })

    def __len__(self):
        return len(self.entries)

    def to_list(self):
        return [dict(entry) for entry in self.entries]


class SearchContext:
    def __init__(self, sources, config=None, loader=None):
        self.sources = sources
        self.config = config or EPG_CONFIG
        self.loader = loader
        self.tried = TriedSourceLog()
        self._feeds = {}

    def load_feed(self, source):
        """读取数据源，失败返回None；同一请求内每个数据源只读取一次"""
        if source.id in self._feeds:
            return self._feeds[source.id]

        loader = self.loader or epg_feed.load_source_feed
        try:
            feed = loader(source, self.config)
        except SourceError as e:
            write_log(f"数据源{source.name}({source.id})不可用：{e.message}", "SOURCE_FAIL")
            feed = None
        self._feeds[source.id] = feed
        return feed


# ===================== 查找 =====================
def search_channel_in_source(context, source, channel, date):
    """在指定数据源中查找频道当天的节目，未找到返回None"""
    feed = context.load_feed(source)
    if feed is None:
        context.tried.record(source, False, "数据加载失败")
        return None

    found = match_channel(channel, feed.channels, context.config['MATCH_THRESHOLD'])
    if found is None:
        write_log(f"{source.name}：未匹配到频道 {channel}", "MATCH")
        context.tried.record(source, True, "数据加载成功，未找到匹配频道")
        return None

    matched_channel, score = found
    programs = epg_feed.extract_programs(matched_channel.id, date, feed)
    if not programs:
        write_log(f"{source.name}：{channel} → {matched_channel.name}（{score}分），{date}无节目", "MATCH")
        context.tried.record(source, True, "数据加载成功，未找到该日期的节目")
        return None

    write_log(f"{source.name}：{channel} → {matched_channel.name}（{score}分），{len(programs)}条节目", "MATCH")
    context.tried.record(source, True, "数据加载成功")
    match = MatchResult(
        channel_id=matched_channel.id,
        channel_name=matched_channel.name,
        icon=matched_channel.icon,
        score=score,
        source_id=source.id,
        source_name=source.name,
        source_url=source.url
    )
    return match, programs


def search_channel_in_all_sources(context, channel, date, max_retry=None):
    """按优先级在所有启用的数据源中查找"""
    if max_retry is None:
        max_retry = context.config['DEFAULT_MAX_RETRY']
    retry_count = 0

    for source in context.sources:
        if not source.enabled:
            continue
        # 已有数据源失败后，不允许重试的数据源直接跳过
        if not source.retry_on_not_found and retry_count > 0:
            write_log(f"跳过数据源{source.name}（不参与重试）", "SOURCE")
            continue

        result = search_channel_in_source(context, source, channel, date)
        if result is not None:
            return result

        retry_count += 1
        if retry_count >= max_retry:
            break
    return None


def get_all_channel_suggestions(context, channel, limit=None):
    """汇总所有启用数据源的频道建议，去重后按与查询词的相似度排序"""
    if limit is None:
        limit = context.config['TOTAL_SUGGESTION_LIMIT']

    all_suggestions = []
    for source in context.sources:
        if not source.enabled:
            continue
        feed = context.load_feed(source)
        if feed is None:
            continue
        all_suggestions.extend(channel_suggestions(
            channel,
            feed.channels,
            context.config['SUGGESTION_THRESHOLD'],
            context.config['SOURCE_SUGGESTION_LIMIT']
        ))

    # 去重（保留先出现的）
    unique_suggestions = list(dict.fromkeys(all_suggestions))
    query = normalize_channel_name(channel)
    unique_suggestions.sort(
        key=lambda name: calculate_similarity(normalize_channel_name(name), query),
        reverse=True
    )
    return unique_suggestions[:limit]


def search_epg(channel, date, sources, source_id=None, max_retry=None, config=None, loader=None):
    """查询频道节目单，找不到时抛出ChannelNotFound（带频道建议和尝试记录）"""
    context = SearchContext(sources, config, loader)
    source = get_source(sources, source_id) if source_id else None

    if source is not None:
        result = search_channel_in_source(context, source, channel, date)
    else:
        if source_id:
            write_log(f"未知数据源{source_id}，改为自动选择", "SOURCE")
        result = search_channel_in_all_sources(context, channel, date, max_retry)

    if result is None:
        suggestions = get_all_channel_suggestions(context, channel)
        write_log(f"未找到：{channel} {date}，尝试{len(context.tried)}个数据源", "NOT_FOUND")
        raise ChannelNotFound(channel, suggestions, context.tried.to_list())

    match, programs = result
    return SearchResult(match=match, programs=programs, tried_sources=context.tried.to_list())
