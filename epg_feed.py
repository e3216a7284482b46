#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
EPG数据源读取：下载、解压、缓存、XMLTV解析、按日期提取节目
"""
import os
import gzip
import zlib
import time
import datetime
import tempfile
import xml.etree.ElementTree as ET
from collections import namedtuple

import requests

from epg_config import EPG_CONFIG
from epg_errors import SourceError, CacheWriteError
from epg_log import write_log
from channel_matcher import ChannelRecord

ParsedFeed = namedtuple("ParsedFeed", ["channels", "programmes"])

XMLTV_TIME_FORMAT = "%Y%m%d%H%M%S %z"   # 20240115180000 +0800

# ===================== 下载 / 解压 / 解析 =====================
def fetch_remote_data(url, config=None):
    """下载远程EPG文件，失败抛出SourceError（不做传输层重试）"""
    config = config or EPG_CONFIG
    headers = {"User-Agent": config['USER_AGENT']}
    write_log(f"下载：{url}", "DOWNLOAD")
    try:
        with requests.Session() as session:
            session.max_redirects = config['MAX_REDIRECTS']
            response = session.get(
                url,
                headers=headers,
                timeout=(config['CONNECT_TIMEOUT'], config['TIMEOUT']),
                verify=config['VERIFY_SSL']
            )
    except requests.RequestException as e:
        write_log(f"下载失败：{url} {str(e)}", "DOWNLOAD_ERROR")
        raise SourceError(f"下载失败：{url}") from e

    if response.status_code != 200 or not response.content:
        write_log(f"下载失败：{url} 状态码：{response.status_code}", "DOWNLOAD_ERROR")
        raise SourceError(f"下载失败：{url}，状态码：{response.status_code}")
    return response.content


def decompress_data(data):
    """解压GZ，非GZ数据原样返回"""
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error):
        return data


def _first_text(elem, tag):
    child = elem.find(tag)
    if child is None or child.text is None:
        return ""
    return child.text


def parse_feed(xml_data):
    """解析XMLTV为频道列表 + 节目元素列表"""
    try:
        root = ET.fromstring(xml_data)
    except ET.ParseError as e:
        write_log(f"解析XML失败：{str(e)}", "PARSE_ERROR")
        raise SourceError(f"解析XML失败：{str(e)}") from e

    channels = []
    for channel in root.findall("channel"):
        icon_elem = channel.find("icon")
        icon = icon_elem.get("src", "").strip() if icon_elem is not None else ""
        channels.append(ChannelRecord(
            id=channel.get("id", ""),
            # 保留原始名称，精确匹配时与原文比较
            name=_first_text(channel, "display-name"),
            icon=icon
        ))

    return ParsedFeed(channels=channels, programmes=root.findall("programme"))


# ===================== 缓存 =====================
def cache_file_path(source_id, config=None):
    config = config or EPG_CONFIG
    return os.path.join(config['CACHE_DIR'], f"epg_{source_id}.xml")


def is_cache_valid(cache_file, config=None):
    config = config or EPG_CONFIG
    if not os.path.exists(cache_file):
        return False
    return time.time() - os.path.getmtime(cache_file) < config['CACHE_DURATION']


def read_cache(cache_file):
    try:
        with open(cache_file, "rb") as f:
            return f.read()
    except OSError as e:
        write_log(f"读取缓存失败：{cache_file} {str(e)}", "CACHE_ERROR")
        raise SourceError("读取缓存失败") from e


def write_cache(cache_file, data):
    """整文件替换写入缓存，并发写入时以最后一次为准"""
    cache_dir = os.path.dirname(cache_file) or "."
    tmp_path = None
    try:
        os.makedirs(cache_dir, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=cache_dir, suffix=".tmp")
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_path, cache_file)
    except OSError as e:
        write_log(f"写入缓存失败：{cache_file} {str(e)}", "CACHE_ERROR")
        if tmp_path and os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise CacheWriteError("写入缓存文件失败") from e
    write_log(f"缓存已更新：{cache_file}（{len(data)}字节）", "CACHE")


def load_source_feed(source, config=None):
    """读取数据源：有效缓存 → 远程下载 → 过期缓存兜底"""
    config = config or EPG_CONFIG
    cache_file = cache_file_path(source.id, config)

    if is_cache_valid(cache_file, config):
        try:
            return parse_feed(read_cache(cache_file))
        except SourceError:
            write_log(f"缓存不可用，重新下载：{source.id}", "CACHE")

    try:
        compressed_data = fetch_remote_data(source.url, config)
    except SourceError:
        if not os.path.exists(cache_file):
            raise
        write_log(f"下载失败，使用旧缓存：{cache_file}", "CACHE_FALLBACK")
        return parse_feed(read_cache(cache_file))

    xml_data = decompress_data(compressed_data)
    # 解析成功后再写缓存，避免坏数据覆盖旧缓存
    feed = parse_feed(xml_data)
    write_cache(cache_file, xml_data)
    return feed


def update_source_cache(source, config=None):
    """手动更新指定数据源的缓存"""
    config = config or EPG_CONFIG
    cache_file = cache_file_path(source.id, config)

    compressed_data = fetch_remote_data(source.url, config)
    write_cache(cache_file, decompress_data(compressed_data))
    return {
        "success": True,
        "message": "缓存更新成功",
        "file_size": os.path.getsize(cache_file),
        "update_time": datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    }


def get_sources_status(sources, config=None):
    """获取所有启用数据源的缓存状态"""
    config = config or EPG_CONFIG
    status = []
    for source in sources:
        if not source.enabled:
            continue
        cache_file = cache_file_path(source.id, config)
        cache_exists = os.path.exists(cache_file)
        last_updated = os.path.getmtime(cache_file) if cache_exists else 0
        status.append({
            "id": source.id,
            "name": source.name,
            "url": source.url,
            "priority": source.priority,
            "enabled": source.enabled,
            "retry_on_not_found": source.retry_on_not_found,
            "cache_exists": cache_exists,
            "cache_valid": is_cache_valid(cache_file, config),
            "last_updated": (datetime.datetime.fromtimestamp(last_updated).strftime("%Y-%m-%d %H:%M:%S")
                             if last_updated else "从未更新"),
            "cache_file": os.path.basename(cache_file)
        })
    return status


# ===================== 节目提取 =====================
def parse_xmltv_time(value):
    """解析XMLTV时间（保留源文件中的时区偏移，不做转换）"""
    if not value:
        return None
    try:
        return datetime.datetime.strptime(value.strip(), XMLTV_TIME_FORMAT)
    except ValueError:
        return None


def extract_programs(channel_id, date, feed):
    """提取指定频道在指定日期（YYYY-MM-DD）的节目，保持源文件顺序"""
    programs = []
    for programme in feed.programmes:
        if programme.get("channel") != channel_id:
            continue

        start_time = parse_xmltv_time(programme.get("start"))
        if start_time is None or start_time.strftime("%Y-%m-%d") != date:
            continue
        end_time = parse_xmltv_time(programme.get("stop"))

        programs.append({
            "start": start_time.strftime("%H:%M"),
            "end": end_time.strftime("%H:%M") if end_time else "00:00",
            "title": _first_text(programme, "title"),
            "desc": _first_text(programme, "desc")
        })
    return programs
