#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
EPG查询服务配置
数据源表、别名表、后缀表在启动时构建为不可变的有序表
"""
from collections import namedtuple

# ===================== EPG配置区 =====================
EPG_CONFIG = {
    'CACHE_DIR': "./epg_cache",
    'CACHE_DURATION': 3600,            # 60分钟缓存（秒）
    'LOG_PATH': "./epg_server.log",
    'CONNECT_TIMEOUT': 10,
    'TIMEOUT': 30,
    'MAX_REDIRECTS': 5,
    'VERIFY_SSL': True,                # 校验证书；仅在源站证书确实无法校验时关闭
    'USER_AGENT': "Mozilla/5.0 EPG Server/1.0",
    'MATCH_THRESHOLD': 65,             # 低于该分数认为不匹配
    'SUGGESTION_THRESHOLD': 50,
    'SOURCE_SUGGESTION_LIMIT': 10,
    'TOTAL_SUGGESTION_LIMIT': 15,
    'DEFAULT_MAX_RETRY': 3,
    'EPG_SOURCES': [
        {
            "id": "source1",
            "name": "51zmt",
            "url": "http://epg.51zmt.top:8000/e1.xml.gz",
            "priority": 1,
            "enabled": True,
            "retry_on_not_found": True   # 找不到频道时是否继续尝试其他源
        },
        {
            "id": "source2",
            "name": "gitee",
            "url": "https://gitee.com/gsls200808/xmltvepg/raw/master/e9.xml.gz",
            "priority": 2,
            "enabled": True,
            "retry_on_not_found": True
        },
        {
            "id": "source3",
            "name": "epg_pw",
            "url": "https://epg.pw/xmltv/epg_CN.xml.gz",
            "priority": 3,
            "enabled": True,
            "retry_on_not_found": True
        }
    ]
}

# 常见频道别名：频道标准名 → 用户常用叫法
COMMON_ALIASES = (
    ('cctv1', ('央视一套', '中央一台')),
    ('cctv2', ('央视二套', '中央二台')),
    ('cctv5', ('央视五套', '中央五台', '体育频道')),
    ('cctv6', ('央视六套', '中央六台', '电影频道')),
    ('cctv8', ('央视八套', '中央八台', '电视剧频道')),
    ('cctv13', ('央视十三套', '中央十三台', '新闻频道')),
    ('湖南卫视', ('湖南', '湖南台')),
    ('浙江卫视', ('浙江', '浙江台')),
    ('江苏卫视', ('江苏', '江苏台')),
    ('东方卫视', ('东方', '东方台', '上海卫视')),
    ('北京卫视', ('北京', '北京台')),
    ('广东卫视', ('广东', '广东台')),
    ('深圳卫视', ('深圳', '深圳台')),
    ('凤凰卫视', ('凤凰', '凤凰台')),
    ('星空卫视', ('星空', '星空台')),
)

# 名称末尾需去掉的常见后缀（按顺序依次处理）
NAME_SUFFIXES = ('综合', '娱乐', '新闻', '体育', '电影', '戏曲', '少儿', '农业', '军事')

SourceConfig = namedtuple(
    "SourceConfig",
    ["id", "name", "url", "priority", "enabled", "retry_on_not_found"]
)

_REQUIRED_SOURCE_KEYS = ("id", "name", "url", "priority")


def load_sources(config=None):
    """按优先级（升序）构建数据源表，优先级相同时保持配置顺序"""
    config = config or EPG_CONFIG
    sources = []
    seen_ids = set()
    for raw in config['EPG_SOURCES']:
        missing = [key for key in _REQUIRED_SOURCE_KEYS if key not in raw]
        if missing:
            raise ValueError(f"数据源配置缺少字段：{', '.join(missing)}")
        if raw["id"] in seen_ids:
            raise ValueError(f"数据源ID重复：{raw['id']}")
        seen_ids.add(raw["id"])
        sources.append(SourceConfig(
            id=str(raw["id"]),
            name=raw["name"],
            url=raw["url"],
            priority=int(raw["priority"]),
            enabled=bool(raw.get("enabled", True)),
            retry_on_not_found=bool(raw.get("retry_on_not_found", True))
        ))
    # sorted 是稳定排序
    return tuple(sorted(sources, key=lambda s: s.priority))


def get_source(sources, source_id):
    """按ID查找数据源，不存在返回None"""
    for source in sources:
        if source.id == source_id:
            return source
    return None
