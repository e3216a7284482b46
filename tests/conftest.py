"""公共fixture：隔离缓存/日志路径，内存中构造XMLTV数据源"""
import xml.etree.ElementTree as ET

import pytest

from epg_config import EPG_CONFIG, load_sources


def build_feed_xml(channels, programmes=()):
    """构造XMLTV字节串

    channels: (id, name) 或 (id, name, icon)
    programmes: 含 channel/start/stop/title（desc可选）的字典
    """
    root = ET.Element("tv")
    for channel in channels:
        channel_id, name = channel[0], channel[1]
        elem = ET.SubElement(root, "channel", {"id": channel_id})
        ET.SubElement(elem, "display-name", {"lang": "zh"}).text = name
        if len(channel) > 2:
            ET.SubElement(elem, "icon", {"src": channel[2]})
    for prog in programmes:
        attrs = {"channel": prog["channel"], "start": prog["start"]}
        if "stop" in prog:
            attrs["stop"] = prog["stop"]
        elem = ET.SubElement(root, "programme", attrs)
        ET.SubElement(elem, "title", {"lang": "zh"}).text = prog["title"]
        if "desc" in prog:
            ET.SubElement(elem, "desc", {"lang": "zh"}).text = prog["desc"]
    return ET.tostring(root, encoding="utf-8")


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """缓存文件和日志写到测试临时目录"""
    monkeypatch.setitem(EPG_CONFIG, "CACHE_DIR", str(tmp_path / "epg_cache"))
    monkeypatch.setitem(EPG_CONFIG, "LOG_PATH", str(tmp_path / "epg_server.log"))
    return EPG_CONFIG


@pytest.fixture
def make_feed_xml():
    return build_feed_xml


@pytest.fixture
def make_sources():
    """构造数据源表：make_sources(("s1", True), ("s2", False), ...)

    布尔值为 retry_on_not_found，优先级按参数顺序
    """
    def _make(*specs, disabled=()):
        raw = []
        for priority, (source_id, retry) in enumerate(specs, 1):
            raw.append({
                "id": source_id,
                "name": f"name-{source_id}",
                "url": f"http://epg.example/{source_id}.xml.gz",
                "priority": priority,
                "enabled": source_id not in disabled,
                "retry_on_not_found": retry,
            })
        return load_sources({"EPG_SOURCES": raw})
    return _make
