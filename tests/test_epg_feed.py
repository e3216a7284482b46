"""数据源下载、缓存、XMLTV解析与节目提取测试"""
import os
import gzip
import time

import pytest
import requests

import epg_feed
from epg_config import EPG_CONFIG
from epg_errors import SourceError, CacheWriteError
from epg_feed import (
    decompress_data,
    parse_feed,
    extract_programs,
    load_source_feed,
    update_source_cache,
    get_sources_status,
    cache_file_path,
    fetch_remote_data,
)


class FakeResponse:
    def __init__(self, status_code=200, content=b""):
        self.status_code = status_code
        self.content = content


class FakeSession:
    """替代 requests.Session，记录每次 get() 调用"""

    calls = []
    response = FakeResponse()
    error = None

    def __init__(self):
        self.max_redirects = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def get(self, url, **kwargs):
        FakeSession.calls.append((url, self.max_redirects, kwargs))
        if FakeSession.error is not None:
            raise FakeSession.error
        return FakeSession.response


@pytest.fixture
def fake_session(monkeypatch):
    FakeSession.calls = []
    FakeSession.response = FakeResponse(200, b"<tv/>")
    FakeSession.error = None
    monkeypatch.setattr(epg_feed.requests, "Session", FakeSession)
    return FakeSession


@pytest.fixture
def source(make_sources):
    return make_sources(("s1", True))[0]


# =============================================================================
# FETCH / DECOMPRESS / PARSE
# =============================================================================


class TestFetchRemoteData:
    def test_success(self, fake_session):
        assert fetch_remote_data("https://epg.example/e.xml.gz") == b"<tv/>"
        url, max_redirects, kwargs = fake_session.calls[0]
        assert url == "https://epg.example/e.xml.gz"
        assert max_redirects == EPG_CONFIG["MAX_REDIRECTS"]
        assert kwargs["timeout"] == (EPG_CONFIG["CONNECT_TIMEOUT"], EPG_CONFIG["TIMEOUT"])
        assert kwargs["verify"] is True

    def test_http_error_status(self, fake_session):
        fake_session.response = FakeResponse(404, b"not found")
        with pytest.raises(SourceError):
            fetch_remote_data("https://epg.example/e.xml.gz")

    def test_empty_body(self, fake_session):
        fake_session.response = FakeResponse(200, b"")
        with pytest.raises(SourceError):
            fetch_remote_data("https://epg.example/e.xml.gz")

    def test_transport_error(self, fake_session):
        fake_session.error = requests.ConnectionError("refused")
        with pytest.raises(SourceError):
            fetch_remote_data("https://epg.example/e.xml.gz")
        assert len(fake_session.calls) == 1


class TestDecompress:
    def test_gzip(self):
        assert decompress_data(gzip.compress(b"<tv/>")) == b"<tv/>"

    def test_plain_passthrough(self):
        assert decompress_data(b"<tv/>") == b"<tv/>"


class TestParseFeed:
    def test_channels(self, make_feed_xml):
        feed = parse_feed(make_feed_xml([
            ("1", "CCTV-1", "http://logo/cctv1.png"),
            ("2", "湖南卫视"),
        ]))
        assert [c.id for c in feed.channels] == ["1", "2"]
        assert feed.channels[0].name == "CCTV-1"
        assert feed.channels[0].icon == "http://logo/cctv1.png"
        assert feed.channels[1].icon == ""

    def test_first_display_name(self):
        xml = (
            '<tv><channel id="9"><display-name lang="zh">翡翠台</display-name>'
            '<display-name lang="en">Jade</display-name></channel></tv>'
        ).encode("utf-8")
        assert parse_feed(xml).channels[0].name == "翡翠台"

    def test_raw_name_and_missing_id_kept(self):
        xml = (
            '<tv><channel id="1"><display-name> CCTV-1 </display-name></channel>'
            '<channel><display-name>湖南卫视</display-name></channel></tv>'
        ).encode("utf-8")
        channels = parse_feed(xml).channels
        assert channels[0].name == " CCTV-1 "
        assert channels[1].id == ""
        assert channels[1].name == "湖南卫视"

    def test_invalid_xml(self):
        with pytest.raises(SourceError):
            parse_feed(b"<tv><channel")


# =============================================================================
# PROGRAM EXTRACTION
# =============================================================================


class TestExtractPrograms:
    def test_filters_by_channel_and_date(self, make_feed_xml):
        feed = parse_feed(make_feed_xml([("1", "CCTV-1"), ("2", "CCTV-2")], [
            {"channel": "1", "start": "20240115180000 +0800", "stop": "20240115190000 +0800",
             "title": "News", "desc": "晚间新闻"},
            {"channel": "1", "start": "20240116003000 +0800", "stop": "20240116013000 +0800",
             "title": "Tomorrow"},
            {"channel": "1", "start": "20240115230000 +0800", "stop": "bad", "title": "Late"},
            {"channel": "2", "start": "20240115180000 +0800", "stop": "20240115190000 +0800",
             "title": "Other"},
            {"channel": "1", "start": "garbage", "stop": "20240115190000 +0800", "title": "Broken"},
        ]))

        programs = extract_programs("1", "2024-01-15", feed)

        assert programs == [
            {"start": "18:00", "end": "19:00", "title": "News", "desc": "晚间新闻"},
            {"start": "23:00", "end": "00:00", "title": "Late", "desc": ""},
        ]

    def test_uses_embedded_offset(self, make_feed_xml):
        # 2024-01-14 23:00 -0500 就是 UTC 1月15日，但按源文件时区算仍是14日
        feed = parse_feed(make_feed_xml([("1", "CNN")], [
            {"channel": "1", "start": "20240114230000 -0500", "stop": "20240115000000 -0500",
             "title": "Late Show"},
        ]))
        assert extract_programs("1", "2024-01-15", feed) == []
        assert extract_programs("1", "2024-01-14", feed)[0]["start"] == "23:00"

    def test_keeps_feed_order(self, make_feed_xml):
        feed = parse_feed(make_feed_xml([("1", "CCTV-1")], [
            {"channel": "1", "start": "20240115200000 +0800", "stop": "20240115210000 +0800",
             "title": "B"},
            {"channel": "1", "start": "20240115080000 +0800", "stop": "20240115090000 +0800",
             "title": "A"},
        ]))
        assert [p["title"] for p in extract_programs("1", "2024-01-15", feed)] == ["B", "A"]

    def test_channel_id_compared_literally(self, make_feed_xml):
        feed = parse_feed(make_feed_xml([("CCTV1", "CCTV-1")], [
            {"channel": "CCTV1", "start": "20240115200000 +0800", "stop": "20240115210000 +0800",
             "title": "B"},
        ]))
        assert extract_programs("cctv1", "2024-01-15", feed) == []


# =============================================================================
# CACHE
# =============================================================================


class TestLoadSourceFeed:
    def test_downloads_and_caches(self, monkeypatch, make_feed_xml, source):
        calls = []
        xml = make_feed_xml([("1", "CCTV-1")])

        def fake_fetch(url, config=None):
            calls.append(url)
            return gzip.compress(xml)

        monkeypatch.setattr(epg_feed, "fetch_remote_data", fake_fetch)

        feed = load_source_feed(source)
        assert feed.channels[0].name == "CCTV-1"
        cache_file = cache_file_path(source.id)
        assert os.path.basename(cache_file) == "epg_s1.xml"
        with open(cache_file, "rb") as f:
            assert f.read() == xml

        # 缓存有效期内不再下载
        load_source_feed(source)
        assert calls == [source.url]

    def test_stale_cache_fallback(self, monkeypatch, make_feed_xml, source):
        cache_file = cache_file_path(source.id)
        os.makedirs(os.path.dirname(cache_file))
        with open(cache_file, "wb") as f:
            f.write(make_feed_xml([("1", "旧频道")]))
        old = time.time() - EPG_CONFIG["CACHE_DURATION"] - 60
        os.utime(cache_file, (old, old))

        def failing_fetch(url, config=None):
            raise SourceError("下载失败")

        monkeypatch.setattr(epg_feed, "fetch_remote_data", failing_fetch)
        assert load_source_feed(source).channels[0].name == "旧频道"

    def test_no_cache_and_fetch_failure(self, monkeypatch, source):
        def failing_fetch(url, config=None):
            raise SourceError("下载失败")

        monkeypatch.setattr(epg_feed, "fetch_remote_data", failing_fetch)
        with pytest.raises(SourceError):
            load_source_feed(source)

    def test_bad_download_does_not_overwrite_cache(self, monkeypatch, source):
        monkeypatch.setattr(epg_feed, "fetch_remote_data", lambda url, config=None: b"<tv><broken")
        with pytest.raises(SourceError):
            load_source_feed(source)
        assert not os.path.exists(cache_file_path(source.id))

    def test_cache_write_failure(self, monkeypatch, tmp_path, make_feed_xml, source):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x")
        monkeypatch.setitem(EPG_CONFIG, "CACHE_DIR", str(blocker))
        monkeypatch.setattr(epg_feed, "fetch_remote_data",
                            lambda url, config=None: make_feed_xml([("1", "CCTV-1")]))
        with pytest.raises(CacheWriteError):
            load_source_feed(source)


class TestUpdateAndStatus:
    def test_update_source_cache(self, monkeypatch, source):
        monkeypatch.setattr(epg_feed, "fetch_remote_data",
                            lambda url, config=None: gzip.compress(b"<tv/>"))
        result = update_source_cache(source)
        assert result["success"] is True
        assert result["file_size"] == len(b"<tv/>")

    def test_status_without_cache(self, make_sources):
        sources = make_sources(("s1", True), ("s2", True), disabled=("s2",))
        status = get_sources_status(sources)
        assert len(status) == 1
        assert status[0]["id"] == "s1"
        assert status[0]["cache_exists"] is False
        assert status[0]["cache_valid"] is False
        assert status[0]["last_updated"] == "从未更新"
        assert status[0]["cache_file"] == "epg_s1.xml"

    def test_status_with_cache(self, monkeypatch, source):
        monkeypatch.setattr(epg_feed, "fetch_remote_data", lambda url, config=None: b"<tv/>")
        update_source_cache(source)
        status = get_sources_status([source])[0]
        assert status["cache_exists"] is True
        assert status["cache_valid"] is True
        assert status["last_updated"] != "从未更新"
