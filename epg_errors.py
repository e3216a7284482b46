#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""EPG服务异常定义，code 与返回给客户端的 code 一致"""


class EPGError(Exception):
    code = 500

    def __init__(self, message, code=None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self):
        return {"code": self.code, "message": self.message}


class InputError(EPGError):
    """请求参数缺失或格式错误"""
    code = 400


class SourceNotConfigured(EPGError):
    code = 404


class ChannelNotFound(EPGError):
    """所有可用数据源中均未找到频道或当天节目"""
    code = 404

    def __init__(self, query_channel, suggestions, tried_sources):
        message = f"已在 {len(tried_sources)} 个数据源中查找，均未找到该频道"
        super().__init__(message)
        self.query_channel = query_channel
        self.suggestions = suggestions
        self.tried_sources = tried_sources

    def to_dict(self):
        body = super().to_dict()
        body.update({
            "suggestions": self.suggestions,
            "query_channel": self.query_channel,
            "tried_sources": self.tried_sources
        })
        return body


class SourceError(EPGError):
    """单个数据源下载或解析失败，由搜索流程内部处理"""
    code = 500


class CacheWriteError(EPGError):
    code = 500
