import traceback
from enum import Enum

from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException

from epg_config import EPG_CONFIG, load_sources, get_source
from epg_errors import EPGError, InputError, SourceError, SourceNotConfigured
from epg_feed import update_source_cache, get_sources_status
from epg_log import write_log
from epg_search import validate_query, parse_max_retry, search_epg

# 初始化Flask应用（适配Vercel的WSGI规范）
app = Flask(__name__)
app.json.ensure_ascii = False  # 强制JSON输出中文（非ASCII）

# 数据源表在启动时构建，请求期间只读
EPG_SOURCES = load_sources(EPG_CONFIG)


class Action(Enum):
    EPG = "epg"
    SOURCES = "sources"
    UPDATE = "update"
    HELP = "help"

    @classmethod
    def from_param(cls, value):
        """未知action按默认的EPG查询处理"""
        try:
            return cls((value or cls.EPG.value).strip().lower())
        except ValueError:
            return cls.EPG


# ===================== 各action处理函数 =====================
def handle_epg(args):
    """查询EPG节目单"""
    channel, date = validate_query(args.get("ch"), args.get("date"))
    source_id = (args.get("source") or "").strip()
    max_retry = parse_max_retry(args.get("max_retry"))
    write_log(f"查询：ch={channel} date={date} source={source_id or '自动'} max_retry={max_retry}", "REQUEST")

    result = search_epg(channel, date, EPG_SOURCES, source_id=source_id, max_retry=max_retry)
    match = result.match
    return {
        "code": 200,
        "message": "请求成功",
        "query_channel": channel,
        "matched_channel": match.channel_name,
        "match_score": match.score,
        "channel_id": match.channel_id,
        "channel_name": match.channel_name,
        "date": date,
        "epg_source_id": match.source_id,
        "epg_source": match.source_name,
        "epg_source_url": match.source_url,
        "tried_sources_count": len(result.tried_sources),
        "icon": match.icon,
        "epg_data": result.programs
    }


def handle_sources(args):
    """查看数据源状态"""
    return {
        "code": 200,
        "message": "数据源状态",
        "sources": get_sources_status(EPG_SOURCES)
    }


def handle_update(args):
    """手动更新指定数据源的缓存"""
    source_id = (args.get("source") or "").strip()
    if not source_id:
        raise InputError("请指定要更新的数据源ID")
    source = get_source(EPG_SOURCES, source_id)
    if source is None:
        raise SourceNotConfigured("数据源不存在")

    write_log(f"手动更新缓存：{source_id}", "REQUEST")
    try:
        result = update_source_cache(source)
    except SourceError:
        raise EPGError("获取数据失败", 500) from None
    return {
        "code": 200,
        "message": result["message"],
        "data": result
    }


def handle_help(args):
    """API说明"""
    return {
        "code": 200,
        "message": "EPG服务API说明",
        "endpoints": [
            {
                "path": "/epg",
                "method": "GET",
                "description": "查询EPG节目单",
                "parameters": {
                    "ch": "频道名称（支持模糊匹配）",
                    "date": "日期（格式：YYYY-MM-DD）",
                    "source": "可选，指定数据源ID",
                    "max_retry": f"可选，最大重试次数，默认{EPG_CONFIG['DEFAULT_MAX_RETRY']}",
                    "action": "可选，其他功能（sources/update/help）"
                },
                "example": {
                    "查询CCTV1节目单": "/epg?ch=CCTV1&date=2024-01-15",
                    "指定数据源": "/epg?ch=CCTV1&date=2024-01-15&source=source1",
                    "多源查找翡翠台": "/epg?ch=翡翠&date=2024-01-15&max_retry=3",
                    "查看数据源": "/epg?action=sources",
                    "更新缓存": "/epg?action=update&source=source1"
                }
            }
        ],
        "available_sources": {source.id: source.name for source in EPG_SOURCES if source.enabled}
    }


ACTION_HANDLERS = {
    Action.EPG: handle_epg,
    Action.SOURCES: handle_sources,
    Action.UPDATE: handle_update,
    Action.HELP: handle_help,
}


# ===================== Flask接口：DIYP EPG =====================
@app.route("/", methods=["GET"])
@app.route("/epg", methods=["GET"])
def epg_api():
    """
    DIYP EPG接口：
    - ?ch=XXX&date=YYYY-MM-DD：查询频道当天节目（模糊匹配，多数据源）
    - ?action=sources|update|help：其他功能
    """
    action = Action.from_param(request.args.get("action"))
    body = ACTION_HANDLERS[action](request.args)
    return jsonify(body), body["code"]


@app.errorhandler(EPGError)
def handle_epg_error(e):
    return jsonify(e.to_dict()), e.code


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return jsonify({"code": e.code, "message": e.name}), e.code
    # 详细错误只写日志，不返回给客户端
    write_log(f"服务器内部错误：{str(e)}\n{traceback.format_exc()}", "FATAL")
    return jsonify({"code": 500, "message": "服务器内部错误"}), 500


@app.after_request
def add_cors_headers(response):
    """处理跨域请求"""
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = "GET, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type"
    return response


# ===================== 适配Vercel的WSGI入口 =====================
# Vercel要求暴露WSGI应用实例，名称必须为app
application = app.wsgi_app

# 本地测试用（部署到Vercel时不会执行）
if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=False)
