#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
主控制脚本：EPG查询服务命令行入口
运行方式：
  python main.py serve [端口]              # 启动HTTP服务（默认5000）
  python main.py query 频道名 日期 [源ID]   # 命令行查询节目单
  python main.py sources                   # 查看数据源缓存状态
  python main.py update 源ID               # 手动更新数据源缓存
"""
import sys
import json

from epg_config import EPG_CONFIG, load_sources, get_source
from epg_errors import EPGError
from epg_feed import update_source_cache, get_sources_status
from epg_search import validate_query, search_epg


def print_usage():
    print("="*60)
    print("主控制脚本运行说明：")
    print("  1. 启动HTTP服务：python main.py serve [端口]")
    print("  2. 查询节目单：python main.py query 频道名 YYYY-MM-DD [源ID]")
    print("  3. 查看数据源：python main.py sources")
    print("  4. 更新缓存：python main.py update 源ID")
    print("="*60)


def print_json(data):
    print(json.dumps(data, ensure_ascii=False, indent=2))


def run_query(args, sources):
    if len(args) < 2:
        print("❌ 用法：python main.py query 频道名 YYYY-MM-DD [源ID]")
        return 1
    channel, date = validate_query(args[0], args[1])
    source_id = args[2] if len(args) > 2 else None
    result = search_epg(channel, date, sources, source_id=source_id)
    match = result.match
    print(f"✅ {channel} → {match.channel_name}（{match.score}分，来源：{match.source_name}）")
    for program in result.programs:
        print(f"  {program['start']}-{program['end']}  {program['title']}")
    return 0


def run_update(args, sources):
    if not args:
        print("❌ 请指定要更新的数据源ID")
        return 1
    source = get_source(sources, args[0])
    if source is None:
        print(f"❌ 数据源不存在：{args[0]}")
        return 1
    print_json(update_source_cache(source))
    return 0


def main():
    if len(sys.argv) < 2:
        print_usage()
        sys.exit(0)

    sources = load_sources(EPG_CONFIG)
    command = sys.argv[1].lower()
    args = sys.argv[2:]
    try:
        if command == "serve":
            from epg_server import app
            port = int(args[0]) if args else 5000
            print(f"🔹 启动EPG服务：0.0.0.0:{port}")
            app.run(host="0.0.0.0", port=port, debug=False)
            exit_code = 0
        elif command == "query":
            exit_code = run_query(args, sources)
        elif command == "sources":
            print_json(get_sources_status(sources))
            exit_code = 0
        elif command == "update":
            exit_code = run_update(args, sources)
        else:
            print(f"❌ 不支持的参数：{command}")
            print("支持的参数：serve / query / sources / update")
            exit_code = 1
    except EPGError as e:
        print(f"❌ [{e.code}] {e.message}")
        if getattr(e, "suggestions", None):
            print(f"相似频道：{', '.join(e.suggestions)}")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
