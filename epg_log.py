#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import os
import datetime

from epg_config import EPG_CONFIG


def write_log(content, section="INFO"):
    """EPG服务日志函数：写入日志文件并打印"""
    log_path = EPG_CONFIG['LOG_PATH']
    try:
        log_dir = os.path.dirname(log_path)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)

        timestamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(f"[{timestamp}] [{section}] {content}\n")
        print(f"[{timestamp}] [{section}] {content}")
    except OSError as e:
        print(f"日志写入失败：{str(e)}")
