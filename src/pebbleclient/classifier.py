"""响应分类模块

根据 HTTP 状态码把响应分为成功、可重试失败和终止失败三类，并判断状态码是否携带响应体
"""

from __future__ import annotations

import enum

from pebbleclient.constants import NO_BODY_STATUS_CODES, RETRY_STATUS_CODES


class ResponseClass(enum.Enum):
    """响应分类"""

    SUCCESS = "success"
    RETRIABLE_FAILURE = "retriable_failure"
    TERMINAL_FAILURE = "terminal_failure"


def is_success(status_code: int) -> bool:
    return 200 <= status_code <= 299


def classify(status_code: int) -> ResponseClass:
    """
    对状态码进行分类

    - 200-299: SUCCESS
    - 502/503/504: RETRIABLE_FAILURE（上游或基础设施的瞬时故障）
    - 其他: TERMINAL_FAILURE（包括 4xx）
    """
    if is_success(status_code):
        return ResponseClass.SUCCESS
    if status_code in RETRY_STATUS_CODES:
        return ResponseClass.RETRIABLE_FAILURE
    return ResponseClass.TERMINAL_FAILURE


def yields_body(status_code: int) -> bool:
    """除 204 No Content 和 205 Reset Content 外，所有状态码都应携带响应体"""
    return status_code not in NO_BODY_STATUS_CODES
