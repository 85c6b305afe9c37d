"""
入站请求信号模块

从入站 HTTP 请求中提取客户端需要继承的信息：主机名、协议、会话令牌和请求 ID。
支持 Django HttpRequest（读取 request.META）和原始 WSGI environ 字典。

主机名推断规则:
    1. 优先使用 X-Forwarded-Host（有多个值时取最后一个）
    2. 否则使用请求自身的 Host，并去掉默认端口

会话推断规则:
    1. 优先使用 checkpoint.session Cookie
    2. 否则使用 session 查询参数
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs

from django.http.cookie import parse_cookie

from pebbleclient.constants import (
    DEFAULT_PORTS,
    DEFAULT_PROTOCOL,
    FORWARDED_HOST_HEADER,
    REQUEST_ID_HEADER,
    SESSION_COOKIE_NAME,
    SESSION_QUERY_PARAM,
)
from pebbleclient.exceptions import APIClientValidationError
from pebbleclient.utils import strip_default_port


def _environ_key(header: str) -> str:
    """把请求头名称转换为 WSGI environ 键，如 X-Forwarded-Host -> HTTP_X_FORWARDED_HOST"""
    return "HTTP_" + header.upper().replace("-", "_")


@dataclass(frozen=True)
class InboundRequest:
    """
    入站请求的信号快照

    属性:
        host: 推断出的主机名（已去掉默认端口）
        scheme: 请求协议
        session: 会话令牌，未携带时为空字符串
        request_id: Request-Id 请求头，未携带时为空字符串
    """

    host: str
    scheme: str
    session: str = ""
    request_id: str = ""

    @classmethod
    def from_environ(cls, environ: Mapping[str, Any]) -> InboundRequest:
        """从 WSGI environ（或 Django 的 request.META）中提取信号"""
        scheme = environ.get("wsgi.url_scheme") or DEFAULT_PROTOCOL

        forwarded = environ.get(_environ_key(FORWARDED_HOST_HEADER), "")
        forwarded_hosts = [h.strip() for h in forwarded.split(",") if h.strip()]
        if forwarded_hosts:
            host = forwarded_hosts[-1]
        else:
            host = environ.get("HTTP_HOST") or _server_host(environ, scheme)
            host = strip_default_port(host, scheme)

        cookies = parse_cookie(environ.get("HTTP_COOKIE", ""))
        session = cookies.get(SESSION_COOKIE_NAME, "")
        if not session:
            query = parse_qs(environ.get("QUERY_STRING", ""))
            session = (query.get(SESSION_QUERY_PARAM) or [""])[0]

        return cls(
            host=host,
            scheme=scheme,
            session=session,
            request_id=environ.get(_environ_key(REQUEST_ID_HEADER), ""),
        )

    @classmethod
    def from_request(cls, request: Any) -> InboundRequest:
        """
        从 Django HttpRequest 或 WSGI environ 字典中提取信号

        异常:
            APIClientValidationError: 请求对象类型不受支持时抛出
        """
        if isinstance(request, InboundRequest):
            return request
        meta = getattr(request, "META", None)
        if isinstance(meta, Mapping):
            return cls.from_environ(meta)
        if isinstance(request, Mapping):
            return cls.from_environ(request)
        raise APIClientValidationError(
            f"Unsupported inbound request type {type(request).__name__}; expected a Django HttpRequest or WSGI environ"
        )


def _server_host(environ: Mapping[str, Any], scheme: str) -> str:
    name = environ.get("SERVER_NAME", "")
    port = str(environ.get("SERVER_PORT", ""))
    if port and port != str(DEFAULT_PORTS.get(scheme)):
        return f"{name}:{port}"
    return name
