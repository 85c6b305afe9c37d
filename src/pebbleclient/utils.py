"""工具函数模块

提供参数值转换、路径段转义、主机名规范化和日志脱敏等实用功能
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qs, quote, urlencode, urlparse, urlunparse

from pebbleclient.constants import DEFAULT_PORTS, SESSION_COOKIE_NAME, SESSION_QUERY_PARAM

# 默认敏感请求头名称集合
DEFAULT_SENSITIVE_HEADERS = {
    "Authorization",
    "Cookie",
    "Set-Cookie",
    "X-API-Key",
    "X-Auth-Token",
}

# 默认敏感URL参数名称集合
DEFAULT_SENSITIVE_PARAMS = {
    SESSION_QUERY_PARAM,
    SESSION_COOKIE_NAME,
    "token",
    "password",
    "secret",
    "api_key",
    "access_token",
}

# 路径段中保持原样的字符，其余字符（包括 "/"）都会被百分号转义
PATH_SEGMENT_SAFE_CHARS = "$&+,:;=@"


def to_value(value: Any) -> str:
    """
    将单个参数值转换为字符串

    转换规则:
        - None 转换为空字符串
        - 布尔值转换为 "true" / "false"
        - 字符串原样返回
        - 其他值使用 str() 转换
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def to_values(params: Mapping[str, Any] | None) -> dict[str, list[str]]:
    """
    将参数映射转换为 {key: [value, ...]} 结构，保持键的原始顺序

    参数:
        params: 参数映射，值可以是单个值或多个值的列表/元组

    返回:
        每个键对应一个字符串列表的新字典

    示例:
        >>> to_values({"page": 1, "tags": ["a", "b"], "draft": False})
        {"page": ["1"], "tags": ["a", "b"], "draft": ["false"]}
    """
    values: dict[str, list[str]] = {}
    for key, value in (params or {}).items():
        if isinstance(value, (list, tuple, set, frozenset)):
            values[key] = [to_value(v) for v in value]
        else:
            values[key] = [to_value(value)]
    return values


def escaped_path(segment: str) -> str:
    """
    转义路径段，"/" 也会被转义为 %2F，保证值只占据一个路径段

    示例:
        >>> escaped_path("foo/bar")
        "foo%2Fbar"
    """
    return quote(segment, safe=PATH_SEGMENT_SAFE_CHARS)


def strip_default_port(host: str, scheme: str | None = None) -> str:
    """
    去掉主机名末尾的默认端口

    未指定 scheme 时只去掉 ":80"；指定时去掉该协议对应的默认端口
    """
    suffix = f":{DEFAULT_PORTS.get(scheme, DEFAULT_PORTS['http'])}"
    if host and host.endswith(suffix):
        return host[: -len(suffix)]
    return host


def sanitize_headers(
    headers: Mapping[str, str],
    sensitive_keys: set[str] | None = None,
    mask: str = "***",
) -> dict[str, str]:
    """
    脱敏请求头中的敏感信息

    参数:
        headers: 原始请求头字典
        sensitive_keys: 敏感键名集合，不区分大小写。None 时使用默认集合
        mask: 脱敏后的替换字符串

    返回:
        脱敏后的请求头字典（新字典，不修改原字典）

    示例:
        >>> headers = {"Cookie": "checkpoint.session=abc", "Content-Type": "application/json"}
        >>> sanitize_headers(headers)
        {"Cookie": "***", "Content-Type": "application/json"}
    """
    if sensitive_keys is None:
        sensitive_keys = DEFAULT_SENSITIVE_HEADERS

    # 创建不区分大小写的查找集合
    sensitive_keys_lower = {k.lower() for k in sensitive_keys}

    return {k: mask if k.lower() in sensitive_keys_lower else v for k, v in headers.items()}


def sanitize_url(
    url: str,
    sensitive_params: set[str] | None = None,
    mask: str = "***",
) -> str:
    """
    脱敏 URL 中的敏感参数

    参数:
        url: 原始 URL
        sensitive_params: 敏感参数名集合，不区分大小写。None 时使用默认集合
        mask: 脱敏后的替换字符串

    返回:
        脱敏后的 URL

    示例:
        >>> sanitize_url("https://example.com/api/users/v1/me?session=abc123&page=1")
        "https://example.com/api/users/v1/me?session=***&page=1"
    """
    if sensitive_params is None:
        sensitive_params = DEFAULT_SENSITIVE_PARAMS

    # 创建不区分大小写的查找集合
    sensitive_params_lower = {p.lower() for p in sensitive_params}

    # 解析 URL
    parsed = urlparse(url)

    # 如果没有查询参数，直接返回
    if not parsed.query:
        return url

    # 解析查询参数
    params = parse_qs(parsed.query, keep_blank_values=True)

    # 脱敏敏感参数
    sanitized_params = {}
    for key, values in params.items():
        if key.lower() in sensitive_params_lower:
            # 保持参数结构，但值替换为 mask
            sanitized_params[key] = [mask] * len(values)
        else:
            sanitized_params[key] = values

    # 重新构建查询字符串
    sanitized_query = urlencode(sanitized_params, doseq=True)

    # 重新构建 URL
    return urlunparse(parsed._replace(query=sanitized_query))
