"""
端点 URL 格式化模块

负责把服务配置、路径模板和请求参数组合为完整的请求 URL:

    {protocol}://{host}/api/{service_name}/v{api_version}/{path}?{query}

路径模板中的 :name 路径段是占位符，会用同名参数替换；替换后的参数不再出现在查询字符串中。
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

from pebbleclient.exceptions import APIClientMissingParameterError
from pebbleclient.options import Options
from pebbleclient.utils import escaped_path, to_values


def is_placeholder(segment: str) -> bool:
    """路径段是否是占位符，单独的 ":" 不算"""
    return len(segment) > 1 and segment.startswith(":")


def render_path(path: str, values: dict[str, list[str]]) -> str:
    """
    替换路径模板中的占位符

    参数:
        path: 路径模板，如 "/users/:id/posts"
        values: 参数字典（会被修改：已替换的键会被移除）

    返回:
        替换后的路径

    异常:
        APIClientMissingParameterError: 占位符没有对应参数时抛出
    """
    if ":" not in path:
        return path

    segments = path.split("/")
    for i, segment in enumerate(segments):
        if not is_placeholder(segment):
            continue
        key = segment[1:]
        if key not in values:
            raise APIClientMissingParameterError(key)
        segments[i] = escaped_path(",".join(values.pop(key)))
    return "/".join(segments)


def format_endpoint_url(options: Options, path: str, params: Mapping[str, Any] | None = None) -> str:
    """
    构建完整的请求 URL

    参数:
        options: 已填充默认值的服务配置
        path: 路径模板，开头的单个 "/" 会被去掉
        params: 请求参数，不会被修改

    返回:
        完整的 URL，查询参数按键名排序

    执行步骤:
        1. 复制参数并替换路径占位符，已使用的参数从副本中移除
        2. 去掉路径开头的 "/"，拼接 /api/{service}/v{version}/ 前缀
        3. 剩余参数按键名排序编码为查询字符串

    示例:
        >>> format_endpoint_url(Options(host="example.com", protocol="http", service_name="users",
        ...                             api_version=1), "/get/:name", {"name": "bob", "format": "json"})
        "http://example.com/api/users/v1/get/bob?format=json"
    """
    values = to_values(params)
    rendered = render_path(path, values)
    if rendered.startswith("/"):
        rendered = rendered[1:]

    url = f"{options.protocol}://{options.host}/api/{options.service_name}/v{options.api_version}/{rendered}"
    if values:
        query = urlencode([(key, value) for key in sorted(values) for value in values[key]])
        url = f"{url}?{query}"
    return url
