"""
客户端配置模块

Options 描述一个服务端点的完整配置（主机、协议、服务名、API 版本、会话等），
是不可变值：任何覆盖都会生成一个新的 Options，从不原地修改。

合并规则:
    merge(base, override) 中 override 的非空字段覆盖 base 的对应字段，
    其余字段保留 base 的值。连续合并（客户端默认值 -> realm -> 单次调用）
    的结果与一次性合并最终覆盖值相同。
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from http.cookiejar import DefaultCookiePolicy
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from requests.cookies import RequestsCookieJar

from pebbleclient.constants import (
    DEFAULT_API_VERSION,
    DEFAULT_POOL_CONFIG,
    DEFAULT_PROTOCOL,
    DEFAULT_TIMEOUT,
)
from pebbleclient.context import RequestContext
from pebbleclient.exceptions import APIClientValidationError

# 埋点钩子: (request, response 或 None, error 或 None, 耗时秒数)
InstrumentHook = Callable[..., None]


@dataclass(frozen=True)
class Options:
    """
    服务端点配置

    属性:
        host: 目标主机名，可包含端口
        protocol: HTTP 协议，默认 "http"
        service_name: 目标服务名
        api_version: 目标服务的 API 版本，默认 1
        session: 可选的 Checkpoint 会话令牌
        request_id: 可选的请求 ID，会透传给目标服务
        timeout: 传输层超时时间（秒）
        instrument: 可选的埋点钩子，每次尝试都会调用
        ctx: 可选的调用上下文
        http_session: 可选的 requests.Session，未提供时自动创建
    """

    host: str = ""
    protocol: str = ""
    service_name: str = ""
    api_version: int = 0
    session: str = ""
    request_id: str = ""
    timeout: float | None = None
    instrument: InstrumentHook | None = field(default=None, compare=False)
    ctx: RequestContext | None = field(default=None, compare=False)
    http_session: requests.Session | None = field(default=None, compare=False, repr=False)

    def merge(self, other: Options | None) -> Options:
        """返回一个新的 Options，other 中的非空字段覆盖当前值"""
        if other is None:
            return self
        overrides = {f.name: getattr(other, f.name) for f in fields(other) if getattr(other, f.name)}
        return dataclasses.replace(self, **overrides)

    def apply_defaults(self, pool_config: Mapping[str, Any] | None = None) -> Options:
        """
        填充默认值

        只在字段未设置时填充协议、API 版本和超时时间，
        没有提供 http_session 时创建带连接池的 requests.Session
        """
        return dataclasses.replace(
            self,
            protocol=self.protocol or DEFAULT_PROTOCOL,
            api_version=self.api_version or DEFAULT_API_VERSION,
            timeout=self.timeout if self.timeout else DEFAULT_TIMEOUT,
            http_session=self.http_session or create_http_session(pool_config),
        )

    def validate(self) -> None:
        """
        验证配置是否可以发起调用

        异常:
            APIClientValidationError: host 或 service_name 为空时抛出
        """
        if not self.host:
            raise APIClientValidationError("Host must be specified in options")
        if not self.service_name:
            raise APIClientValidationError("Service name must be specified in options")


@dataclass(frozen=True)
class RequestOptions:
    """
    单次请求的选项

    属性:
        params: 有序的参数映射，值可以是单个值或多个值的列表。
            路径中的 :name 占位符会从这里取值，其余参数成为查询字符串。
    """

    params: Mapping[str, Any] = field(default_factory=dict)


def create_http_session(pool_config: Mapping[str, Any] | None = None) -> requests.Session:
    """
    创建并配置 requests.Session 对象

    为 HTTP 和 HTTPS 协议挂载带连接池配置的适配器。
    重试由客户端自行处理，适配器本身不重试。

    Session 在所有派生客户端之间共享，因此它的 Cookie 容器拒绝保存任何 Cookie：
    服务端的 Set-Cookie 不会被带到其他调用中，会话 Cookie 只随单次请求发送。
    """
    session = requests.Session()
    session.cookies = RequestsCookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))
    adapter = HTTPAdapter(max_retries=0, **(pool_config or DEFAULT_POOL_CONFIG))
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session
