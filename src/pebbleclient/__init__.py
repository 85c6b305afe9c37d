"""
pebbleclient HTTP 客户端模块

面向版本化、多租户 JSON/HTTP API 的客户端库

主要组件:
    - HTTPClient: 请求执行器（URL 构建、重试、响应解码）
    - Options / RequestOptions: 不可变的端点配置和单次请求选项
    - RequestContext: 可取消、可设置截止时间的调用上下文
    - RealmsConfig: realm 配置集合
    - Registry / Connector: 服务注册与 realm 感知的服务连接
    - 异常类: APIClientError 及其子类

使用示例:
    >>> from pebbleclient import HTTPClient, Options, RequestOptions
    >>>
    >>> client = HTTPClient(Options(host="example.com", service_name="users"))
    >>> user = client.get("/users/:id", RequestOptions(params={"id": 42, "fields": "name"}))
"""

# 核心客户端
from pebbleclient.client import HTTPClient, compute_backoff

# 配置
from pebbleclient.options import Options, RequestOptions, create_http_session
from pebbleclient.context import RequestContext

# 异常类
from pebbleclient.exceptions import (
    APIClientCancelledError,
    APIClientDecodeError,
    APIClientEnvelopeError,
    APIClientError,
    APIClientMissingParameterError,
    APIClientNetworkError,
    APIClientNotFoundError,
    APIClientRequestError,
    APIClientResponseError,
    APIClientResponseValidationError,
    APIClientTimeoutError,
    APIClientValidationError,
    NoHostConfigError,
    NoRealmConfigError,
    RealmResolutionError,
    ServiceResolutionError,
)

# URL 格式化、响应分类和解析
from pebbleclient.formatter import format_endpoint_url
from pebbleclient.classifier import ResponseClass, classify, yields_body
from pebbleclient.parser import decode_json_response

# Realm 与服务连接
from pebbleclient.inbound import InboundRequest
from pebbleclient.realms import RealmConfig, RealmsConfig
from pebbleclient.registry import Registry
from pebbleclient.connector import Connector

# 工具函数
from pebbleclient.utils import escaped_path, sanitize_headers, sanitize_url, to_values

__all__ = [
    # 核心类
    "HTTPClient",
    "compute_backoff",
    # 配置
    "Options",
    "RequestOptions",
    "RequestContext",
    "create_http_session",
    # 异常
    "APIClientError",
    "APIClientValidationError",
    "APIClientMissingParameterError",
    "APIClientNetworkError",
    "APIClientTimeoutError",
    "APIClientCancelledError",
    "APIClientRequestError",
    "APIClientNotFoundError",
    "APIClientResponseError",
    "APIClientEnvelopeError",
    "APIClientDecodeError",
    "APIClientResponseValidationError",
    "RealmResolutionError",
    "NoHostConfigError",
    "NoRealmConfigError",
    "ServiceResolutionError",
    # URL 格式化、响应分类和解析
    "format_endpoint_url",
    "ResponseClass",
    "classify",
    "yields_body",
    "decode_json_response",
    # Realm 与服务连接
    "InboundRequest",
    "RealmConfig",
    "RealmsConfig",
    "Registry",
    "Connector",
    # 工具函数
    "escaped_path",
    "sanitize_headers",
    "sanitize_url",
    "to_values",
]

__version__ = "0.1.0"
