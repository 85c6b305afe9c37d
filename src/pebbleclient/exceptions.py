"""
HTTP 客户端异常模块

定义所有 API 客户端相关的异常类，提供统一的错误处理机制
"""

from __future__ import annotations

from typing import Any

import requests


class APIClientError(Exception):
    """
    API 客户端异常基类

    所有自定义异常的基类，用于统一捕获和处理客户端相关错误
    """


class APIClientValidationError(APIClientError):
    """
    配置验证异常

    当客户端配置（host、service_name 等）、realm 配置或服务注册参数无效时抛出此异常

    参数:
        message: 错误描述信息
        errors: 验证错误详情字典（可选）
    """

    def __init__(self, message: str, errors: dict | None = None):
        super().__init__(message)
        self.errors = errors or {}


class APIClientMissingParameterError(APIClientValidationError):
    """
    路径参数缺失异常

    当路径模板中的占位符（如 /users/:id）在请求参数中找不到对应值时抛出

    属性:
        key: 缺失的参数名
    """

    def __init__(self, key: str):
        super().__init__(f"Missing parameter {key!r} for path")
        self.key = key


class APIClientNetworkError(APIClientError):
    """
    网络连接异常

    当网络连接失败、DNS 解析失败、TLS 握手失败等网络层面问题时抛出此异常，不会重试
    """


class APIClientTimeoutError(APIClientNetworkError):
    """
    请求超时异常

    当传输层超时，或调用上下文的截止时间已过时抛出此异常
    """


class APIClientCancelledError(APIClientError):
    """
    请求取消异常

    当调用上下文被主动取消时抛出此异常
    """


class APIClientRequestError(APIClientError):
    """
    HTTP 错误响应异常

    当服务器返回非 2xx 状态码（或重试状态码在上下文结束前仍未恢复）时抛出此异常。
    只保留截断后的响应体，避免持有可能很大的完整响应。

    参数:
        message: 错误描述信息
        request: 发送的 requests.PreparedRequest 对象（可选）
        response: 原始的 requests.Response 对象（可选，响应体已关闭）
        partial_body: 截断后的响应体字节
        options: 发起请求时的 RequestOptions（可选）

    属性:
        status_code: HTTP 状态码
    """

    def __init__(
        self,
        message: str,
        request: requests.PreparedRequest | None = None,
        response: requests.Response | None = None,
        partial_body: bytes = b"",
        options: Any = None,
    ):
        super().__init__(message)
        self.request = request
        self.response = response
        self.partial_body = partial_body
        self.options = options
        self.status_code = response.status_code if response is not None else None


class APIClientNotFoundError(APIClientRequestError):
    """资源不存在异常（HTTP 404）"""


class APIClientResponseError(APIClientError):
    """
    响应内容异常基类

    HTTP 状态码表示成功，但响应信封（Content-Type、响应体）不符合预期时抛出

    参数:
        message: 错误描述信息
        response: 原始的 requests.Response 对象（可选）
    """

    def __init__(self, message: str, response: requests.Response | None = None):
        super().__init__(message)
        self.response = response


class APIClientEnvelopeError(APIClientResponseError):
    """
    响应信封异常

    当响应缺少 Content-Type，或媒体类型不是 application/json 时抛出
    """


class APIClientDecodeError(APIClientResponseError):
    """
    响应解码异常

    当响应体不是合法的 JSON 时抛出，原始解析异常保存在 __cause__ 中
    """


class APIClientResponseValidationError(APIClientResponseError):
    """
    响应验证异常

    当解码后的数据不符合结果序列化器的验证规则时抛出此异常

    属性:
        validation_result: 验证失败的详细信息
    """

    def __init__(
        self,
        message: str,
        response: requests.Response | None = None,
        validation_result: dict | None = None,
    ):
        super().__init__(message, response=response)
        self.validation_result = validation_result or {}


class RealmResolutionError(APIClientError):
    """Realm 解析异常基类"""


class NoHostConfigError(RealmResolutionError):
    """
    主机配置缺失异常

    当入站请求的主机名找不到匹配的 realm 配置时抛出

    属性:
        host: 未匹配的主机名
    """

    def __init__(self, host: str):
        super().__init__(f"No host configuration for host {host!r}")
        self.host = host


class NoRealmConfigError(RealmResolutionError):
    """
    Realm 配置缺失异常

    属性:
        realm: 未配置的 realm 名称
    """

    def __init__(self, realm: str):
        super().__init__(f"No configuration for realm {realm!r}")
        self.realm = realm


class ServiceResolutionError(APIClientError):
    """
    服务解析异常

    当请求的能力（capability）没有注册工厂函数，或参数不可绑定时抛出

    属性:
        index: 出错参数在 connect() 调用中的位置（注册表直接调用时为 None）
        capability: 出错的参数
    """

    def __init__(self, message: str, index: int | None = None, capability: Any = None):
        super().__init__(message)
        self.index = index
        self.capability = capability
