"""
响应解析器模块

校验响应信封（Content-Length、Content-Type）并把 JSON 响应体解码为 Python 对象，
可选地再通过结果类（DRF Serializer 或任意可调用对象）转换解码后的数据
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from django.utils.http import parse_header_parameters
from rest_framework import serializers

from pebbleclient.constants import CONTENT_TYPE_HEADER, JSON_MEDIA_TYPE
from pebbleclient.exceptions import (
    APIClientDecodeError,
    APIClientEnvelopeError,
    APIClientResponseValidationError,
)

logger = logging.getLogger(__name__)


def parse_media_type(content_type: str) -> tuple[str, dict[str, str]]:
    """
    解析 Content-Type 头，返回 (小写的媒体类型, 参数字典)

    参数值支持带转义引号的 quoted-string

    异常:
        ValueError: 媒体类型不是 type/subtype 形式时抛出
    """
    media_type, params = parse_header_parameters(content_type)
    main, _, sub = media_type.partition("/")
    if not main or not sub or any(c.isspace() or c in "/\"" for c in main + sub):
        raise ValueError(f"invalid media type {media_type!r}")
    return media_type, params


def has_empty_body(response: requests.Response) -> bool:
    """响应是否声明了零长度的响应体"""
    return response.headers.get("Content-Length") == "0"


def decode_json_response(response: requests.Response) -> Any:
    """
    校验响应信封并解码 JSON 响应体

    参数:
        response: HTTP 响应对象

    返回:
        解码后的数据；响应声明零长度时返回 None

    异常:
        APIClientEnvelopeError: 缺少 Content-Type，或媒体类型不是 application/json
        APIClientDecodeError: 响应体不是合法的 JSON
        requests.RequestException: 读取响应体时连接中断（由客户端转换为网络异常）
    """
    if has_empty_body(response):
        logger.debug("Response declared zero content length, nothing to decode")
        return None

    content_type = response.headers.get(CONTENT_TYPE_HEADER)
    if not content_type:
        raise APIClientEnvelopeError("Expected response to be JSON, received bytes", response=response)

    try:
        media_type, _ = parse_media_type(content_type)
    except ValueError as e:
        raise APIClientEnvelopeError(f"Invalid content type {content_type!r}: {e}", response=response) from e
    if media_type != JSON_MEDIA_TYPE:
        raise APIClientEnvelopeError(f"Expected response to be JSON, got {media_type!r}", response=response)

    logger.debug("Parsing response as JSON")
    try:
        return response.json()
    except requests.exceptions.JSONDecodeError as e:
        raise APIClientDecodeError(f"Could not decode response JSON: {e}", response=response) from e


def convert_result(data: Any, result_class: Any, response: requests.Response | None = None) -> Any:
    """
    使用结果类转换解码后的数据

    参数:
        data: 解码后的 JSON 数据
        result_class: None 时原样返回；DRF Serializer 子类时返回验证后的数据；
            其他可调用对象时返回 result_class(data)
        response: 原始响应，用于异常信息

    异常:
        APIClientResponseValidationError: DRF Serializer 验证失败时抛出
    """
    if result_class is None or data is None:
        return data

    if isinstance(result_class, type) and issubclass(result_class, serializers.BaseSerializer):
        serializer = result_class(data=data, many=isinstance(data, list))
        if not serializer.is_valid():
            raise APIClientResponseValidationError(
                "Response data failed validation", response=response, validation_result=serializer.errors
            )
        return serializer.validated_data

    return result_class(data)
