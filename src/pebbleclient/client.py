"""HTTP 客户端核心模块

提供面向版本化、多租户 JSON/HTTP API 的客户端，支持：
- 端点 URL 构建与路径参数替换
- 不可变配置的逐级合并（客户端默认值 -> realm -> 单次调用）
- 瞬时故障（502/503/504）的指数退避重试，受调用上下文控制
- 响应分类与严格的 JSON 信封校验
- 从入站请求继承主机、协议、会话和请求 ID

单次调用的状态流转:
    Building -> Sent -> {Decoding | Retrying | Failed} -> Done
"""

from __future__ import annotations

import contextlib
import json
import logging
import random
import time
import uuid
from typing import Any

import requests

from pebbleclient.classifier import ResponseClass, classify, yields_body
from pebbleclient.constants import (
    CONTENT_TYPE_HEADER,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_POOL_CONFIG,
    DEFAULT_TIMEOUT,
    HTTP_METHOD_DELETE,
    HTTP_METHOD_GET,
    HTTP_METHOD_HEAD,
    HTTP_METHOD_POST,
    HTTP_METHOD_PUT,
    JSON_CONTENT_TYPE,
    MAX_ERROR_BODY_SIZE,
    REQUEST_ID_HEADER,
    RETRY_BACKOFF_FACTOR,
    RETRY_BACKOFF_MAX,
    SESSION_COOKIE_NAME,
)
from pebbleclient.context import RequestContext
from pebbleclient.exceptions import (
    APIClientNetworkError,
    APIClientNotFoundError,
    APIClientRequestError,
    APIClientTimeoutError,
    APIClientValidationError,
)
from pebbleclient.formatter import format_endpoint_url
from pebbleclient.inbound import InboundRequest
from pebbleclient.options import Options, RequestOptions
from pebbleclient.parser import convert_result, decode_json_response
from pebbleclient.utils import DEFAULT_SENSITIVE_HEADERS, DEFAULT_SENSITIVE_PARAMS, sanitize_headers, sanitize_url

# 配置日志
logger = logging.getLogger(__name__)


def compute_backoff(attempt: int, factor: float, maximum: float) -> float:
    """
    计算第 attempt 次重试前的等待时间（带完全抖动的指数退避）

    等待时间在 [0, min(maximum, factor * 2 ** attempt)] 之间均匀分布
    """
    ceiling = min(maximum, factor * (2 ** min(attempt, 32)))
    return random.uniform(0, ceiling)


class HTTPClient:
    """
    API 客户端

    类属性:
        default_timeout: 默认传输层超时时间（秒）
        backoff_factor: 重试退避因子（秒）
        backoff_max: 单次退避的最大等待时间（秒）
        max_body_size: 错误响应体的最大保留字节数
        pool_config: 连接池配置字典
        enable_sanitization: 日志中是否脱敏 URL 和请求头
        sensitive_headers: 敏感请求头名称集合
        sensitive_params: 敏感 URL 参数名称集合
    """

    # ========== 超时和重试配置 ==========
    # 默认请求超时时间（秒），防止请求无限期挂起
    default_timeout: float = DEFAULT_TIMEOUT

    # 重试退避因子，第 n 次重试前最多等待 backoff_factor * 2 ** n 秒
    backoff_factor: float = RETRY_BACKOFF_FACTOR

    # 单次退避的最大等待时间（秒）
    backoff_max: float = RETRY_BACKOFF_MAX

    # 错误响应体的最大保留字节数，超过部分会被截断
    max_body_size: int = MAX_ERROR_BODY_SIZE

    # 连接池配置字典，仅在自动创建 requests.Session 时使用
    pool_config: dict[str, Any] = DEFAULT_POOL_CONFIG

    # ========== 安全性配置 ==========
    # 是否启用敏感信息脱敏，默认启用以提高安全性
    enable_sanitization: bool = True

    # 敏感请求头名称集合，这些头在日志中会被脱敏
    sensitive_headers: set[str] = DEFAULT_SENSITIVE_HEADERS

    # 敏感 URL 参数名称集合，这些参数在日志中会被脱敏
    sensitive_params: set[str] = DEFAULT_SENSITIVE_PARAMS

    def __init__(
        self,
        options: Options | None = None,
        validate: bool = True,
        timeout: float | None = None,
        backoff_factor: float | None = None,
        backoff_max: float | None = None,
        max_body_size: int | None = None,
        pool_config: dict[str, Any] | None = None,
    ):
        """
        初始化 API 客户端实例

        参数:
            options: 服务端点配置
            validate: 是否在构造时校验 host 和 service_name（调用时总会校验）
            timeout: 默认传输层超时时间（秒），options.timeout 优先
            backoff_factor: 重试退避因子（覆盖类级别配置）
            backoff_max: 单次退避的最大等待时间（覆盖类级别配置）
            max_body_size: 错误响应体的最大保留字节数（覆盖类级别配置）
            pool_config: 连接池配置字典（覆盖类级别配置）

        异常:
            APIClientValidationError: validate 为 True 且 host 或 service_name 未设置时抛出
        """
        self.default_timeout = timeout if timeout is not None else self.default_timeout
        self.backoff_factor = backoff_factor if backoff_factor is not None else self.backoff_factor
        self.backoff_max = backoff_max if backoff_max is not None else self.backoff_max
        self.max_body_size = max_body_size if max_body_size is not None else self.max_body_size
        self.pool_config = {**self.pool_config, **(pool_config or {})}
        self.validate = validate

        # 合并顺序：客户端默认超时 -> 传入配置 -> 默认值
        self.options = Options(timeout=self.default_timeout).merge(options).apply_defaults(self.pool_config)
        if validate:
            self.options.validate()

    # ========== 派生客户端 ==========

    def get_options(self) -> Options:
        """返回客户端当前的配置"""
        return self.options

    def with_options(self, options: Options) -> HTTPClient:
        """
        返回使用新配置的客户端，只有 options 中的非空字段会覆盖当前配置

        新客户端与当前客户端共享 requests.Session（连接池）
        """
        return self.__class__(
            self.options.merge(options),
            validate=self.validate,
            timeout=self.default_timeout,
            backoff_factor=self.backoff_factor,
            backoff_max=self.backoff_max,
            max_body_size=self.max_body_size,
            pool_config=self.pool_config,
        )

    def from_http_request(self, request: Any) -> HTTPClient:
        """
        返回从入站请求继承主机、协议、会话和请求 ID 的客户端

        参数:
            request: Django HttpRequest 或 WSGI environ 字典

        从请求推断出的非空值会覆盖客户端当前配置
        """
        inbound = InboundRequest.from_request(request)
        return self.with_options(
            Options(
                host=inbound.host,
                protocol=inbound.scheme,
                session=inbound.session,
                request_id=inbound.request_id,
            )
        )

    # ========== 公共请求方法 ==========

    def get(
        self,
        path: str,
        options: RequestOptions | None = None,
        decode: bool = True,
        result_class: Any = None,
    ) -> Any:
        """执行 GET 请求，返回解码后的响应数据"""
        return self.request(HTTP_METHOD_GET, path, options, decode=decode, result_class=result_class)

    def head(self, path: str, options: RequestOptions | None = None) -> None:
        """执行 HEAD 请求，只用于确认资源不返回错误"""
        self.request(HTTP_METHOD_HEAD, path, options, decode=False)

    def delete(
        self,
        path: str,
        options: RequestOptions | None = None,
        decode: bool = True,
        result_class: Any = None,
    ) -> Any:
        """执行 DELETE 请求，返回解码后的响应数据"""
        return self.request(HTTP_METHOD_DELETE, path, options, decode=decode, result_class=result_class)

    def post(
        self,
        path: str,
        options: RequestOptions | None = None,
        body: Any = None,
        json: Any = None,
        decode: bool = True,
        result_class: Any = None,
    ) -> Any:
        """执行 POST 请求，body 为原始请求体，json 为需要序列化的对象"""
        return self.request(
            HTTP_METHOD_POST, path, options, body=body, json=json, decode=decode, result_class=result_class
        )

    def put(
        self,
        path: str,
        options: RequestOptions | None = None,
        body: Any = None,
        json: Any = None,
        decode: bool = True,
        result_class: Any = None,
    ) -> Any:
        """执行 PUT 请求，body 为原始请求体，json 为需要序列化的对象"""
        return self.request(
            HTTP_METHOD_PUT, path, options, body=body, json=json, decode=decode, result_class=result_class
        )

    def request(
        self,
        method: str,
        path: str,
        options: RequestOptions | None = None,
        body: Any = None,
        json: Any = None,
        decode: bool = True,
        result_class: Any = None,
    ) -> Any:
        """
        执行一次逻辑调用（可能包含多次重试）

        参数:
            method: HTTP 方法
            path: 路径模板，如 "/users/:id"
            options: 请求选项，路径参数和查询参数都从 options.params 中获取
            body: 原始请求体（bytes、str 或类文件对象）
            json: 需要序列化为 JSON 的请求体，与 body 二选一
            decode: 是否解码响应体，False 时响应体被丢弃并返回 None
            result_class: 解码后数据的结果类，详见 parser.convert_result

        返回:
            解码（并转换）后的响应数据；204/205、零长度响应或 decode=False 时返回 None

        执行步骤:
            1. 校验配置并构建 URL（路径参数缺失时立即失败）
            2. 构建并发送请求，网络错误立即失败，不重试
            3. 成功响应：按需解码
            4. 502/503/504：按指数退避等待后重试，直到成功、遇到其他状态码或上下文结束
            5. 其他状态码：抛出携带截断响应体的 APIClientRequestError

        异常:
            APIClientValidationError: 配置无效
            APIClientMissingParameterError: 路径参数缺失
            APIClientNetworkError / APIClientTimeoutError: 网络错误或超时
            APIClientCancelledError: 调用上下文被取消
            APIClientRequestError: HTTP 错误状态码
            APIClientEnvelopeError / APIClientDecodeError: 响应信封或 JSON 无效
        """
        opts = self.options
        opts.validate()
        method = method.upper()
        request_options = options or RequestOptions()

        # ========== 步骤1: Building ==========
        url = format_endpoint_url(opts, path, request_options.params)
        data = self._prepare_body(body, json)
        ctx = opts.ctx or RequestContext.background()
        request_id = opts.request_id or self.generate_request_id()

        attempt = 0
        while True:
            prepared = self._build_request(method, url, data)

            # ========== 步骤2: Sent ==========
            response = self._send(request_id, prepared, ctx)
            try:
                outcome = classify(response.status_code)

                # ========== 步骤3: Decoding ==========
                if outcome is ResponseClass.SUCCESS:
                    if not decode or method == HTTP_METHOD_HEAD or not yields_body(response.status_code):
                        return None
                    logger.debug(f"[{request_id}] Decoding response body")
                    with self._reading_body(request_id, prepared):
                        data = decode_json_response(response)
                    return convert_result(data, result_class, response)

                with self._reading_body(request_id, prepared):
                    partial_body = self._read_partial_body(response)
                error = self._request_error(prepared, response, partial_body, request_options)

                # ========== 步骤5: Failed ==========
                if outcome is ResponseClass.TERMINAL_FAILURE:
                    logger.error(f"[{request_id}] Request failed: {error}")
                    raise error
            finally:
                self._release(request_id, response)

            # ========== 步骤4: Retrying ==========
            delay = compute_backoff(attempt, self.backoff_factor, self.backoff_max)
            attempt += 1
            logger.warning(
                f"[{request_id}] Received {response.status_code}, retrying in {delay:.2f}s (attempt {attempt})"
            )
            if ctx.wait(delay):
                logger.error(f"[{request_id}] Giving up after {attempt} attempts: {error}")
                raise error from ctx.error()

    # ========== 内部方法 ==========

    def generate_request_id(self) -> str:
        """生成全局唯一的请求 ID，仅用于日志追踪"""
        timestamp = int(time.time() * 1000)  # 毫秒级时间戳
        short_uuid = uuid.uuid4().hex[:8]
        return f"REQ-{timestamp}-{short_uuid}"

    def _safe_url(self, url: str) -> str:
        if self.enable_sanitization:
            return sanitize_url(url, self.sensitive_params)
        return url

    def _prepare_body(self, body: Any, json_data: Any) -> bytes | None:
        """
        把请求体统一转换为 bytes，类文件对象只读取一次以便重试时重新发送

        异常:
            APIClientValidationError: 请求体类型不受支持时抛出
        """
        if json_data is not None:
            return json.dumps(json_data).encode("utf-8")
        if body is None:
            return None
        if hasattr(body, "read"):
            body = body.read()
        if isinstance(body, str):
            return body.encode("utf-8")
        if isinstance(body, (bytes, bytearray)):
            return bytes(body)
        raise APIClientValidationError(f"Body must be bytes, str or a file-like object, got {type(body).__name__}")

    def _build_request(self, method: str, url: str, data: bytes | None) -> requests.PreparedRequest:
        """构建请求：JSON Content-Type、可选的 Request-Id 请求头和会话 Cookie"""
        opts = self.options
        headers = {CONTENT_TYPE_HEADER: JSON_CONTENT_TYPE}
        if opts.request_id:
            headers[REQUEST_ID_HEADER] = opts.request_id
        cookies = {SESSION_COOKIE_NAME: opts.session} if opts.session else None

        request = requests.Request(method=method, url=url, headers=headers, data=data, cookies=cookies)
        return opts.http_session.prepare_request(request)

    def _send(
        self, request_id: str, prepared: requests.PreparedRequest, ctx: RequestContext
    ) -> requests.Response:
        """
        在调用上下文中发送请求

        传输层超时不超过上下文的剩余时间；网络错误转换为客户端异常且不重试

        异常:
            APIClientCancelledError / APIClientTimeoutError: 上下文已结束
            APIClientNetworkError: 网络连接错误
        """
        opts = self.options
        if ctx.done():
            error = ctx.error()
            logger.error(f"[{request_id}] Request not sent: {error}")
            raise error

        timeout = opts.timeout
        remaining = ctx.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining) if timeout else remaining

        safe_url = self._safe_url(prepared.url)
        logger.info(f"[{request_id}] Starting {prepared.method} request to {safe_url}")
        if logger.isEnabledFor(logging.DEBUG):
            headers = dict(prepared.headers)
            if self.enable_sanitization:
                headers = sanitize_headers(headers, self.sensitive_headers)
            logger.debug(f"[{request_id}] Request headers: {headers}")

        start = time.monotonic()
        try:
            response = opts.http_session.send(prepared, stream=True, timeout=timeout)
        except requests.exceptions.Timeout as e:
            # 情况1: 超时异常
            error = APIClientTimeoutError(f"Request to {safe_url} timed out after {timeout}s")
            self._instrument(request_id, prepared, None, error, time.monotonic() - start)
            logger.error(f"[{request_id}] Request failed: {error}")
            raise error from e
        except requests.exceptions.RequestException as e:
            # 情况2: 其他网络异常（连接失败、DNS 解析失败等）
            error = APIClientNetworkError(f"Request to {safe_url} failed: {e}")
            self._instrument(request_id, prepared, None, error, time.monotonic() - start)
            logger.error(f"[{request_id}] Request failed: {error}")
            raise error from e

        self._instrument(request_id, prepared, response, None, time.monotonic() - start)
        logger.info(f"[{request_id}] Received {response.status_code} response")
        return response

    def _instrument(
        self,
        request_id: str,
        prepared: requests.PreparedRequest,
        response: requests.Response | None,
        error: Exception | None,
        duration: float,
    ) -> None:
        """调用埋点钩子，钩子自身的异常只记录日志"""
        hook = self.options.instrument
        if hook is None:
            return
        try:
            hook(prepared, response, error, duration)
        except Exception:
            logger.exception(f"[{request_id}] instrument hook failed")

    @contextlib.contextmanager
    def _reading_body(self, request_id: str, prepared: requests.PreparedRequest):
        """
        读取流式响应体时的网络异常转换

        响应头到达后 _send 即返回，响应体中途断开的连接在这里转换为客户端异常，不重试
        """
        try:
            yield
        except requests.exceptions.Timeout as e:
            error = APIClientTimeoutError(f"Reading response from {self._safe_url(prepared.url)} timed out")
            logger.error(f"[{request_id}] Request failed: {error}")
            raise error from e
        except requests.exceptions.RequestException as e:
            error = APIClientNetworkError(f"Reading response from {self._safe_url(prepared.url)} failed: {e}")
            logger.error(f"[{request_id}] Request failed: {error}")
            raise error from e

    def _read_partial_body(self, response: requests.Response) -> bytes:
        """读取最多 max_body_size 字节的响应体，超出部分截断"""
        buffer = bytearray()
        for chunk in response.iter_content(chunk_size=DEFAULT_CHUNK_SIZE):
            buffer.extend(chunk)
            if len(buffer) >= self.max_body_size:
                break
        return bytes(buffer[: self.max_body_size])

    def _release(self, request_id: str, response: requests.Response) -> None:
        """读完并关闭响应体，使底层连接可以复用"""
        try:
            for _ in response.iter_content(chunk_size=DEFAULT_CHUNK_SIZE):
                pass
        except requests.exceptions.StreamConsumedError:
            # 响应体已被完整读取
            pass
        except requests.exceptions.RequestException as e:
            logger.debug(f"[{request_id}] Could not drain response body: {e}")
        finally:
            response.close()

    def _request_error(
        self,
        prepared: requests.PreparedRequest,
        response: requests.Response,
        partial_body: bytes,
        options: RequestOptions,
    ) -> APIClientRequestError:
        error_class = APIClientNotFoundError if response.status_code == 404 else APIClientRequestError
        return error_class(
            f"Request to {self._safe_url(prepared.url)} failed with status {response.status_code}: {response.reason}",
            request=prepared,
            response=response,
            partial_body=partial_body,
            options=options,
        )

    def close(self):
        """
        关闭 requests.Session，释放连接池资源

        注意: 由 with_options() 派生的客户端共享同一个 Session
        """
        if self.options.http_session:
            self.options.http_session.close()
            logger.info("Session closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
