"""
HTTPClient 实际 HTTP 请求测试

测试 HTTPClient 执行 HTTP 请求的功能:
- GET/POST/PUT/DELETE/HEAD 请求
- URL 构建与路径参数
- 会话 Cookie 和 Request-Id 请求头
- 响应解码与结果类
- 终止失败与网络错误
"""

import io
import json
import logging

import pytest
import requests
import responses
from rest_framework import serializers

from pebbleclient.client import HTTPClient
from pebbleclient.exceptions import (
    APIClientDecodeError,
    APIClientEnvelopeError,
    APIClientMissingParameterError,
    APIClientNetworkError,
    APIClientNotFoundError,
    APIClientRequestError,
    APIClientResponseValidationError,
    APIClientTimeoutError,
    APIClientValidationError,
)
from pebbleclient.options import Options, RequestOptions

BASE_URL = "http://api.example.com/api/frobnitz/v1"


class UserSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    name = serializers.CharField()


class TestHTTPClientURL:
    """测试请求 URL"""

    @pytest.mark.unit
    @responses.activate
    def test_path_params_and_query(self, client):
        """测试路径参数替换，剩余参数成为查询字符串"""
        # Arrange
        responses.add(responses.GET, f"{BASE_URL}/get/drkropotkin", json={"name": "drkropotkin"})

        # Act
        result = client.get("/get/:name", RequestOptions(params={"name": "drkropotkin", "format": "json"}))

        # Assert
        assert result == {"name": "drkropotkin"}
        assert responses.calls[0].request.url == f"{BASE_URL}/get/drkropotkin?format=json"

    @pytest.mark.unit
    @responses.activate
    @pytest.mark.parametrize("path", ["/users", "users"])
    def test_leading_slash_is_optional(self, client, path):
        responses.add(responses.GET, f"{BASE_URL}/users", json=[])

        client.get(path)

        assert responses.calls[0].request.url == f"{BASE_URL}/users"

    @pytest.mark.unit
    @responses.activate
    def test_missing_path_param_sends_nothing(self, client):
        """测试路径参数缺失时不发送请求"""
        with pytest.raises(APIClientMissingParameterError) as exc_info:
            client.get("/foo/:missing")

        assert exc_info.value.key == "missing"
        assert len(responses.calls) == 0

    @pytest.mark.unit
    @responses.activate
    def test_protocol_and_version(self):
        responses.add(responses.GET, "https://secure.example.com/api/users/v2/me", json={})
        client = HTTPClient(Options(host="secure.example.com", protocol="https", service_name="users", api_version=2))

        assert client.get("/me") == {}


class TestHTTPClientHeaders:
    """测试请求头和 Cookie"""

    @pytest.mark.unit
    @responses.activate
    def test_json_content_type(self, client):
        responses.add(responses.GET, f"{BASE_URL}/users", json=[])

        client.get("/users")

        assert responses.calls[0].request.headers["Content-Type"] == "application/json; charset=utf-8"

    @pytest.mark.unit
    @responses.activate
    def test_session_cookie(self, client):
        """测试会话令牌作为 checkpoint.session Cookie 发送"""
        responses.add(responses.GET, f"{BASE_URL}/users", json=[])

        client.with_options(Options(session="42smurf99")).get("/users")

        assert responses.calls[0].request.headers["Cookie"] == "checkpoint.session=42smurf99"

    @pytest.mark.unit
    @responses.activate
    def test_no_cookie_without_session(self, client):
        responses.add(responses.GET, f"{BASE_URL}/users", json=[])

        client.get("/users")

        assert "Cookie" not in responses.calls[0].request.headers

    @pytest.mark.unit
    @responses.activate
    def test_request_id_header(self, client):
        """测试配置了请求 ID 时发送 Request-Id 请求头"""
        responses.add(responses.GET, f"{BASE_URL}/users", json=[])

        client.with_options(Options(request_id="req-42")).get("/users")

        assert responses.calls[0].request.headers["Request-Id"] == "req-42"

    @pytest.mark.unit
    @responses.activate
    def test_no_request_id_header_by_default(self, client):
        """测试未配置请求 ID 时不发送 Request-Id 请求头"""
        responses.add(responses.GET, f"{BASE_URL}/users", json=[])

        client.get("/users")

        assert "Request-Id" not in responses.calls[0].request.headers

    @pytest.mark.unit
    @responses.activate
    def test_logs_do_not_leak_session(self, client, caplog):
        """测试日志中的 Cookie 和 session 参数被脱敏"""
        responses.add(responses.GET, f"{BASE_URL}/users", json=[])

        with caplog.at_level(logging.DEBUG, logger="pebbleclient"):
            client.with_options(Options(session="42smurf99")).get(
                "/users", RequestOptions(params={"session": "42smurf99"})
            )

        assert "42smurf99" not in caplog.text
        assert "Starting GET request" in caplog.text

    @pytest.mark.unit
    @responses.activate
    def test_set_cookie_does_not_leak_between_clients(self, client):
        """测试服务端下发的 Cookie 不会被共享 Session 保存并带到其他客户端的调用中"""
        # Arrange
        responses.add(
            responses.GET,
            f"{BASE_URL}/login",
            json={},
            headers={"Set-Cookie": "checkpoint.session=alice; Path=/"},
        )
        responses.add(responses.GET, f"{BASE_URL}/users", json=[])
        alice = client.with_options(Options(session="alice"))
        bob = client.with_options(Options(session="bob"))

        # Act
        alice.get("/login")
        bob.get("/users")
        client.get("/users")

        # Assert
        assert responses.calls[1].request.headers["Cookie"] == "checkpoint.session=bob"
        assert "Cookie" not in responses.calls[2].request.headers
        assert len(client.get_options().http_session.cookies) == 0


class TestHTTPClientMethods:
    """测试各 HTTP 方法"""

    @pytest.mark.unit
    @responses.activate
    def test_post_json(self, client):
        """测试 POST 请求发送 JSON 请求体"""
        # Arrange
        responses.add(responses.POST, f"{BASE_URL}/users", json={"id": 1, "name": "bob"}, status=201)

        # Act
        result = client.post("/users", json={"name": "bob"})

        # Assert
        assert result == {"id": 1, "name": "bob"}
        assert json.loads(responses.calls[0].request.body) == {"name": "bob"}

    @pytest.mark.unit
    @responses.activate
    def test_post_raw_body(self, client):
        responses.add(responses.POST, f"{BASE_URL}/raw", json={})

        client.post("/raw", body='{"raw": true}')

        assert responses.calls[0].request.body == b'{"raw": true}'

    @pytest.mark.unit
    @responses.activate
    def test_put_file_like_body(self, client):
        responses.add(responses.PUT, f"{BASE_URL}/users/1", json={"id": 1, "name": "alice"})

        result = client.put("/users/:id", RequestOptions(params={"id": 1}), body=io.BytesIO(b'{"name": "alice"}'))

        assert result == {"id": 1, "name": "alice"}
        assert responses.calls[0].request.body == b'{"name": "alice"}'

    @pytest.mark.unit
    def test_unsupported_body(self, client):
        with pytest.raises(APIClientValidationError, match="Body must be bytes"):
            client.post("/users", body=42)

    @pytest.mark.unit
    @responses.activate
    def test_delete_no_content(self, client):
        """测试 204 响应返回 None"""
        responses.add(responses.DELETE, f"{BASE_URL}/users/1", status=204)

        assert client.delete("/users/:id", RequestOptions(params={"id": 1})) is None

    @pytest.mark.unit
    @responses.activate
    def test_head(self, client):
        responses.add(responses.HEAD, f"{BASE_URL}/users/1", status=200)

        assert client.head("/users/:id", RequestOptions(params={"id": 1})) is None
        assert responses.calls[0].request.method == "HEAD"

    @pytest.mark.unit
    @responses.activate
    def test_head_not_found(self, client):
        responses.add(responses.HEAD, f"{BASE_URL}/users/2", status=404)

        with pytest.raises(APIClientNotFoundError):
            client.head("/users/:id", RequestOptions(params={"id": 2}))


class TestHTTPClientDecoding:
    """测试响应解码"""

    @pytest.mark.unit
    @responses.activate
    @pytest.mark.parametrize("status", [s for s in range(200, 300) if s not in (204, 205)])
    def test_success_statuses_decode(self, client, status):
        """测试所有 2xx 状态码（204/205 除外）都解码响应体"""
        responses.add(responses.GET, f"{BASE_URL}/users", json={"ok": True}, status=status)

        assert client.get("/users") == {"ok": True}
        assert len(responses.calls) == 1

    @pytest.mark.unit
    @responses.activate
    @pytest.mark.parametrize("status", [204, 205])
    def test_no_body_statuses(self, client, status):
        responses.add(responses.GET, f"{BASE_URL}/users", status=status)

        assert client.get("/users") is None

    @pytest.mark.unit
    @responses.activate
    def test_zero_content_length(self, client):
        """测试声明零长度的响应返回 None"""
        responses.add(responses.GET, f"{BASE_URL}/users", body=b"", headers={"Content-Length": "0"})

        assert client.get("/users") is None

    @pytest.mark.unit
    @responses.activate
    def test_decode_false(self, client):
        """测试 decode=False 时丢弃响应体"""
        responses.add(responses.GET, f"{BASE_URL}/page", body="<html></html>", content_type="text/html")

        assert client.get("/page", decode=False) is None

    @pytest.mark.unit
    @responses.activate
    def test_html_response_fails(self, client):
        """测试 200 但 Content-Type 不是 JSON 时失败"""
        responses.add(responses.GET, f"{BASE_URL}/page", body="<html></html>", content_type="text/html")

        with pytest.raises(APIClientEnvelopeError):
            client.get("/page")

    @pytest.mark.unit
    @responses.activate
    def test_invalid_json(self, client):
        responses.add(responses.GET, f"{BASE_URL}/users", body="{not json", content_type="application/json")

        with pytest.raises(APIClientDecodeError):
            client.get("/users")

    @pytest.mark.unit
    @responses.activate
    def test_serializer_result_class(self, client):
        """测试使用 DRF Serializer 验证响应"""
        responses.add(responses.GET, f"{BASE_URL}/users/1", json={"id": "1", "name": "bob", "extra": True})

        result = client.get("/users/:id", RequestOptions(params={"id": 1}), result_class=UserSerializer)

        assert dict(result) == {"id": 1, "name": "bob"}

    @pytest.mark.unit
    @responses.activate
    def test_serializer_result_class_invalid(self, client):
        responses.add(responses.GET, f"{BASE_URL}/users/1", json={"id": "x"})

        with pytest.raises(APIClientResponseValidationError) as exc_info:
            client.get("/users/:id", RequestOptions(params={"id": 1}), result_class=UserSerializer)

        assert "name" in exc_info.value.validation_result

    @pytest.mark.unit
    @responses.activate
    def test_callable_result_class(self, client):
        responses.add(responses.GET, f"{BASE_URL}/users", json=[{"id": 1}, {"id": 2}])

        assert client.get("/users", result_class=len) == 2


class TestHTTPClientFailures:
    """测试终止失败"""

    @pytest.mark.unit
    @responses.activate
    @pytest.mark.parametrize("status", [s for s in range(400, 600) if s not in (502, 503, 504)])
    def test_terminal_statuses_are_not_retried(self, client, status):
        """测试非重试状态码只请求一次，异常携带响应体和请求选项"""
        # Arrange
        responses.add(responses.GET, f"{BASE_URL}/users", body="this failed", status=status)

        # Act
        with pytest.raises(APIClientRequestError) as exc_info:
            client.get("/users")

        # Assert
        error = exc_info.value
        assert len(responses.calls) == 1
        assert error.status_code == status
        assert error.partial_body == b"this failed"
        assert error.options.params == {}
        assert error.request.url == f"{BASE_URL}/users"

    @pytest.mark.unit
    @responses.activate
    def test_not_found(self, client):
        responses.add(responses.GET, f"{BASE_URL}/users/9", status=404)

        with pytest.raises(APIClientNotFoundError, match="failed with status 404"):
            client.get("/users/:id", RequestOptions(params={"id": 9}))

    @pytest.mark.unit
    @responses.activate
    def test_error_carries_request_options(self, client):
        params = {"id": 9, "verbose": True}
        responses.add(responses.GET, f"{BASE_URL}/users/9", status=400)

        with pytest.raises(APIClientRequestError) as exc_info:
            client.get("/users/:id", RequestOptions(params=params))

        assert exc_info.value.options.params == params

    @pytest.mark.unit
    @responses.activate
    def test_partial_body_is_truncated(self):
        """测试错误响应体被截断"""
        client = HTTPClient(Options(host="api.example.com", service_name="frobnitz"), max_body_size=16)
        responses.add(responses.GET, f"{BASE_URL}/users", body="x" * 100000, status=500)

        with pytest.raises(APIClientRequestError) as exc_info:
            client.get("/users")

        assert exc_info.value.partial_body == b"x" * 16

    @pytest.mark.unit
    @responses.activate
    def test_redirect_is_followed(self, client):
        """测试传输层跟随重定向，只对最终响应分类"""
        responses.add(responses.GET, f"{BASE_URL}/old", status=301, headers={"Location": f"{BASE_URL}/new"})
        responses.add(responses.GET, f"{BASE_URL}/new", json={"moved": True})

        assert client.get("/old") == {"moved": True}
        assert len(responses.calls) == 2


class BrokenStream(io.RawIOBase):
    """读取时连接被重置的响应体"""

    def readable(self):
        return True

    def read(self, size=-1):
        raise ConnectionResetError("connection reset by peer")


class TestHTTPClientNetworkErrors:
    """测试网络错误"""

    @pytest.mark.unit
    def test_connection_lost_while_decoding(self, client, requests_mock):
        """测试读取成功响应的响应体时连接中断，转换为网络异常"""
        requests_mock.get(f"{BASE_URL}/users", body=BrokenStream(), headers={"Content-Type": "application/json"})

        with pytest.raises(APIClientNetworkError) as exc_info:
            client.get("/users")

        assert isinstance(exc_info.value.__cause__, requests.exceptions.RequestException)
        assert requests_mock.call_count == 1

    @pytest.mark.unit
    def test_connection_lost_while_reading_error_body(self, client, requests_mock):
        """测试读取错误响应的响应体时连接中断，转换为网络异常"""
        requests_mock.get(f"{BASE_URL}/users", body=BrokenStream(), status_code=500)

        with pytest.raises(APIClientNetworkError) as exc_info:
            client.get("/users")

        assert not isinstance(exc_info.value, APIClientRequestError)
        assert isinstance(exc_info.value.__cause__, requests.exceptions.RequestException)

    @pytest.mark.unit
    def test_connection_error(self, client, requests_mock):
        """测试连接错误不重试"""
        requests_mock.get(f"{BASE_URL}/users", exc=requests.exceptions.ConnectionError("refused"))

        with pytest.raises(APIClientNetworkError) as exc_info:
            client.get("/users")

        assert not isinstance(exc_info.value, APIClientTimeoutError)
        assert isinstance(exc_info.value.__cause__, requests.exceptions.ConnectionError)
        assert requests_mock.call_count == 1

    @pytest.mark.unit
    def test_connect_timeout(self, client, requests_mock):
        requests_mock.get(f"{BASE_URL}/users", exc=requests.exceptions.ConnectTimeout)

        with pytest.raises(APIClientTimeoutError):
            client.get("/users")

        assert requests_mock.call_count == 1

    @pytest.mark.unit
    def test_read_timeout(self, client, requests_mock):
        requests_mock.get(f"{BASE_URL}/users", exc=requests.exceptions.ReadTimeout)

        with pytest.raises(APIClientTimeoutError):
            client.get("/users")

    @pytest.mark.unit
    def test_transport_timeout_is_passed(self, client, requests_mock):
        """测试传输层超时时间传给 requests"""
        requests_mock.get(f"{BASE_URL}/users", json=[], headers={"Content-Type": "application/json"})

        client.with_options(Options(timeout=3)).get("/users")

        assert requests_mock.last_request.timeout == 3


class TestHTTPClientInstrument:
    """测试埋点钩子"""

    @pytest.mark.unit
    @responses.activate
    def test_hook_called_per_attempt(self, client, mocker):
        # Arrange
        hook = mocker.Mock()
        responses.add(responses.GET, f"{BASE_URL}/users", status=503)
        responses.add(responses.GET, f"{BASE_URL}/users", json=[])

        # Act
        client.with_options(Options(instrument=hook)).get("/users")

        # Assert
        assert hook.call_count == 2
        prepared, response, error, duration = hook.call_args_list[0].args
        assert prepared.url == f"{BASE_URL}/users"
        assert response.status_code == 503
        assert error is None
        assert duration >= 0

    @pytest.mark.unit
    def test_hook_called_on_network_error(self, client, requests_mock, mocker):
        hook = mocker.Mock()
        requests_mock.get(f"{BASE_URL}/users", exc=requests.exceptions.ConnectionError)

        with pytest.raises(APIClientNetworkError):
            client.with_options(Options(instrument=hook)).get("/users")

        _, response, error, _ = hook.call_args.args
        assert response is None
        assert isinstance(error, APIClientNetworkError)

    @pytest.mark.unit
    @responses.activate
    def test_failing_hook_does_not_break_request(self, client, caplog):
        responses.add(responses.GET, f"{BASE_URL}/users", json=[1])

        def hook(*args):
            raise RuntimeError("boom")

        with caplog.at_level(logging.ERROR, logger="pebbleclient"):
            assert client.with_options(Options(instrument=hook)).get("/users") == [1]

        assert "instrument hook failed" in caplog.text
