"""
HTTP 客户端常量配置模块

定义客户端使用的常量、默认配置等
"""

# HTTP 方法常量
HTTP_METHOD_GET = "GET"
HTTP_METHOD_POST = "POST"
HTTP_METHOD_PUT = "PUT"
HTTP_METHOD_DELETE = "DELETE"
HTTP_METHOD_HEAD = "HEAD"

# 默认配置
DEFAULT_PROTOCOL = "http"  # 默认协议
DEFAULT_API_VERSION = 1  # 默认 API 版本
DEFAULT_TIMEOUT = 30  # 默认超时时间（秒）

# 请求头与 Cookie 名称
CONTENT_TYPE_HEADER = "Content-Type"
REQUEST_ID_HEADER = "Request-Id"
FORWARDED_HOST_HEADER = "X-Forwarded-Host"
SESSION_COOKIE_NAME = "checkpoint.session"
SESSION_QUERY_PARAM = "session"

# 请求体与响应体的媒体类型
JSON_CONTENT_TYPE = "application/json; charset=utf-8"
JSON_MEDIA_TYPE = "application/json"

# 重试策略配置
RETRY_STATUS_CODES = frozenset({502, 503, 504})  # 需要重试的 HTTP 状态码
NO_BODY_STATUS_CODES = frozenset({204, 205})  # 不携带响应体的状态码
RETRY_BACKOFF_FACTOR = 0.5  # 重试退避因子（秒）
RETRY_BACKOFF_MAX = 30.0  # 单次退避的最大等待时间（秒）

# 错误响应体的最大读取字节数，超过部分会被截断
MAX_ERROR_BODY_SIZE = 64 * 1024

# 读取响应体时的分块大小（字节）
DEFAULT_CHUNK_SIZE = 8192

# 连接池配置
POOL_CONNECTIONS = 100  # 连接池大小
POOL_MAXSIZE = 100  # 连接池最大连接数

DEFAULT_POOL_CONFIG = {
    "pool_connections": POOL_CONNECTIONS,  # 连接池大小
    "pool_maxsize": POOL_MAXSIZE,  # 连接池最大连接数
}

# 默认端口，主机名匹配时会去掉这些显式端口
DEFAULT_PORTS = {"http": 80, "https": 443}
