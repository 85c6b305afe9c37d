"""
通用测试 Fixture 定义

提供测试所需的 Django 配置、客户端和 realm 配置
"""

import django
import pytest
from django.conf import settings

# 配置 Django 设置（DRF 序列化器和 RequestFactory 依赖）
if not settings.configured:
    settings.configure(
        DEBUG=True,
        SECRET_KEY="test-secret-key",
        ALLOWED_HOSTS=["*"],
        USE_I18N=True,
        USE_TZ=True,
    )
    django.setup()

from django.test import RequestFactory  # noqa: E402

from pebbleclient import HTTPClient, Options, RealmConfig, RealmsConfig  # noqa: E402

API_HOST = "api.example.com"
API_PREFIX = f"http://{API_HOST}/api/frobnitz/v1"


@pytest.fixture
def api_prefix():
    """测试服务的 URL 前缀"""
    return API_PREFIX


@pytest.fixture
def client():
    """指向 api.example.com 的 frobnitz 服务客户端，不做退避等待"""
    with HTTPClient(Options(host=API_HOST, service_name="frobnitz"), backoff_factor=0) as client:
        yield client


@pytest.fixture
def realms():
    """单个 realm 的配置集合"""
    return RealmsConfig(
        {
            "acme_inc": RealmConfig(host="example.com", aliases=("acme.example.com",), session="42smurf99"),
        }
    )


@pytest.fixture
def request_factory():
    """Django RequestFactory 实例"""
    return RequestFactory()
