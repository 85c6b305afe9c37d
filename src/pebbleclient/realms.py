"""
Realm 配置模块

Realm 是一个逻辑上的后端租户/环境，由规范主机名、主机别名和会话令牌组成。
Realm 配置集合在启动时加载一次，之后在进程生命周期内只读。

配置格式（JSON）:
    {
        "acme_inc": {"host": "example.com", "aliases": ["acme.example.com"], "session": "42smurf99"}
    }
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from rest_framework import serializers

from pebbleclient.exceptions import APIClientValidationError, NoRealmConfigError
from pebbleclient.options import Options
from pebbleclient.utils import strip_default_port

logger = logging.getLogger(__name__)


class RealmConfigSerializer(serializers.Serializer):
    """单个 realm 配置的验证器"""

    host = serializers.CharField()
    aliases = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    session = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_host(self, value):
        if "/" in value:
            raise serializers.ValidationError("Host must not contain a scheme or path")
        return value


@dataclass(frozen=True)
class RealmConfig:
    """
    单个 realm 的配置

    属性:
        host: 规范主机名
        aliases: 主机别名
        session: 访问该 realm 时使用的会话令牌
    """

    host: str
    aliases: tuple[str, ...] = ()
    session: str = ""

    def client_options(self) -> Options:
        """返回把客户端切换到该 realm 所需的配置覆盖"""
        return Options(host=self.host, session=self.session)


def normalize_host(host: str) -> str:
    """去掉显式的 :80 端口，使默认端口的 URL 与裸主机名匹配"""
    return strip_default_port(host)


class RealmsConfig(Mapping):
    """
    只读的 realm 配置集合，键为 realm 名称

    参数:
        realms: realm 名称到 RealmConfig 的映射
    """

    def __init__(self, realms: Mapping[str, RealmConfig] | None = None):
        self._realms = MappingProxyType(dict(realms or {}))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RealmsConfig:
        """
        从已加载的配置字典构建 realm 配置集合

        异常:
            APIClientValidationError: 配置格式不合法时抛出，errors 中按 realm 名称给出详细错误
        """
        if not isinstance(data, Mapping):
            raise APIClientValidationError("Realm configuration must be a mapping of realm name to settings")

        realms = {}
        errors = {}
        for name, settings in data.items():
            serializer = RealmConfigSerializer(data=settings)
            if not serializer.is_valid():
                errors[name] = serializer.errors
                continue
            validated = serializer.validated_data
            realms[name] = RealmConfig(
                host=validated["host"],
                aliases=tuple(validated["aliases"]),
                session=validated["session"],
            )

        if errors:
            raise APIClientValidationError("Invalid realm configuration", errors=errors)

        logger.info(f"Loaded {len(realms)} realm configurations")
        return cls(realms)

    @classmethod
    def from_json_file(cls, path: str) -> RealmsConfig:
        """从 JSON 文件加载 realm 配置集合"""
        with open(path, encoding="utf-8") as f:
            try:
                data = json.load(f)
            except ValueError as e:
                raise APIClientValidationError(f"Could not parse realm configuration {path}: {e}") from e
        return cls.from_dict(data)

    def __getitem__(self, name: str) -> RealmConfig:
        return self._realms[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._realms)

    def __len__(self) -> int:
        return len(self._realms)

    def get_realm(self, name: str) -> RealmConfig:
        """
        按名称获取 realm 配置

        异常:
            NoRealmConfigError: 未配置该 realm 时抛出
        """
        try:
            return self._realms[name]
        except KeyError:
            raise NoRealmConfigError(name) from None

    def find_by_host(self, host: str) -> RealmConfig | None:
        """
        按主机名查找 realm 配置

        先精确匹配所有 realm 的别名，再匹配规范主机名；两者都会先去掉显式的 :80 端口。
        匹配区分大小写，找不到时返回 None。
        """
        normalized = normalize_host(host)
        for config in self._realms.values():
            if normalized in {normalize_host(alias) for alias in config.aliases}:
                return config
        for config in self._realms.values():
            if normalize_host(config.host) == normalized:
                return config
        return None
