"""
连接器模块

Connector 把 realm 配置、服务注册表和客户端组合在一起:
    - with_realm() / with_request() 返回绑定到某个 realm 的新连接器（共享注册表和 realm 配置）
    - connect() 用当前连接器的客户端实例化已注册的服务

使用示例:
    >>> realms = RealmsConfig.from_json_file("realms.json")
    >>> connector = Connector(realms, Options(service_name="users"))
    >>> connector.register(UserService, lambda client: HTTPUserService(client))
    >>>
    >>> # 在 Django 视图中
    >>> def profile(request):
    ...     user_service, = connector.with_request(request).connect(UserService)
    ...     return JsonResponse(user_service.me())
"""

from __future__ import annotations

import logging
from typing import Any

from pebbleclient.client import HTTPClient
from pebbleclient.exceptions import NoHostConfigError, ServiceResolutionError
from pebbleclient.inbound import InboundRequest
from pebbleclient.options import Options
from pebbleclient.realms import RealmConfig, RealmsConfig
from pebbleclient.registry import Registry, ServiceFactory, capability_name

logger = logging.getLogger(__name__)


class Connector:
    """
    Realm 感知的服务连接器

    参数:
        realms: realm 配置集合
        options: 客户端的基础配置（通常只包含 service_name 等与 realm 无关的字段）
        registry: 服务注册表，默认新建
        client: 已有的客户端实例，提供时忽略 options
    """

    client_class: type[HTTPClient] = HTTPClient

    def __init__(
        self,
        realms: RealmsConfig,
        options: Options | None = None,
        registry: Registry | None = None,
        client: HTTPClient | None = None,
    ):
        self.realms = realms
        self.registry = registry if registry is not None else Registry()
        # 未绑定 realm 时 host 可能为空，调用时才校验
        self.client = client if client is not None else self.client_class(options, validate=False)

    def register(self, capability: type, factory: ServiceFactory) -> None:
        """注册能力的工厂函数，详见 Registry.register"""
        self.registry.register(capability, factory)

    def _with_realm_config(self, config: RealmConfig, overrides: Options | None = None) -> Connector:
        client = self.client.with_options(config.client_options().merge(overrides))
        return self.__class__(self.realms, registry=self.registry, client=client)

    def with_realm(self, name: str) -> Connector:
        """
        返回绑定到指定 realm 的新连接器

        异常:
            NoRealmConfigError: 未配置该 realm 时抛出
        """
        config = self.realms.get_realm(name)
        logger.debug(f"Scoping connector to realm {name!r} ({config.host})")
        return self._with_realm_config(config)

    def with_request(self, request: Any) -> Connector:
        """
        返回从入站请求推断 realm 的新连接器

        参数:
            request: Django HttpRequest 或 WSGI environ 字典

        执行步骤:
            1. 推断主机名（X-Forwarded-Host 的最后一个值，否则为请求的 Host）
            2. 按主机名查找 realm 配置
            3. 使用 realm 的主机名和会话；realm 没有配置会话时继承请求的会话
            4. 继承请求的 Request-Id

        异常:
            NoHostConfigError: 主机名没有匹配的 realm 配置时抛出
        """
        inbound = InboundRequest.from_request(request)
        config = self.realms.find_by_host(inbound.host)
        if config is None:
            logger.warning(f"No realm configured for host {inbound.host!r}")
            raise NoHostConfigError(inbound.host)

        overrides = Options(request_id=inbound.request_id, session="" if config.session else inbound.session)
        return self._with_realm_config(config, overrides)

    def connect(self, *capabilities: type) -> list[Any]:
        """
        按顺序实例化多个服务

        参数:
            *capabilities: 已注册的能力接口类

        返回:
            与参数顺序一致的服务实例列表，没有参数时返回空列表

        异常:
            ServiceResolutionError: 第一个无法解析的参数，index 为其位置
        """
        services = []
        for i, capability in enumerate(capabilities):
            try:
                factory = self.registry.get_factory(capability)
            except ServiceResolutionError as e:
                raise ServiceResolutionError(
                    f"Could not get service for argument {i}: {e}", index=i, capability=capability
                ) from e

            service = factory(self.client)
            if not isinstance(service, capability):
                raise ServiceResolutionError(
                    f"Could not get service for argument {i}: factory returned {type(service).__name__}, "
                    f"which does not implement {capability_name(capability)}",
                    index=i,
                    capability=capability,
                )
            services.append(service)
        return services
