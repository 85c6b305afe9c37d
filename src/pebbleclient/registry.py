"""
服务注册表模块

把抽象能力（capability，通常是一个 abc.ABC 接口类）映射到工厂函数。
工厂函数接收一个客户端实例，返回实现该能力的服务实例。

匹配规则:
    1. 请求的能力与注册的能力完全相同
    2. 否则选择注册的能力中是请求能力子类的那一个（后注册的优先）

同一能力重复注册时，后注册的覆盖先注册的。

使用示例:
    >>> class UserService(abc.ABC):
    ...     @abc.abstractmethod
    ...     def ping(self): ...
    >>>
    >>> registry = Registry()
    >>> registry.register(UserService, lambda client: HTTPUserService(client))
    >>> factory = registry.get_factory(UserService)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from pebbleclient.exceptions import APIClientValidationError, ServiceResolutionError

logger = logging.getLogger(__name__)

ServiceFactory = Callable[[Any], Any]


def capability_name(capability: Any) -> str:
    if isinstance(capability, type):
        return f"{capability.__module__}.{capability.__qualname__}"
    return type(capability).__name__


class Registry:
    """
    能力到工厂函数的注册表

    注册和解析都在锁内完成，可以在多个线程中同时使用；
    通常在启动阶段完成全部注册，之后只做解析。
    """

    def __init__(self):
        self._services: dict[type, ServiceFactory] = {}
        self._lock = threading.RLock()

    def register(self, capability: type, factory: ServiceFactory) -> None:
        """
        注册能力的工厂函数

        参数:
            capability: 能力接口类
            factory: 工厂函数，签名为 factory(client) -> service

        异常:
            APIClientValidationError: capability 不是类或 factory 不可调用时抛出
        """
        if not isinstance(capability, type):
            raise APIClientValidationError(f"Capability must be a class, got {type(capability).__name__}")
        if not callable(factory):
            raise APIClientValidationError(f"Factory for {capability_name(capability)} must be callable")

        with self._lock:
            # 重新插入以保证后注册的能力排在最后
            self._services.pop(capability, None)
            self._services[capability] = factory
        logger.debug(f"Registered service factory for {capability_name(capability)}")

    def get_factory(self, capability: Any) -> ServiceFactory:
        """
        查找能力对应的工厂函数

        异常:
            ServiceResolutionError: 参数不是类，或没有匹配的注册项时抛出
        """
        if not isinstance(capability, type):
            raise ServiceResolutionError(
                f"Argument is not bindable: expected a capability class, got {type(capability).__name__}",
                capability=capability,
            )

        with self._lock:
            factory = self._services.get(capability)
            if factory is not None:
                return factory
            for registered, factory in reversed(self._services.items()):
                if issubclass(registered, capability):
                    return factory

        raise ServiceResolutionError(
            f"No registered service matching type {capability_name(capability)}", capability=capability
        )

    def __contains__(self, capability: Any) -> bool:
        with self._lock:
            return capability in self._services

    def __len__(self) -> int:
        with self._lock:
            return len(self._services)
