"""
registry.py 模块的单元测试

测试覆盖:
- register: 注册与覆盖
- get_factory: 精确匹配与子类匹配
- 不可绑定参数的错误
"""

import abc
import threading

import pytest

from pebbleclient.exceptions import APIClientValidationError, ServiceResolutionError
from pebbleclient.registry import Registry, capability_name


class ServiceA(abc.ABC):
    @abc.abstractmethod
    def ping(self):
        """检查服务是否可用"""


class ServiceB(abc.ABC):
    @abc.abstractmethod
    def ping(self):
        """检查服务是否可用"""


class ServiceAImpl(ServiceA):
    def __init__(self, client):
        self.client = client

    def ping(self):
        return None


class ServiceBImpl(ServiceB):
    def __init__(self, client):
        self.client = client

    def ping(self):
        return None


class TestRegistryRegister:
    """测试注册"""

    @pytest.mark.unit
    def test_register_and_get(self):
        registry = Registry()

        registry.register(ServiceA, ServiceAImpl)

        assert registry.get_factory(ServiceA) is ServiceAImpl
        assert ServiceA in registry
        assert len(registry) == 1

    @pytest.mark.unit
    def test_last_registration_wins(self):
        """测试同一能力重复注册时后注册的覆盖先注册的"""
        registry = Registry()

        def factory(client):
            return ServiceAImpl(client)

        registry.register(ServiceA, ServiceAImpl)
        registry.register(ServiceA, factory)

        assert registry.get_factory(ServiceA) is factory
        assert len(registry) == 1

    @pytest.mark.unit
    def test_register_requires_class(self):
        with pytest.raises(APIClientValidationError, match="Capability must be a class"):
            Registry().register("ServiceA", ServiceAImpl)

    @pytest.mark.unit
    def test_register_requires_callable_factory(self):
        with pytest.raises(APIClientValidationError, match="must be callable"):
            Registry().register(ServiceA, None)

    @pytest.mark.unit
    def test_concurrent_registration(self):
        """测试多线程并发注册"""
        registry = Registry()
        capabilities = [type(f"Capability{i}", (), {}) for i in range(50)]

        threads = [threading.Thread(target=registry.register, args=(c, lambda client: None)) for c in capabilities]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(registry) == 50


class TestRegistryResolve:
    """测试解析"""

    @pytest.mark.unit
    def test_subclass_match(self):
        """测试注册的实现类可以按其接口解析"""
        registry = Registry()
        registry.register(ServiceAImpl, ServiceAImpl)

        assert registry.get_factory(ServiceA) is ServiceAImpl

    @pytest.mark.unit
    def test_exact_match_wins_over_subclass(self):
        registry = Registry()

        def factory(client):
            return ServiceAImpl(client)

        registry.register(ServiceA, factory)
        registry.register(ServiceAImpl, ServiceAImpl)

        assert registry.get_factory(ServiceA) is factory

    @pytest.mark.unit
    def test_latest_subclass_wins(self):
        registry = Registry()

        class OtherImpl(ServiceA):
            def ping(self):
                return None

        registry.register(ServiceAImpl, ServiceAImpl)
        registry.register(OtherImpl, OtherImpl)

        assert registry.get_factory(ServiceA) is OtherImpl

    @pytest.mark.unit
    def test_no_match(self):
        registry = Registry()
        registry.register(ServiceA, ServiceAImpl)

        with pytest.raises(ServiceResolutionError, match="No registered service matching type") as exc_info:
            registry.get_factory(ServiceB)

        assert exc_info.value.capability is ServiceB
        assert exc_info.value.index is None

    @pytest.mark.unit
    @pytest.mark.parametrize("argument", [5, "ServiceB", ServiceBImpl(None), None])
    def test_not_bindable(self, argument):
        """测试非类参数不可绑定"""
        with pytest.raises(ServiceResolutionError, match="Argument is not bindable"):
            Registry().get_factory(argument)


class TestCapabilityName:
    @pytest.mark.unit
    def test_capability_name(self):
        assert capability_name(ServiceA) == f"{__name__}.ServiceA"
        assert capability_name(5) == "int"
