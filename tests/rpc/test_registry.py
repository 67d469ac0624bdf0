"""
Method registry tests

Binding policy, lookup, parameter decoding and API reflection.
"""

import threading
from typing import List

import pytest

from seam_jsonrpc.codec import JsonCodec
from seam_jsonrpc.errors import DuplicateMethodError, InvalidParamsError
from seam_jsonrpc.registry import MethodRegistry, return_type, returns_none, rpc_method


def add(a: int, b: int) -> int:
    return a + b


class CalculatorApi:
    def add(self, a: int, b: int) -> int:
        return a + b

    @rpc_method("calc/negate")
    def negate(self, value: int) -> int:
        return -value

    def reset(self) -> None:
        pass

    def _private(self):
        pass


@pytest.fixture
def registry():
    return MethodRegistry()


def test_bind_and_resolve(registry):
    binding = registry.bind("add", add)
    assert registry.resolve("add") is binding
    assert binding.name == "add"
    assert "add" in registry
    assert len(registry) == 1


def test_resolve_unknown_returns_none(registry):
    assert registry.resolve("missing") is None


def test_duplicate_bind_is_rejected(registry):
    registry.bind("add", add)
    with pytest.raises(DuplicateMethodError):
        registry.bind("add", lambda a, b: a - b)
    assert registry.resolve("add").handler is add


def test_rebind_replaces(registry):
    registry.bind("add", add)
    replacement = registry.rebind("add", lambda a, b: 0)
    assert registry.resolve("add") is replacement


def test_unbind(registry):
    registry.bind("add", add)
    registry.unbind("add")
    registry.unbind("add")  # absent: no-op
    assert registry.resolve("add") is None


def test_bind_validates_arguments(registry):
    with pytest.raises(ValueError):
        registry.bind("", add)
    with pytest.raises(TypeError):
        registry.bind("add", 42)


def test_decode_params_from_annotations(registry):
    binding = registry.bind("add", add)
    codec = JsonCodec()
    assert binding.decode_params([2, 3], codec) == [2, 3]
    with pytest.raises(InvalidParamsError):
        binding.decode_params(["2", 3], codec)
    with pytest.raises(InvalidParamsError):
        binding.decode_params([2], codec)
    with pytest.raises(InvalidParamsError):
        binding.decode_params([1, 2, 3], codec)


def test_decode_params_requires_array(registry):
    binding = registry.bind("add", add)
    with pytest.raises(InvalidParamsError):
        binding.decode_params({"a": 1, "b": 2}, JsonCodec())


def test_decode_params_explicit_types(registry):
    binding = registry.bind("sum", lambda values: sum(values), param_types=[List[int]])
    assert binding.decode_params([[1, 2, 3]], JsonCodec()) == [[1, 2, 3]]
    with pytest.raises(InvalidParamsError):
        binding.decode_params([], JsonCodec())


def test_decode_params_defaults_and_varargs(registry):
    def greet(name: str, punctuation: str = "!", *extra: int):
        return name

    binding = registry.bind("greet", greet)
    codec = JsonCodec()
    assert binding.decode_params(["a"], codec) == ["a"]
    assert binding.decode_params(["a", "?", 1, 2], codec) == ["a", "?", 1, 2]
    with pytest.raises(InvalidParamsError):
        binding.decode_params(None, codec)
    with pytest.raises(InvalidParamsError):
        binding.decode_params(["a", "?", "x"], codec)


def test_bind_api(registry):
    names = registry.bind_api(CalculatorApi(), prefix="v1.")
    assert sorted(names) == ["v1.add", "v1.calc/negate", "v1.reset"]
    assert registry.resolve("v1.reset").is_notification
    assert not registry.resolve("v1.add").is_notification
    assert registry.resolve("v1.calc/negate").handler(4) == -4


def test_return_annotations():
    assert returns_none(CalculatorApi.reset)
    assert not returns_none(CalculatorApi.add)
    assert return_type(CalculatorApi.add) is int
    assert return_type(CalculatorApi.reset) is None


def test_concurrent_binds_keep_every_binding(registry):
    def bind_many(offset):
        for i in range(100):
            registry.bind(f"m{offset}_{i}", add)

    threads = [threading.Thread(target=bind_many, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(registry) == 400


def test_bind_api_is_all_or_nothing(registry):
    registry.bind("v1.reset", lambda: None)

    with pytest.raises(DuplicateMethodError):
        registry.bind_api(CalculatorApi(), prefix="v1.")

    assert registry.names() == ["v1.reset"]
