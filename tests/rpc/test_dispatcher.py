"""
Server dispatcher tests

Verifies request/notification handling and every standard error path of
``JsonRpcServer.receive``.
"""

import asyncio
import json

import pytest

from seam_jsonrpc.config import ServerConfig
from seam_jsonrpc.errors import ApplicationError, InvalidParamsError
from seam_jsonrpc.models import ErrorObject
from seam_jsonrpc.server import JsonRpcServer


def add(a: int, b: int) -> int:
    return a + b


@pytest.fixture
def logged():
    return []


@pytest.fixture
def server(logged):
    server = JsonRpcServer()
    server.bind("add", add)
    server.bind("log", lambda message: logged.append(message), notification=True)
    return server


def receive(server, payload):
    return asyncio.run(server.receive(payload))


def error_of(response_text):
    response = json.loads(response_text)
    return response["id"], response["error"]


def test_add_request(server):
    """Concrete scenario: add(2, 3)"""
    response = receive(server, '{"jsonrpc":"2.0","id":1,"method":"add","params":[2,3]}')
    assert response == '{"jsonrpc":"2.0","id":1,"result":5}'


def test_string_id_is_echoed(server):
    response = json.loads(receive(server, '{"jsonrpc":"2.0","id":"req-1","method":"add","params":[1,1]}'))
    assert response["id"] == "req-1"
    assert response["result"] == 2


def test_notification_runs_handler_without_response(server, logged):
    """Concrete scenario: log("hi") notification"""
    response = receive(server, '{"jsonrpc":"2.0","method":"log","params":["hi"]}')
    assert response is None
    assert logged == ["hi"]


def test_async_notification_handler_runs():
    seen = []
    server = JsonRpcServer()

    async def record(value):
        await asyncio.sleep(0)
        seen.append(value)

    server.bind("record", record)

    async def scenario():
        assert await server.receive('{"jsonrpc":"2.0","method":"record","params":[42]}') is None
        await asyncio.sleep(0.01)

    asyncio.run(scenario())
    assert seen == [42]


def test_parse_error(server):
    request_id, error = error_of(receive(server, '{"jsonrpc":"2.0","method":'))
    assert request_id is None
    assert error["code"] == -32700
    assert error["message"] == "Parse error"


@pytest.mark.parametrize("payload", ["[" * 100000, "{\"a\":" * 100000])
def test_deeply_nested_payload_is_parse_error(server, payload):
    request_id, error = error_of(receive(server, payload))
    assert request_id is None
    assert error["code"] == -32700


@pytest.mark.parametrize("payload, expected_id", [
    ('{"jsonrpc":"1.0","id":3,"method":"add","params":[1,2]}', 3),
    ('{"jsonrpc":"2.0","id":4,"params":[1,2]}', 4),
    ('{"jsonrpc":"2.0","id":5,"method":"","params":[]}', 5),
    ('{"jsonrpc":"2.0","id":6,"method":12}', 6),
    ('{"jsonrpc":"2.0","id":null,"method":"add","params":[1,2]}', None),
    ('{"jsonrpc":"2.0","id":{"a":1},"method":"add","params":[1,2]}', None),
    ('{"jsonrpc":"2.0","id":7,"result":1}', 7),
    ('[{"jsonrpc":"2.0","id":8,"method":"add","params":[1,2]}]', None),
    ('"just a string"', None),
])
def test_invalid_request(server, payload, expected_id):
    request_id, error = error_of(receive(server, payload))
    assert request_id == expected_id
    assert error["code"] == -32600


def test_method_not_found(server):
    request_id, error = error_of(receive(server, '{"jsonrpc":"2.0","id":9,"method":"missing","params":[]}'))
    assert request_id == 9
    assert error["code"] == -32601
    assert error["message"] == "Method not found"


def test_notification_for_unknown_method_is_silent(server):
    assert receive(server, '{"jsonrpc":"2.0","method":"missing","params":[]}') is None


@pytest.mark.parametrize("params", ['["2",3]', "[2]", '{"a":2,"b":3}', '"x"'])
def test_invalid_params(server, params):
    payload = '{"jsonrpc":"2.0","id":10,"method":"add","params":%s}' % params
    request_id, error = error_of(receive(server, payload))
    assert request_id == 10
    assert error["code"] == -32602


def test_notification_with_invalid_params_is_silent(server, logged):
    assert receive(server, '{"jsonrpc":"2.0","method":"log","params":[1,2,3]}') is None
    assert logged == []


def test_missing_params_means_no_arguments():
    server = JsonRpcServer()
    server.bind("ping", lambda: "pong")
    response = json.loads(receive(server, '{"jsonrpc":"2.0","id":1,"method":"ping"}'))
    assert response["result"] == "pong"


def test_async_request_handler():
    server = JsonRpcServer()

    async def slow_add(a: int, b: int) -> int:
        await asyncio.sleep(0)
        return a + b

    server.bind("slow_add", slow_add)
    response = json.loads(receive(server, '{"jsonrpc":"2.0","id":1,"method":"slow_add","params":[4,5]}'))
    assert response["result"] == 9


def test_application_error_is_forwarded_verbatim():
    server = JsonRpcServer()

    def withdraw(amount: int):
        raise ApplicationError(1001, "Insufficient funds", {"balance": 3})

    server.bind("withdraw", withdraw)
    request_id, error = error_of(receive(server, '{"jsonrpc":"2.0","id":2,"method":"withdraw","params":[10]}'))
    assert request_id == 2
    assert error == {"code": 1001, "message": "Insufficient funds", "data": {"balance": 3}}


def test_returned_error_object_is_forwarded():
    server = JsonRpcServer()
    server.bind("deny", lambda: ErrorObject(403, "Denied"))
    _, error = error_of(receive(server, '{"jsonrpc":"2.0","id":2,"method":"deny"}'))
    assert error == {"code": 403, "message": "Denied"}


def test_handler_raising_standard_error():
    server = JsonRpcServer()

    def strict(value: int):
        raise InvalidParamsError(data="value out of range")

    server.bind("strict", strict)
    _, error = error_of(receive(server, '{"jsonrpc":"2.0","id":2,"method":"strict","params":[1]}'))
    assert error["code"] == -32602
    assert error["data"] == "value out of range"


def test_unexpected_exception_becomes_internal_error(server):
    server.bind("explode", lambda: 1 / 0)
    request_id, error = error_of(receive(server, '{"jsonrpc":"2.0","id":3,"method":"explode"}'))
    assert request_id == 3
    assert error["code"] == -32603
    assert "ZeroDivisionError" not in json.dumps(error)


def test_internal_error_details_when_enabled():
    server = JsonRpcServer(config=ServerConfig(include_error_details=True))
    server.bind("explode", lambda: 1 / 0)
    _, error = error_of(receive(server, '{"jsonrpc":"2.0","id":3,"method":"explode"}'))
    assert error["data"].startswith("ZeroDivisionError")


def test_unencodable_result_becomes_internal_error():
    server = JsonRpcServer()
    server.bind("opaque", lambda: object())
    request_id, error = error_of(receive(server, '{"jsonrpc":"2.0","id":4,"method":"opaque"}'))
    assert request_id == 4
    assert error["code"] == -32603


def test_failing_notification_handler_is_not_reported():
    server = JsonRpcServer()
    server.bind("explode", lambda: 1 / 0)
    assert receive(server, '{"jsonrpc":"2.0","method":"explode"}') is None


def test_notification_style_binding_answers_requests_with_null(server, logged):
    response = json.loads(receive(server, '{"jsonrpc":"2.0","id":11,"method":"log","params":["x"]}'))
    assert response == {"jsonrpc": "2.0", "id": 11, "result": None}
    assert logged == ["x"]


def test_concurrent_requests_are_independent():
    server = JsonRpcServer()

    async def echo_after(value: int, delay: float) -> int:
        await asyncio.sleep(delay)
        return value

    server.bind("echo_after", echo_after)

    async def scenario():
        payloads = [
            '{"jsonrpc":"2.0","id":%d,"method":"echo_after","params":[%d,%s]}' % (i, i, 0.03 - i * 0.01)
            for i in range(3)
        ]
        return await asyncio.gather(*(server.receive(p) for p in payloads))

    responses = [json.loads(text) for text in asyncio.run(scenario())]
    assert [(r["id"], r["result"]) for r in responses] == [(0, 0), (1, 1), (2, 2)]


@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_result_becomes_internal_error(value):
    server = JsonRpcServer()
    server.bind("measure", lambda: value)
    request_id, error = error_of(receive(server, '{"jsonrpc":"2.0","id":5,"method":"measure"}'))
    assert request_id == 5
    assert error["code"] == -32603
