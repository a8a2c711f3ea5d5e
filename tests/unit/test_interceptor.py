"""
Unit tests for the gRPC server interceptor.

Tests cover:
- Token extraction from invocation metadata
- Context building from handler call details
- Allowed calls reaching the wrapped handler (all four handler kinds, async and sync)
- Denied calls aborting with the matching status code
"""

from types import SimpleNamespace
from typing import Any

import grpc
import pytest

from rpcgate.authorizer import Authorizer
from rpcgate.interceptor import AuthorizationInterceptor, extract_token, metadata_to_dict


class Aborted(Exception):
    """Raised by FakeServicerContext.abort(), as grpc.aio does."""


class FakeServicerContext:
    """Records the status a handler aborted with."""

    def __init__(self) -> None:
        self.code: grpc.StatusCode | None = None
        self.details: str | None = None

    async def abort(self, code: grpc.StatusCode, details: str = "") -> None:
        self.code = code
        self.details = details
        raise Aborted(details)


def call_details(method: str, metadata: tuple = ()) -> SimpleNamespace:
    return SimpleNamespace(method=method, invocation_metadata=metadata)


async def intercept(
    interceptor: AuthorizationInterceptor,
    handler: grpc.RpcMethodHandler,
    details: SimpleNamespace,
) -> grpc.RpcMethodHandler:
    async def continuation(handler_call_details: Any) -> grpc.RpcMethodHandler:
        return handler

    return await interceptor.intercept_service(continuation, details)


RULES = {
    "default": "$authenticated",
    "myapp.Greeter": {
        "sayHello": "admin",
        "sayHelloPublic": "$anonymous",
    },
}


@pytest.fixture
def authorizer() -> Authorizer:
    return Authorizer(RULES, get_permissions=lambda context: context.metadata.get("x-roles", "").split(","))


@pytest.fixture
def interceptor(authorizer: Authorizer) -> AuthorizationInterceptor:
    return AuthorizationInterceptor(authorizer)


# =============================================================================
# Metadata Helpers
# =============================================================================


class TestMetadataHelpers:
    """Tests for metadata_to_dict() and extract_token()."""

    def test_keys_lowercased(self) -> None:
        assert metadata_to_dict((("Authorization", "x"), ("X-Roles", "a"))) == {
            "authorization": "x",
            "x-roles": "a",
        }

    def test_none_metadata(self) -> None:
        assert metadata_to_dict(None) == {}

    def test_bearer_prefix_stripped(self) -> None:
        assert extract_token({"authorization": "Bearer abc.def"}, "authorization") == "abc.def"

    def test_raw_token(self) -> None:
        assert extract_token({"authorization": "abc"}, "Authorization") == "abc"

    def test_bytes_token(self) -> None:
        assert extract_token({"authorization": b"bearer xyz"}, "authorization") == "xyz"

    def test_missing_token(self) -> None:
        assert extract_token({}, "authorization") is None

    def test_empty_bearer_is_no_token(self) -> None:
        assert extract_token({"authorization": "Bearer "}, "authorization") is None


# =============================================================================
# Context Building
# =============================================================================


class TestBuildContext:
    """Tests for AuthorizationInterceptor.build_context()."""

    def test_identity_and_token(self, interceptor: AuthorizationInterceptor) -> None:
        context = interceptor.build_context(
            call_details("/myapp.Greeter/sayHello", (("authorization", "Bearer t"),))
        )
        assert context.properties.service_full_name == "myapp.Greeter"
        assert context.properties.method_name == "sayHello"
        assert context.token == "t"
        assert context.metadata == {"authorization": "Bearer t"}

    def test_custom_token_key(self, authorizer: Authorizer) -> None:
        interceptor = AuthorizationInterceptor(authorizer, token_metadata_key="x-api-key")
        context = interceptor.build_context(call_details("/s/m", (("x-api-key", "k"),)))
        assert context.token == "k"


# =============================================================================
# Interception
# =============================================================================


class TestInterceptService:
    """Tests for AuthorizationInterceptor.intercept_service()."""

    @pytest.mark.asyncio
    async def test_allowed_unary_call(self, interceptor: AuthorizationInterceptor) -> None:
        calls: list[Any] = []

        async def say_hello(request, context):
            calls.append(request)
            return "hello"

        handler = grpc.unary_unary_rpc_method_handler(say_hello)
        details = call_details(
            "/myapp.Greeter/sayHello",
            (("authorization", "Bearer t"), ("x-roles", "admin")),
        )

        wrapped = await intercept(interceptor, handler, details)
        result = await wrapped.unary_unary("req", FakeServicerContext())

        assert result == "hello"
        assert calls == ["req"]

    @pytest.mark.asyncio
    async def test_permission_denied(self, interceptor: AuthorizationInterceptor) -> None:
        calls: list[Any] = []

        async def say_hello(request, context):
            calls.append(request)
            return "hello"

        handler = grpc.unary_unary_rpc_method_handler(say_hello)
        details = call_details("/myapp.Greeter/sayHello", (("authorization", "Bearer t"),))
        servicer_context = FakeServicerContext()

        wrapped = await intercept(interceptor, handler, details)
        with pytest.raises(Aborted):
            await wrapped.unary_unary("req", servicer_context)

        assert servicer_context.code is grpc.StatusCode.PERMISSION_DENIED
        assert servicer_context.details == "Permission Denied"
        assert calls == []

    @pytest.mark.asyncio
    async def test_unauthenticated(self, interceptor: AuthorizationInterceptor) -> None:
        async def say_hello(request, context):
            return "hello"

        handler = grpc.unary_unary_rpc_method_handler(say_hello)
        servicer_context = FakeServicerContext()

        wrapped = await intercept(interceptor, handler, call_details("/myapp.Greeter/sayHello"))
        with pytest.raises(Aborted):
            await wrapped.unary_unary("req", servicer_context)

        assert servicer_context.code is grpc.StatusCode.UNAUTHENTICATED
        assert servicer_context.details == "Unauthenticated"

    @pytest.mark.asyncio
    async def test_anonymous_method_without_token(self, interceptor: AuthorizationInterceptor) -> None:
        async def say_hello(request, context):
            return "public hello"

        handler = grpc.unary_unary_rpc_method_handler(say_hello)
        wrapped = await intercept(interceptor, handler, call_details("/myapp.Greeter/sayHelloPublic"))

        assert await wrapped.unary_unary("req", FakeServicerContext()) == "public hello"

    @pytest.mark.asyncio
    async def test_unary_stream(self, interceptor: AuthorizationInterceptor) -> None:
        async def stream_hellos(request, context):
            for i in range(3):
                yield f"hello {i}"

        handler = grpc.unary_stream_rpc_method_handler(stream_hellos)
        details = call_details("/other.Service/stream", (("authorization", "t"),))

        wrapped = await intercept(interceptor, handler, details)
        responses = [r async for r in wrapped.unary_stream("req", FakeServicerContext())]

        assert responses == ["hello 0", "hello 1", "hello 2"]

    @pytest.mark.asyncio
    async def test_unary_stream_denied_before_first_message(
        self, interceptor: AuthorizationInterceptor
    ) -> None:
        produced: list[str] = []

        async def stream_hellos(request, context):
            produced.append("started")
            yield "hello"

        handler = grpc.unary_stream_rpc_method_handler(stream_hellos)
        servicer_context = FakeServicerContext()

        wrapped = await intercept(interceptor, handler, call_details("/other.Service/stream"))
        with pytest.raises(Aborted):
            async for _ in wrapped.unary_stream("req", servicer_context):
                pass

        assert servicer_context.code is grpc.StatusCode.UNAUTHENTICATED
        assert produced == []

    @pytest.mark.asyncio
    async def test_stream_unary(self, interceptor: AuthorizationInterceptor) -> None:
        async def collect(request_iterator, context):
            return [item async for item in request_iterator]

        async def requests():
            yield "a"
            yield "b"

        handler = grpc.stream_unary_rpc_method_handler(collect)
        details = call_details("/other.Service/collect", (("authorization", "t"),))

        wrapped = await intercept(interceptor, handler, details)
        assert await wrapped.stream_unary(requests(), FakeServicerContext()) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_stream_stream(self, interceptor: AuthorizationInterceptor) -> None:
        async def echo(request_iterator, context):
            async for item in request_iterator:
                yield item.upper()

        async def requests():
            yield "a"
            yield "b"

        handler = grpc.stream_stream_rpc_method_handler(echo)
        details = call_details("/other.Service/echo", (("authorization", "t"),))

        wrapped = await intercept(interceptor, handler, details)
        responses = [r async for r in wrapped.stream_stream(requests(), FakeServicerContext())]
        assert responses == ["A", "B"]

    @pytest.mark.asyncio
    async def test_sync_unary_handler(self, interceptor: AuthorizationInterceptor) -> None:
        def say_hello(request, context):
            return f"hello {request}"

        handler = grpc.unary_unary_rpc_method_handler(say_hello)
        details = call_details("/other.Service/sayHello", (("authorization", "t"),))

        wrapped = await intercept(interceptor, handler, details)
        assert await wrapped.unary_unary("you", FakeServicerContext()) == "hello you"

    @pytest.mark.asyncio
    async def test_sync_unary_handler_denied(self, interceptor: AuthorizationInterceptor) -> None:
        calls: list[Any] = []

        def say_hello(request, context):
            calls.append(request)
            return "hello"

        handler = grpc.unary_unary_rpc_method_handler(say_hello)
        servicer_context = FakeServicerContext()

        wrapped = await intercept(interceptor, handler, call_details("/myapp.Greeter/sayHello"))
        with pytest.raises(Aborted):
            await wrapped.unary_unary("req", servicer_context)

        assert servicer_context.code is grpc.StatusCode.UNAUTHENTICATED
        assert calls == []

    @pytest.mark.asyncio
    async def test_sync_unary_stream_handler(self, interceptor: AuthorizationInterceptor) -> None:
        def stream_hellos(request, context):
            for i in range(2):
                yield f"hello {i}"

        handler = grpc.unary_stream_rpc_method_handler(stream_hellos)
        details = call_details("/other.Service/stream", (("authorization", "t"),))

        wrapped = await intercept(interceptor, handler, details)
        responses = [r async for r in wrapped.unary_stream("req", FakeServicerContext())]
        assert responses == ["hello 0", "hello 1"]

    @pytest.mark.asyncio
    async def test_sync_stream_unary_handler(self, interceptor: AuthorizationInterceptor) -> None:
        def count(request_iterator, context):
            return len(request_iterator)

        handler = grpc.stream_unary_rpc_method_handler(count)
        details = call_details("/other.Service/count", (("authorization", "t"),))

        wrapped = await intercept(interceptor, handler, details)
        assert await wrapped.stream_unary(["a", "b", "c"], FakeServicerContext()) == 3

    @pytest.mark.asyncio
    async def test_sync_stream_stream_handler(self, interceptor: AuthorizationInterceptor) -> None:
        def echo(request_iterator, context):
            return [item.upper() for item in request_iterator]

        handler = grpc.stream_stream_rpc_method_handler(echo)
        details = call_details("/other.Service/echo", (("authorization", "t"),))

        wrapped = await intercept(interceptor, handler, details)
        responses = [r async for r in wrapped.stream_stream(["a", "b"], FakeServicerContext())]
        assert responses == ["A", "B"]

    @pytest.mark.asyncio
    async def test_unknown_method_passthrough(self, interceptor: AuthorizationInterceptor) -> None:
        async def continuation(handler_call_details):
            return None

        result = await interceptor.intercept_service(continuation, call_details("/nope/nope"))
        assert result is None
