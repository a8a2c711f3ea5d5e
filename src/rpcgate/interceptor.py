"""
gRPC server adapter for rpcgate.

AuthorizationInterceptor plugs an Authorizer into a ``grpc.aio`` server:

    authorizer = Authorizer(rules_file="access-rules.yaml")
    server = grpc.aio.server(interceptors=[AuthorizationInterceptor(authorizer)])

For every call it builds a CallContext from the full method name and the
invocation metadata, runs the authorization protocol, and either invokes
the real handler or aborts the RPC with PERMISSION_DENIED/UNAUTHENTICATED.
All four handler kinds (unary/streaming in and out) are wrapped. Handlers
may be coroutine functions, async generators, or plain functions and
generators.
"""

import inspect
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from typing import Any

import grpc
from grpc.aio import ServerInterceptor

from rpcgate.authorizer import Authorizer
from rpcgate.schema import AuthorizationDecision, CallContext, CallProperties, Outcome

BEARER_PREFIX = "bearer "

_STATUS_CODES = {
    Outcome.PERMISSION_DENIED: grpc.StatusCode.PERMISSION_DENIED,
    Outcome.UNAUTHENTICATED: grpc.StatusCode.UNAUTHENTICATED,
}


def metadata_to_dict(metadata: Iterable[tuple[str, Any]] | None) -> dict[str, Any]:
    """Lower-case metadata keys; later duplicates win."""
    return {key.lower(): value for key, value in (metadata or ())}


def extract_token(metadata: dict[str, Any], key: str) -> str | None:
    """Read the token from metadata, stripping a ``Bearer`` scheme."""
    raw = metadata.get(key.lower())
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", "replace")
    raw = raw.strip()
    if raw.lower().startswith(BEARER_PREFIX):
        raw = raw[len(BEARER_PREFIX):].strip()
    return raw or None


async def _unary_response(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


async def _stream_responses(result: Any) -> AsyncIterator[Any]:
    if hasattr(result, "__aiter__"):
        async for response in result:
            yield response
    else:
        for response in result:
            yield response


class AuthorizationInterceptor(ServerInterceptor):
    """
    grpc.aio server interceptor running the Authorizer before each handler.

    Attributes:
        authorizer: The Authorizer deciding every call
        token_metadata_key: Metadata key carrying the caller's token
    """

    def __init__(
        self,
        authorizer: Authorizer,
        *,
        token_metadata_key: str = "authorization",
    ) -> None:
        self.authorizer = authorizer
        self.token_metadata_key = token_metadata_key

    def build_context(self, handler_call_details: Any) -> CallContext:
        """Build the CallContext for one incoming call."""
        metadata = metadata_to_dict(handler_call_details.invocation_metadata)
        return CallContext(
            properties=CallProperties.from_full_method(handler_call_details.method or ""),
            token=extract_token(metadata, self.token_metadata_key),
            metadata=metadata,
        )

    async def intercept_service(
        self,
        continuation: Callable[[Any], Awaitable[grpc.RpcMethodHandler]],
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        handler = await continuation(handler_call_details)
        if handler is None:
            return handler

        call_context = self.build_context(handler_call_details)

        if handler.unary_unary:
            inner = handler.unary_unary

            async def unary_unary(request: Any, context: Any) -> Any:
                await self._enforce(call_context, context)
                return await _unary_response(inner(request, context))

            return grpc.unary_unary_rpc_method_handler(
                unary_unary,
                request_deserializer=handler.request_deserializer,
                response_serializer=handler.response_serializer,
            )

        if handler.unary_stream:
            inner = handler.unary_stream

            async def unary_stream(request: Any, context: Any) -> AsyncIterator[Any]:
                await self._enforce(call_context, context)
                async for response in _stream_responses(inner(request, context)):
                    yield response

            return grpc.unary_stream_rpc_method_handler(
                unary_stream,
                request_deserializer=handler.request_deserializer,
                response_serializer=handler.response_serializer,
            )

        if handler.stream_unary:
            inner = handler.stream_unary

            async def stream_unary(request_iterator: Any, context: Any) -> Any:
                await self._enforce(call_context, context)
                return await _unary_response(inner(request_iterator, context))

            return grpc.stream_unary_rpc_method_handler(
                stream_unary,
                request_deserializer=handler.request_deserializer,
                response_serializer=handler.response_serializer,
            )

        if handler.stream_stream:
            inner = handler.stream_stream

            async def stream_stream(request_iterator: Any, context: Any) -> AsyncIterator[Any]:
                await self._enforce(call_context, context)
                async for response in _stream_responses(inner(request_iterator, context)):
                    yield response

            return grpc.stream_stream_rpc_method_handler(
                stream_stream,
                request_deserializer=handler.request_deserializer,
                response_serializer=handler.response_serializer,
            )

        return handler

    async def _enforce(self, call_context: CallContext, context: Any) -> AuthorizationDecision:
        """Authorize the call; abort the RPC when it is denied."""
        decision = await self.authorizer.authorize(call_context)
        if not decision.allowed:
            error = decision.to_error()
            # context.abort() raises, the handler never runs
            await context.abort(_STATUS_CODES[decision.outcome], error.details)
        return decision
