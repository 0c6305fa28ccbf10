from __future__ import annotations

import asyncio
import logging
from http import HTTPStatus
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from httptool.auth import apply_credentials
from httptool.credentials import CredentialProvider
from httptool.errors import CredentialError, HttpError
from httptool.models import (
    BatchConfig,
    PaginationConfig,
    PaginationState,
    RawResponse,
    RequestDescriptor,
)
from httptool.pagination import aggregate_responses, is_complete, is_empty_response, next_descriptor
from httptool.transport import HttpExecutor

log = logging.getLogger(__name__)

T = TypeVar("T")
ItemT = TypeVar("ItemT")

Sleep = Callable[[float], Awaitable[Any]]


def _status_message(resp: RawResponse) -> str:
    try:
        phrase = HTTPStatus(resp.status_code).phrase
    except ValueError:
        phrase = "Request failed"
    try:
        text = resp.text().strip()
    except UnicodeDecodeError:
        text = ""
    if text:
        return f"{phrase} - {text[:500]}"
    return phrase


class ExecutionEngine:
    def __init__(
        self,
        executor: HttpExecutor,
        *,
        credentials: Optional[CredentialProvider] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.executor = executor
        self.credentials = credentials
        self._sleep = sleep

    async def _authorize(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        auth = descriptor.auth
        if auth is None or not auth.generic_type:
            return descriptor
        if self.credentials is None:
            raise CredentialError(f"No credential provider configured for '{auth.generic_type}'")
        material = await self.credentials.get_credentials(auth.generic_type)
        return apply_credentials(descriptor, auth.generic_type, material)

    async def send_once(
        self,
        descriptor: RequestDescriptor,
        *,
        never_error: bool = False,
        completion_statuses: frozenset[int] = frozenset(),
    ) -> RawResponse:
        desc = await self._authorize(descriptor)
        if desc.auth is not None and desc.auth.credential_type:
            resp = await self.executor.send_with_authentication(desc.auth.credential_type, desc)
        else:
            resp = await self.executor.send(desc)
        if not resp.ok and not never_error and resp.status_code not in completion_statuses:
            try:
                body = resp.text()
            except UnicodeDecodeError:
                body = None
            raise HttpError(resp.status_code, _status_message(resp), body=body)
        return resp

    async def execute(
        self,
        descriptor: RequestDescriptor,
        pagination: Optional[PaginationConfig] = None,
        *,
        never_error: bool = False,
    ) -> RawResponse:
        """
        Issue the request, walking pages while the pagination config asks for more.
        Returns the single response, or the aggregate of every fetched page.
        """
        paginate = pagination is not None and pagination.mode != "off"
        completion_statuses = frozenset(pagination.completion_status_codes()) if paginate else frozenset()
        state = PaginationState()
        current = descriptor

        while True:
            resp = await self.send_once(
                current,
                never_error=never_error,
                completion_statuses=completion_statuses,
            )
            state.page_count += 1
            state.last_response = resp
            state.accumulated.append(resp)
            log.debug("engine: page %s -> HTTP %s", state.page_count, resp.status_code)

            if not paginate:
                break
            if is_complete(pagination, state, current):
                log.info("engine: pagination complete after %s page(s)", state.page_count)
                if state.page_count > 1 and (
                    (not resp.ok and resp.status_code in completion_statuses) or is_empty_response(resp)
                ):
                    state.accumulated.pop()
                break
            if pagination.limit_pages_fetched and state.page_count >= pagination.max_requests:
                log.info("engine: page limit %s reached", pagination.max_requests)
                break
            nxt = next_descriptor(pagination, state, current)
            if nxt is None:
                break
            if pagination.request_interval_ms:
                await self._sleep(pagination.request_interval_ms / 1000.0)
            current = nxt

        return aggregate_responses(state.accumulated)

    async def run_batched(
        self,
        items: Sequence[ItemT],
        fn: Callable[[ItemT], Awaitable[T]],
        batch: Optional[BatchConfig] = None,
    ) -> list[T]:
        """
        Run `fn` over items in order. With batching enabled, the configured interval
        is awaited between consecutive batches (never inside one).
        """
        size = batch.effective_size() if batch is not None else None
        interval_s = (batch.batch_interval_ms / 1000.0) if batch is not None else 0.0
        out: list[T] = []
        for i, item in enumerate(items):
            if size is not None and i > 0 and i % size == 0 and interval_s > 0:
                log.debug("engine: batch of %s done; waiting %.3fs", size, interval_s)
                await self._sleep(interval_s)
            out.append(await fn(item))
        return out
