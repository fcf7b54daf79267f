"""
Busy-state tracking for operator actions.

The operator state is an immutable value: ``Idle`` when nothing is in flight,
otherwise the set of providers being dispatched and request ids being
forwarded. The ``begin_*``/``end_*`` functions return the next state and
reject a second operation on a partition that is already busy. Different
providers and different request ids never block each other.
"""
import logging
from contextlib import asynccontextmanager
from typing import FrozenSet

from pydantic import BaseModel, ConfigDict

from csr_request_service.app.service.models import ServiceProvider
from csr_request_service.app.service.exceptions import OperationInProgressError

logger = logging.getLogger(__name__)


class OperatorState(BaseModel):
    model_config = ConfigDict(frozen=True)

    dispatching: FrozenSet[ServiceProvider] = frozenset()
    forwarding: FrozenSet[str] = frozenset()

    @property
    def is_idle(self) -> bool:
        return not self.dispatching and not self.forwarding


def begin_dispatch(state: OperatorState, provider: ServiceProvider) -> OperatorState:
    if provider in state.dispatching:
        raise OperationInProgressError(operation="dispatch", key=provider.value)
    return state.model_copy(update={"dispatching": state.dispatching | {provider}})


def end_dispatch(state: OperatorState, provider: ServiceProvider) -> OperatorState:
    return state.model_copy(update={"dispatching": state.dispatching - {provider}})


def begin_forward(state: OperatorState, request_id: str) -> OperatorState:
    if request_id in state.forwarding:
        raise OperationInProgressError(operation="forward", key=request_id)
    return state.model_copy(update={"forwarding": state.forwarding | {request_id}})


def end_forward(state: OperatorState, request_id: str) -> OperatorState:
    return state.model_copy(update={"forwarding": state.forwarding - {request_id}})


class OperationGuard:
    """Holds the current OperatorState and scopes busy flags to an ``async with`` block."""

    def __init__(self):
        self._state = OperatorState()

    @property
    def state(self) -> OperatorState:
        return self._state

    def is_dispatching(self, provider: ServiceProvider) -> bool:
        return provider in self._state.dispatching

    def is_forwarding(self, request_id: str) -> bool:
        return request_id in self._state.forwarding

    @asynccontextmanager
    async def dispatching(self, provider: ServiceProvider):
        self._state = begin_dispatch(self._state, provider)
        logger.debug(f"Dispatch busy flag set for provider {provider.value}.")
        try:
            yield self._state
        finally:
            self._state = end_dispatch(self._state, provider)
            logger.debug(f"Dispatch busy flag cleared for provider {provider.value}.")

    @asynccontextmanager
    async def forwarding(self, request_id: str):
        self._state = begin_forward(self._state, request_id)
        logger.debug(f"Forward busy flag set for request {request_id}.")
        try:
            yield self._state
        finally:
            self._state = end_forward(self._state, request_id)
            logger.debug(f"Forward busy flag cleared for request {request_id}.")
