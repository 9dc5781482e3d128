"""All-or-nothing execution for one engine instance.

atomic() rejects re-entry from inside a running call, checkpoints the market
state, the event log and every Transactional collaborator, and restores all of
them if the body raises. Nothing a failed call did survives it.
"""

import copy
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from src.pm_common.errors import ReentrantCallError
from src.pm_market.domain.collaborators import Transactional
from src.pm_market.domain.models import MarketState
from src.pm_market.engine.context import EngineContext


@dataclass(frozen=True)
class EngineCheckpoint:
    state: MarketState
    event_count: int
    collaborator_snapshots: list[tuple[Transactional, Any]]


def take_checkpoint(ctx: EngineContext) -> EngineCheckpoint:
    return EngineCheckpoint(
        state=copy.deepcopy(ctx.state),
        event_count=len(ctx.events),
        collaborator_snapshots=[
            (member, member.checkpoint()) for member in ctx.collaborators.transactional()
        ],
    )


def restore_checkpoint(ctx: EngineContext, checkpoint: EngineCheckpoint) -> None:
    ctx.state = copy.deepcopy(checkpoint.state)
    del ctx.events[checkpoint.event_count:]
    for member, snapshot in checkpoint.collaborator_snapshots:
        member.restore(snapshot)


class AtomicGuard:
    def __init__(self, ctx: EngineContext) -> None:
        self._ctx = ctx
        self._entered = False

    @property
    def entered(self) -> bool:
        return self._entered

    @contextmanager
    def atomic(self) -> Iterator[EngineCheckpoint]:
        if self._entered:
            raise ReentrantCallError()
        self._entered = True
        checkpoint = take_checkpoint(self._ctx)
        try:
            yield checkpoint
        except Exception:
            restore_checkpoint(self._ctx, checkpoint)
            raise
        finally:
            self._entered = False
