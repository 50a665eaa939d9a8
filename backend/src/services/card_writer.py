"""Batch card writes with revision history and a run audit record.

The store offers no multi-statement transactions, so a batch is tracked as a
small state machine::

    PENDING --open()--> RUNNING --finalize()--> SUCCESS | PARTIAL | ERROR

The run row is inserted first (status ``partial``, zero cards) because every
revision references it. Each card then goes through a linear pipeline
(existence check, upsert, revision insert); a failing stage records an error
string for that card and the batch moves on to the next card.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

import anyio

from ..models.card import CardInput, CardRow, CardWriteResult, WriteReport, utc_now_iso
from .card_store import CardStore
from .errors import UpstreamStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RunStatus(str, enum.Enum):
    PARTIAL = "partial"
    SUCCESS = "success"
    ERROR = "error"


class BatchState(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"


TERMINAL_STATES = frozenset({BatchState.SUCCESS, BatchState.PARTIAL, BatchState.ERROR})


@dataclass
class StageResult:
    """Outcome of one external call in the per-card pipeline."""

    ok: bool
    value: object = None
    error: Optional[str] = None
    unexpected: bool = False


async def run_stage(call: Callable[[], Awaitable[T]]) -> StageResult:
    try:
        return StageResult(ok=True, value=await call())
    except UpstreamStoreError as exc:
        return StageResult(ok=False, error=exc.message)
    except Exception as exc:  # noqa: BLE001 - captured per card, batch continues
        return StageResult(ok=False, error=str(exc) or type(exc).__name__, unexpected=True)


class WriteBatch:
    """Bookkeeping for one ``write_cards`` request."""

    def __init__(self, store: CardStore, tool_name: str, run_id: Optional[str] = None):
        self.store = store
        self.tool_name = tool_name
        self.run_id = run_id or str(uuid.uuid4())
        self.state = BatchState.PENDING
        self.run_recorded = False
        self.results: List[CardWriteResult] = []
        self.errors: List[str] = []
        self.unexpected_failures = 0

    def _transition(self, target: BatchState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Batch {self.run_id} already finished as {self.state.value}")
        self.state = target

    async def open(self) -> None:
        self._transition(BatchState.RUNNING)
        stage = await run_stage(
            lambda: self.store.insert_run(
                {
                    "id": self.run_id,
                    "tool_name": self.tool_name,
                    "cards_written": 0,
                    "status": RunStatus.PARTIAL.value,
                    "error": None,
                }
            )
        )
        self.run_recorded = stage.ok
        if not stage.ok:
            logger.error(
                "Failed to create generation run",
                extra={"run_id": self.run_id, "error": stage.error},
            )

    async def process(self, card: CardInput) -> None:
        object_id = card.object_id or str(uuid.uuid4())

        existing = await run_stage(lambda: self.store.card_exists(object_id))
        if not existing.ok:
            logger.warning(
                "Existence check failed; treating card as new",
                extra={"run_id": self.run_id, "object_id": object_id, "error": existing.error},
            )
        is_update = bool(existing.ok and existing.value)

        row = CardRow.from_input(card, object_id, utc_now_iso())

        upsert = await run_stage(lambda: self.store.upsert_card(row))
        if not upsert.ok:
            logger.error(
                "Failed to upsert card",
                extra={"run_id": self.run_id, "card": card.title, "error": upsert.error},
            )
            self._fail(f'Card "{card.title}": {upsert.error}', upsert.unexpected)
            return

        revision = await run_stage(lambda: self.store.insert_revision(row, self.run_id))
        if not revision.ok:
            logger.error(
                "Failed to insert card revision",
                extra={"run_id": self.run_id, "card": card.title, "error": revision.error},
            )
            self._fail(f'Revision for "{card.title}": {revision.error}', revision.unexpected)

        self.results.append(
            CardWriteResult(
                object_id=object_id,
                title=card.title,
                status="updated" if is_update else "created",
            )
        )

    def _fail(self, message: str, unexpected: bool) -> None:
        self.errors.append(message)
        if unexpected:
            self.unexpected_failures += 1

    def outcome(self) -> BatchState:
        if self.state == BatchState.ERROR:
            return BatchState.ERROR
        if not self.results and self.unexpected_failures:
            return BatchState.ERROR
        return BatchState.PARTIAL if self.errors else BatchState.SUCCESS

    async def finalize(self, fatal_error: Optional[str] = None) -> BatchState:
        if fatal_error is not None:
            self.errors.append(fatal_error)
            self.state = BatchState.ERROR
        final = self.outcome()
        self.state = final

        fields = {
            "cards_written": len(self.results),
            "status": RunStatus(final.value).value,
            "error": "; ".join(self.errors) if self.errors else None,
        }
        if self.run_recorded:
            stage = await run_stage(lambda: self.store.update_run(self.run_id, fields))
        else:
            stage = await run_stage(
                lambda: self.store.insert_run(
                    {"id": self.run_id, "tool_name": self.tool_name, **fields}
                )
            )
        if not stage.ok:
            logger.error(
                "Failed to finalize generation run",
                extra={"run_id": self.run_id, "status": final.value, "error": stage.error},
            )
        return final

    def report(self, fatal_error: Optional[str] = None) -> WriteReport:
        return WriteReport(
            run_id=self.run_id,
            results=list(self.results),
            errors=list(self.errors),
            is_error=self.state == BatchState.ERROR,
            fatal_error=fatal_error,
        )


class CardWriter:
    """Runs the batch write protocol against a ``CardStore``."""

    def __init__(self, store: CardStore):
        self.store = store

    async def write_cards(
        self, cards: Sequence[CardInput], *, tool_name: str = "write_cards"
    ) -> WriteReport:
        batch = WriteBatch(self.store, tool_name)
        logger.info(
            "Starting write_cards execution",
            extra={"run_id": batch.run_id, "card_count": len(cards)},
        )

        fatal_error: Optional[str] = None
        # A started batch runs to completion even if the caller goes away.
        with anyio.CancelScope(shield=True):
            try:
                await batch.open()
                for card in cards:
                    await batch.process(card)
            except Exception as exc:  # noqa: BLE001 - converted into the run's error status
                logger.exception("write_cards aborted", extra={"run_id": batch.run_id})
                fatal_error = str(exc) or type(exc).__name__

            final = await batch.finalize(fatal_error)
        logger.info(
            "Finished write_cards execution",
            extra={
                "run_id": batch.run_id,
                "status": final.value,
                "written": len(batch.results),
                "errors": len(batch.errors),
            },
        )
        return batch.report(fatal_error)


__all__ = [
    "CardWriter",
    "WriteBatch",
    "BatchState",
    "RunStatus",
    "StageResult",
    "run_stage",
]
