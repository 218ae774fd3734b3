"""
Evidence Capture Service.

Photo evidence is the only asynchronous input of the reception workflow.
Each photo requirement is an EvidenceSlot wrapping an asyncio task that
resolves to a "captured" flag. Controls depending on the photo stay
disabled until the slot is CAPTURED. A pending capture can be cancelled,
which returns the slot to EMPTY so the step can try again.

Storage of the image itself is handled elsewhere.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from reception.config import settings
from reception.core.exceptions import WorkflowStateError


logger = logging.getLogger(__name__)


class CaptureState(str, Enum):
    """Lifecycle of an evidence slot."""
    EMPTY = "empty"
    PENDING = "pending"
    CAPTURED = "captured"
    FAILED = "failed"


@dataclass(frozen=True)
class CaptureRequest:
    """What is being photographed and for which order."""
    subject: str
    order_id: str


class EvidenceCapturer(Protocol):
    """Collaborator that takes the photo and reports whether it succeeded."""

    async def capture(self, request: CaptureRequest) -> bool:
        ...


class SimulatedCapturer:
    """Camera stand-in that succeeds after a fixed delay."""

    def __init__(self, delay: Optional[float] = None, result: bool = True):
        self.delay = settings.EVIDENCE_CAPTURE_DELAY_SECONDS if delay is None else delay
        self.result = result

    async def capture(self, request: CaptureRequest) -> bool:
        await asyncio.sleep(self.delay)
        logger.info("[SIMULATION] %s photo captured for %s", request.subject, request.order_id)
        return self.result


class ReportedCapturer:
    """
    Capturer for photos already taken on the client device.

    Per-subject flags (humidity=True, gravel=False) override the default.
    """

    def __init__(self, captured: bool = False, **subjects: bool):
        self.captured = captured
        self.subjects = subjects

    async def capture(self, request: CaptureRequest) -> bool:
        return bool(self.subjects.get(request.subject, self.captured))


class EvidenceSlot:
    """A single photo requirement backed by a cancellable task."""

    def __init__(self, subject: str, capturer: EvidenceCapturer):
        self.subject = subject
        self.capturer = capturer
        self.state = CaptureState.EMPTY
        self.error: Optional[BaseException] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def captured(self) -> bool:
        return self.state == CaptureState.CAPTURED

    @property
    def pending(self) -> bool:
        return self.state == CaptureState.PENDING

    def start(self, request: CaptureRequest) -> asyncio.Task:
        """Begin capturing; must be called from a running event loop."""
        if self.state == CaptureState.PENDING:
            raise WorkflowStateError(f"{self.subject} capture already in progress", request.order_id)
        if self.state == CaptureState.CAPTURED:
            raise WorkflowStateError(f"{self.subject} photo already captured", request.order_id)

        self.state = CaptureState.PENDING
        self.error = None
        task = asyncio.ensure_future(self.capturer.capture(request))
        self._task = task
        task.add_done_callback(self._settle)
        return task

    async def wait(self) -> bool:
        """Wait for the pending capture and return whether the photo exists."""
        task = self._task
        if task is None:
            return self.captured
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
        except Exception:
            # Recorded on the slot by _settle
            pass
        self._settle(task)
        return self.captured

    async def capture(self, request: CaptureRequest) -> bool:
        """Start a capture and wait for it."""
        self.start(request)
        return await self.wait()

    def cancel(self) -> None:
        """Abandon a pending capture and return the slot to EMPTY."""
        task = self._task
        if task is None or task.done():
            return
        self._task = None
        self.state = CaptureState.EMPTY
        task.cancel()
        logger.info("%s capture cancelled", self.subject)

    def _settle(self, task: asyncio.Task) -> None:
        if task is not self._task or not task.done():
            return
        self._task = None
        if task.cancelled():
            self.state = CaptureState.EMPTY
            return
        exc = task.exception()
        if exc is not None:
            self.error = exc
            self.state = CaptureState.FAILED
            logger.warning("%s capture failed: %s", self.subject, exc)
            return
        self.state = CaptureState.CAPTURED if task.result() else CaptureState.FAILED
