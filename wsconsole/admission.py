from __future__ import annotations

import enum
import logging
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

P = TypeVar("P")


class Admission(enum.Enum):
    ADMIT = "admit"
    REJECT = "reject"


class AdmissionPolicy(Generic[P]):
    """
    First connection wins; every other candidate is refused while it lasts.

    There is no queue: a rejected candidate is expected to be terminated by
    the caller right away. ``release`` re-opens admission once the current
    peer goes away.
    """

    def __init__(self) -> None:
        self.current: P | None = None

    @property
    def occupied(self) -> bool:
        return self.current is not None

    def on_incoming(self, candidate: P) -> Admission:
        if self.current is None:
            self.current = candidate
            logger.debug("admitted %r", candidate)
            return Admission.ADMIT
        logger.debug("rejected %r, %r is still connected", candidate, self.current)
        return Admission.REJECT

    def release(self, peer: P) -> bool:
        """Forget ``peer`` if it is the current one. Returns True when reset."""
        if self.current is not peer:
            return False
        self.current = None
        return True
