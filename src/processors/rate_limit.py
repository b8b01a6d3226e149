"""Call pacing for the classifier API quota."""

from typing import Callable
import logging
import time

from settings import CLASSIFIER_CALL_DELAY

logger = logging.getLogger(__name__)


class CallPacer:
    """
    Fixed delay sequencer.

    The first call of a run goes out immediately; every later call waits
    delay_seconds first.
    """

    def __init__(self, delay_seconds: float = None, sleep: Callable[[float], None] = time.sleep) -> None:
        self.delay_seconds = CLASSIFIER_CALL_DELAY if delay_seconds is None else delay_seconds
        self.sleep = sleep
        self.calls = 0

    def wait(self) -> None:
        if self.calls > 0 and self.delay_seconds > 0:
            logger.debug("Pacing classifier call, sleeping %.1fs", self.delay_seconds)
            self.sleep(self.delay_seconds)
        self.calls += 1

    def reset(self) -> None:
        self.calls = 0
