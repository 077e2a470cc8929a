# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""One-shot teardown shared by every exit path, plus signal routing.

Normal completion, setup failures, SIGINT/SIGTERM and interpreter exit all
call the same :class:`Teardown`. Whoever gets there first runs the actions;
everyone else, including a signal handler interrupting the teardown itself,
returns immediately.
"""

from __future__ import annotations

import atexit
import contextlib
import enum
import logging
import signal
import threading
from typing import Callable, Iterator, Sequence

from .errors import Interrupted

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class State(enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"


class Teardown:
    def __init__(self, *actions: Callable[[], object]) -> None:
        self._actions = list(actions)
        # acquired once and never released: the acquire is the compare-and-set
        self._claim = threading.Lock()
        self.state = State.PENDING

    @property
    def started(self) -> bool:
        return self.state is not State.PENDING

    def __call__(self) -> bool:
        if not self._claim.acquire(blocking=False):
            return False
        self.state = State.RUNNING
        try:
            for action in self._actions:
                try:
                    action()
                except Exception:
                    logger.exception("teardown step %s failed", getattr(action, "__name__", action))
        finally:
            self.state = State.DONE
        return True


@contextlib.contextmanager
def blocked_signals(signals: Sequence[signal.Signals] = DEFAULT_SIGNALS) -> Iterator[None]:
    """Hold delivery of ``signals`` until the block ends."""
    old_mask = signal.pthread_sigmask(signal.SIG_BLOCK, signals)
    try:
        yield
    finally:
        signal.pthread_sigmask(signal.SIG_SETMASK, old_mask)


@contextlib.contextmanager
def install_signal_handlers(
    teardown: Teardown, signals: Sequence[signal.Signals] = DEFAULT_SIGNALS
) -> Iterator[None]:
    """Turn the first of the given signals into :class:`Interrupted`.

    The exception unwinds the main sequence (killing a running child via
    ``subprocess.run``) so that the caller's ``finally`` runs the teardown.
    Only one signal is ever raised; later ones, and any that arrive once
    teardown has started, are ignored. Leaving the block runs the teardown
    again with the signals held, which finishes it if the caller's own call
    was cut short before it claimed the teardown.
    """
    fired = []

    def handler(signum, _frame):
        if fired or teardown.started:
            logger.debug("ignoring signal %d during teardown", signum)
            return
        fired.append(signum)
        raise Interrupted(signum)

    previous = {}
    for signum in signals:
        previous[signum] = signal.signal(signum, handler)
    atexit.register(teardown)
    try:
        yield
    finally:
        # pending signals reach the ignoring handler when the mask is restored
        with blocked_signals(signals):
            teardown()
        for signum, old in previous.items():
            signal.signal(signum, old)
        if teardown.state is State.DONE:
            atexit.unregister(teardown)
