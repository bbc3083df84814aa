import atexit
import faulthandler
import os
import sys
import tempfile
import threading
import time
from typing import Optional

# Keep test logs out of the user's home directory. Must run before any
# calltagger import configures the package logger.
os.environ.setdefault("CALLTAGGER_LOG_DIR", tempfile.mkdtemp(prefix="calltagger-logs-"))


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _start_watchdog(timeout_seconds: int) -> Optional[threading.Timer]:
    if timeout_seconds <= 0:
        return None

    def _kill() -> None:
        faulthandler.dump_traceback(file=sys.stderr, all_threads=True)
        # Hard exit: CI can't hang forever.
        os._exit(2)

    timer = threading.Timer(timeout_seconds, _kill)
    timer.daemon = True
    timer.start()
    return timer


def pytest_sessionstart(session) -> None:  # noqa: ANN001
    faulthandler.enable(all_threads=True)

    # Absolute upper bound for the whole test run (default 10 minutes).
    watchdog_seconds = _env_int("PYTEST_WATCHDOG_TIMEOUT_SECONDS", 10 * 60)
    timer = _start_watchdog(watchdog_seconds)

    if timer is not None:
        atexit.register(timer.cancel)

    dump_every = _env_int("PYTEST_DUMP_STACK_EVERY_SECONDS", 0)
    if dump_every > 0:
        _start_periodic_dump(dump_every)


def _start_periodic_dump(every_seconds: int) -> None:
    def _loop() -> None:
        while True:
            time.sleep(every_seconds)
            faulthandler.dump_traceback(file=sys.stderr, all_threads=True)

    t = threading.Thread(target=_loop, daemon=True)
    t.start()
