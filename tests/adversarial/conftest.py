"""
Shared fixtures for adversarial tests.

Provides a barrier-synchronized runner so racing callers start together.
"""

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import pytest


@pytest.fixture
def run_concurrently() -> Callable[[Callable[[], Any], int], list[Any]]:
    """
    Run fn in n threads released at the same instant.

    Returns each call's return value, or the exception it raised.
    """

    def runner(fn: Callable[[], Any], n: int) -> list[Any]:
        barrier = threading.Barrier(n)

        def attempt() -> Any:
            barrier.wait()
            try:
                return fn()
            except Exception as e:
                return e

        with ThreadPoolExecutor(max_workers=n) as executor:
            futures = [executor.submit(attempt) for _ in range(n)]
            return [f.result() for f in futures]

    return runner
