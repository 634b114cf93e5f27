"""Bounded worker pool shared by the transform and assembly stages."""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def run_parallel(fn: Callable[[T], R], jobs: list[T], max_workers: int | None = None) -> list[R]:
    """Run ``fn`` over ``jobs`` on a thread pool.

    Results come back in job order regardless of completion order. The
    first exception cancels every job that has not started yet and is
    re-raised; jobs already running finish before it propagates.
    """
    if not jobs:
        return []

    results: list = [None] * len(jobs)
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(fn, job): index for index, job in enumerate(jobs)}
        try:
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        except BaseException:
            for future in futures:
                future.cancel()
            raise
    return results
