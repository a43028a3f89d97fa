"""Run independent pieces of work on a bounded pool of threads."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable


class ConcurrentError(Exception):
    """Raised when one or more pieces of work failed; holds every failure."""

    def __init__(self, errors: list[BaseException]) -> None:
        self.errors = list(errors)
        super().__init__("".join(f"\t{err}\n" for err in self.errors))


def concurrent(workers: int, pieces: int, do_work_piece: Callable[[int], None]) -> None:
    """Call ``do_work_piece(i)`` for every ``i`` in ``range(pieces)``.

    At most ``workers`` pieces run at once. A piece reports failure by raising;
    all failures are collected and raised together as ConcurrentError.
    """
    if workers < 0:
        raise ValueError("negative worker count")
    workers = min(workers, pieces)
    if workers <= 0:
        return
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(do_work_piece, piece) for piece in range(pieces)]
    errors = [exc for exc in (future.exception() for future in futures) if exc is not None]
    if errors:
        raise ConcurrentError(errors)