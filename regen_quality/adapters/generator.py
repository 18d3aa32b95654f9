"""Contract for the external candidate generator."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Protocol, Sequence

from regen_quality.types import RasterRef


class CandidateGenerator(Protocol):
    """Produces ``k`` candidate images for a strength and rendered prompt.

    Any callable with this signature qualifies, so plain functions and test
    doubles can be passed directly.
    """

    def __call__(self, strength: float, prompt: str, k: int) -> Sequence[RasterRef]:
        ...


def call_generator(
    generate_fn: CandidateGenerator,
    strength: float,
    prompt: str,
    k: int,
    timeout: Optional[float] = None,
) -> List[RasterRef]:
    """Invoke the generator, optionally bounded by a timeout.

    With a timeout the call runs on a one-shot worker thread and
    ``concurrent.futures.TimeoutError`` is raised when it does not finish in
    time. The worker is not joined, so a hung generator does not block the
    retry loop. It still holds its thread, and ``concurrent.futures`` joins
    worker threads at interpreter exit, so a generator that never returns
    delays process shutdown.
    """

    if timeout is None:
        return list(generate_fn(strength, prompt, k))
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="candidate-generator")
    try:
        future = executor.submit(generate_fn, strength, prompt, k)
        return list(future.result(timeout=timeout))
    finally:
        executor.shutdown(wait=False)
