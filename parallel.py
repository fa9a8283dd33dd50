# -*- coding: utf-8 -*-
"""Worker pool with per-worker model instances.

Each of the `n_threads` workers, plus one extra slot used by the calling
thread (rollouts, terminal cost), owns a deep copy of the system, the linear
system, the cost function and one integrator of every supported kind. Stage
work is split into `n_threads` interleaved chunks; chunk i always runs with
instance set i, so no two threads ever touch the same model object. Workers
write only to their own stage indices of the shared arrays.

While the pool is busy, the BLAS/OpenMP pools of numpy are limited to
`blas_threads` (usually 1) via threadpoolctl; the previous limits are restored
when the region exits, whether it finished, raised or was cancelled.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from threadpoolctl import threadpool_limits

from integrators import Integrator, make_integrators

logger = logging.getLogger(__name__)


@dataclass
class WorkerInstances:
    system: Optional[object] = None
    linear_system: Optional[object] = None
    cost: Optional[object] = None
    integrators: Dict[str, Integrator] = field(default_factory=dict)


class WorkerPool:
    def __init__(self, n_threads: int):
        self.n_threads = int(n_threads)
        self.instances: List[WorkerInstances] = [WorkerInstances() for _ in range(self.n_threads + 1)]
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def main(self) -> WorkerInstances:
        """Instance set reserved for the calling thread."""
        return self.instances[self.n_threads]

    # -------------------------------------------------------------------------
    # model distribution
    # -------------------------------------------------------------------------

    def set_system(self, system):
        for inst in self.instances:
            inst.system = system.clone()
            inst.integrators = make_integrators(inst.system)

    def set_linear_system(self, linear_system):
        for inst in self.instances:
            inst.linear_system = linear_system.clone()

    def set_cost(self, cost):
        for inst in self.instances:
            inst.cost = cost.clone()

    # -------------------------------------------------------------------------
    # execution
    # -------------------------------------------------------------------------

    def _ensure_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.n_threads, thread_name_prefix="shooting")
            logger.debug("started worker pool with %d threads", self.n_threads)
        return self._executor

    @staticmethod
    def _run_chunk(fn, worker_id: int, stages: List[int]):
        for k in stages:
            fn(worker_id, k)

    def run_stages(self, fn: Callable[[int, int], None], stages: Iterable[int], *, blas_threads: int = 1):
        """Call fn(worker_id, k) for every stage k.

        Stages carry no ordering dependency; the call returns once all of them
        are done and re-raises the first worker exception.
        """
        stages = list(stages)
        if self.n_threads == 1 or len(stages) <= 1:
            self._run_chunk(fn, 0, stages)
            return

        chunks = [stages[i::self.n_threads] for i in range(self.n_threads)]
        executor = self._ensure_executor()
        with threadpool_limits(limits=int(blas_threads)):
            futures = [
                executor.submit(self._run_chunk, fn, i, chunk)
                for i, chunk in enumerate(chunks)
                if chunk
            ]
            wait(futures)
            for f in futures:
                exc = f.exception()
                if exc is not None:
                    raise exc

    def shutdown(self):
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
