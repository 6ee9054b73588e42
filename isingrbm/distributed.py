# isingrbm/distributed.py
#
# Collective primitives for running P training workers in lock-step.
#
# The trainer never knows how workers are laid out: it only calls
# allreduce_sum, bcast and barrier on a Communicator, and abort on failure.
# Three implementations:
#
#   SerialCommunicator  — a single worker; every collective is the identity
#   ThreadGroup         — P workers as threads in one process, meeting at a
#                         threading.Barrier (shared-memory rendezvous)
#   MPICommunicator     — P processes launched with mpiexec, via mpi4py
#
# Reductions always sum contributions in rank order, so every worker sees a
# bit-identical result and derives identical termination decisions.

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
import threading

import numpy as np


def worker_rng(seed: int, rank: int) -> np.random.Generator:
    """Independent, reproducible random stream for worker `rank`."""
    return np.random.default_rng(np.random.SeedSequence([int(seed), int(rank)]))


def _like_input(total: np.ndarray, value):
    """Return scalars as Python numbers and arrays as arrays."""
    if np.ndim(value) == 0:
        return total.item()
    return total


class Communicator(ABC):
    """Minimal collective-communication interface used by the trainer."""

    @property
    @abstractmethod
    def rank(self) -> int:
        pass

    @property
    @abstractmethod
    def size(self) -> int:
        pass

    @property
    def is_leader(self) -> bool:
        """Rank 0 performs all side-effecting I/O."""
        return self.rank == 0

    @abstractmethod
    def allreduce_sum(self, value):
        """Sum `value` (scalar or array) across all workers; everyone gets the sum."""
        pass

    @abstractmethod
    def bcast(self, obj, root: int = 0):
        """Return `root`'s obj on every worker."""
        pass

    @abstractmethod
    def barrier(self) -> None:
        """Block until every worker has arrived."""
        pass

    def abort(self) -> None:
        """Release peers blocked in a collective after this worker failed."""
        pass


class SerialCommunicator(Communicator):
    """A group of one."""

    @property
    def rank(self) -> int:
        return 0

    @property
    def size(self) -> int:
        return 1

    def allreduce_sum(self, value):
        return _like_input(np.array(value, copy=True), value)

    def bcast(self, obj, root: int = 0):
        return obj

    def barrier(self) -> None:
        pass


class ThreadGroup:
    """
    Shared state for P in-process workers.

    Every collective is two barrier phases: publish into this worker's slot,
    then read all slots. The second wait keeps a fast worker from
    overwriting its slot before the slow ones have read it.
    """

    def __init__(self, size: int):
        if size < 1:
            raise ValueError(f"A worker group needs at least one member, got {size}.")
        self.size = size
        self._barrier = threading.Barrier(size)
        self._slots = [None] * size

    def communicator(self, rank: int) -> 'ThreadCommunicator':
        return ThreadCommunicator(self, rank)

    def abort(self) -> None:
        """Break the barrier so peers blocked in a collective raise instead of hanging."""
        self._barrier.abort()


class ThreadCommunicator(Communicator):
    """One worker's handle on a ThreadGroup."""

    def __init__(self, group: ThreadGroup, rank: int):
        self._group = group
        self._rank = rank

    @property
    def rank(self) -> int:
        return self._rank

    @property
    def size(self) -> int:
        return self._group.size

    def allreduce_sum(self, value):
        group = self._group
        group._slots[self._rank] = np.array(value, copy=True)
        group._barrier.wait()

        total = np.array(group._slots[0], copy=True)
        for contribution in group._slots[1:]:
            total = total + contribution

        group._barrier.wait()
        return _like_input(total, value)

    def bcast(self, obj, root: int = 0):
        group = self._group
        if self._rank == root:
            group._slots[root] = obj
        group._barrier.wait()
        result = group._slots[root]
        group._barrier.wait()
        return result

    def barrier(self) -> None:
        self._group._barrier.wait()

    def abort(self) -> None:
        self._group.abort()


class MPICommunicator(Communicator):
    """
    Collectives over an MPI communicator (requires the `mpi` extra).

    Launch one process per worker, e.g. `mpiexec -n 4 python scripts/run_vmc.py ...`.
    """

    def __init__(self, comm=None):
        from mpi4py import MPI

        self._MPI = MPI
        self._comm = comm if comm is not None else MPI.COMM_WORLD

    @property
    def rank(self) -> int:
        return self._comm.Get_rank()

    @property
    def size(self) -> int:
        return self._comm.Get_size()

    def allreduce_sum(self, value):
        send = np.ascontiguousarray(np.atleast_1d(value))
        recv = np.empty_like(send)
        self._comm.Allreduce(send, recv, op=self._MPI.SUM)
        return _like_input(recv, value)

    def bcast(self, obj, root: int = 0):
        return self._comm.bcast(obj, root=root)

    def barrier(self) -> None:
        self._comm.Barrier()

    def abort(self, errorcode: int = 1) -> None:
        """Terminate every process in the communicator (MPI_Abort)."""
        self._comm.Abort(errorcode)


def run_workers(fn, n_workers: int) -> list:
    """
    Run fn(comm) on n_workers in-process workers and return results by rank.

    A worker that raises aborts the group's barrier, so its peers fail fast
    with BrokenBarrierError. The original exception is re-raised here in
    preference to those secondary errors.
    """
    if n_workers == 1:
        return [fn(SerialCommunicator())]

    group = ThreadGroup(n_workers)

    def guarded(rank):
        try:
            return fn(group.communicator(rank))
        except BaseException:
            group.abort()
            raise

    with ThreadPoolExecutor(max_workers=n_workers,
                            thread_name_prefix="vmc-worker") as pool:
        futures = [pool.submit(guarded, rank) for rank in range(n_workers)]

    errors = [f.exception() for f in futures if f.exception() is not None]
    primary = [e for e in errors if not isinstance(e, threading.BrokenBarrierError)]
    if primary:
        raise primary[0]
    if errors:
        raise errors[0]
    return [f.result() for f in futures]
