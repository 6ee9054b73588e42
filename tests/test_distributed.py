# tests/test_distributed.py
#
# ============================================================
# UNIT TESTS: Collective Communication
# ============================================================
#
# WHAT WE'RE TESTING:
#   The Communicator implementations the trainer uses to keep P workers in
#   lock-step: all-reduce sums, broadcasts and barriers, plus the
#   run_workers launcher that runs one worker per thread.
#
# TEST STRATEGY:
#   1. SERIAL: every collective is the identity for a group of one.
#   2. THREADS: sums and broadcasts agree on every rank, in rank order,
#      over many rounds (a fast worker must not overwrite a slot that a
#      slow worker has not read yet).
#   3. FAILURE: when one worker raises, the others are released from the
#      barrier and the original exception (not BrokenBarrierError) reaches
#      the caller.
#   4. RANDOM STREAMS: worker_rng is reproducible per (seed, rank) and
#      distinct across ranks.
#
# ============================================================

import sys
import os
import importlib.util
import threading
import unittest
from unittest import mock
import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from isingrbm.distributed import (
    SerialCommunicator,
    ThreadGroup,
    run_workers,
    worker_rng,
)


# ============================================================
# SECTION: Serial Communicator
# ============================================================

class TestSerialCommunicator(unittest.TestCase):

    def setUp(self):
        self.comm = SerialCommunicator()

    def test_identity_collectives(self):
        self.assertEqual(self.comm.rank, 0)
        self.assertEqual(self.comm.size, 1)
        self.assertTrue(self.comm.is_leader)
        self.assertEqual(self.comm.allreduce_sum(2.5), 2.5)
        self.assertEqual(self.comm.bcast({'x': 1}), {'x': 1})
        self.comm.barrier()

    def test_scalar_stays_scalar(self):
        self.assertIsInstance(self.comm.allreduce_sum(1.5), float)

    def test_array_is_copied(self):
        value = np.arange(3.0)
        total = self.comm.allreduce_sum(value)
        total[0] = 99.0
        self.assertEqual(value[0], 0.0)

    def test_abort_is_noop(self):
        self.comm.abort()
        self.assertEqual(self.comm.allreduce_sum(1.0), 1.0)


# ============================================================
# SECTION: Thread Group
# ============================================================

class TestThreadCommunicator(unittest.TestCase):

    def test_allreduce_scalar(self):
        """Sum of ranks 0..3 is 6 on every worker."""
        results = run_workers(lambda comm: comm.allreduce_sum(float(comm.rank)), 4)
        self.assertEqual(results, [6.0, 6.0, 6.0, 6.0])

    def test_allreduce_complex_array(self):
        def fn(comm):
            return comm.allreduce_sum(np.full((2, 3), comm.rank + 1j))

        for total in run_workers(fn, 3):
            np.testing.assert_allclose(total, np.full((2, 3), 3 + 3j))

    def test_bcast_from_root(self):
        def fn(comm):
            return comm.bcast(f"from rank {comm.rank}", root=0)

        self.assertEqual(run_workers(fn, 3), ["from rank 0"] * 3)

    def test_repeated_rounds_stay_consistent(self):
        """Back-to-back collectives with different values on each round."""
        def fn(comm):
            totals = []
            for round_ in range(50):
                totals.append(comm.allreduce_sum(np.array([comm.rank * round_])))
                comm.barrier()
            return np.concatenate(totals)

        expected = np.arange(50) * (0 + 1 + 2 + 3)
        for totals in run_workers(fn, 4):
            np.testing.assert_array_equal(totals, expected)

    def test_results_in_rank_order(self):
        self.assertEqual(run_workers(lambda comm: comm.rank, 5), [0, 1, 2, 3, 4])

    def test_group_needs_members(self):
        with self.assertRaises(ValueError):
            ThreadGroup(0)


# ============================================================
# SECTION: Failure Propagation
# ============================================================

class TestFailurePropagation(unittest.TestCase):

    def test_original_exception_reaches_caller(self):
        """
        Rank 1 fails before the first collective. The other ranks are stuck
        in allreduce until the barrier is aborted; their BrokenBarrierError
        must not mask the real error.
        """
        def fn(comm):
            if comm.rank == 1:
                raise KeyError("worker 1 failed")
            return comm.allreduce_sum(1.0)

        with self.assertRaises(KeyError):
            run_workers(fn, 3)

    def test_single_worker_error(self):
        def fn(comm):
            raise RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            run_workers(fn, 1)

    def test_broken_barrier_not_preferred(self):
        def fn(comm):
            comm.barrier()
            if comm.is_leader:
                raise ZeroDivisionError("leader failed")
            comm.barrier()
            return comm.rank

        with self.assertRaises(ZeroDivisionError):
            run_workers(fn, 2)

    def test_abort_releases_blocked_peer(self):
        """A worker calling abort() makes a peer waiting in barrier() raise."""
        group = ThreadGroup(2)
        caught = []

        def peer():
            try:
                group.communicator(1).barrier()
            except threading.BrokenBarrierError as exc:
                caught.append(exc)

        thread = threading.Thread(target=peer)
        thread.start()
        group.communicator(0).abort()
        thread.join(timeout=5)
        self.assertFalse(thread.is_alive())
        self.assertEqual(len(caught), 1)


# ============================================================
# SECTION: Worker Random Streams
# ============================================================

class TestWorkerRng(unittest.TestCase):

    def test_reproducible_per_rank(self):
        np.testing.assert_array_equal(worker_rng(42, 1).random(5),
                                      worker_rng(42, 1).random(5))

    def test_distinct_across_ranks_and_seeds(self):
        base = worker_rng(42, 0).random(5)
        self.assertFalse(np.allclose(base, worker_rng(42, 1).random(5)))
        self.assertFalse(np.allclose(base, worker_rng(43, 0).random(5)))


# ============================================================
# SECTION: MPI (only when mpi4py is installed)
# ============================================================

@unittest.skipUnless(importlib.util.find_spec('mpi4py'), 'mpi4py not installed')
class TestMPICommunicator(unittest.TestCase):

    def test_collectives(self):
        from isingrbm.distributed import MPICommunicator

        comm = MPICommunicator()
        total = comm.allreduce_sum(np.array([1.0, 2.0]))
        np.testing.assert_allclose(total, np.array([1.0, 2.0]) * comm.size)
        self.assertIsInstance(comm.allreduce_sum(1.0), float)
        self.assertEqual(comm.bcast('x'), 'x')
        comm.barrier()

    def test_abort_calls_mpi_abort(self):
        from isingrbm.distributed import MPICommunicator

        raw = mock.Mock()
        MPICommunicator(comm=raw).abort()
        raw.Abort.assert_called_once_with(1)


if __name__ == '__main__':
    unittest.main(verbosity=2)
