# isingrbm/trainer.py
#
# VMC training loop. Ties together the Ising Hamiltonian, the complex RBM,
# the MCMC sampler and the SR optimizer, and runs P copies of the loop in
# lock-step through a Communicator.
#
# Each epoch on every worker:
#   1. average the weights w across workers (all-reduce, / P)
#   2. thermalize and sample a batch from |psi|^2, with local energies
#   3. all-reduce energy, squared error, correlations and accuracy, / P
#   4. leader records and reports; every worker checks the energy for NaN
#   5. barrier, then stop if epoch == max_epochs or accuracy > threshold
#   6. SR + ADAM update from the centred local energies
#
# Every decision in steps 4-5 is taken from reduced values that are identical
# on all workers, so all workers leave the loop together.

import os
import sys
import time

import numpy as np

from .ansatz.base import Ansatz
from .ansatz.rbm import ComplexRBM
from .distributed import (
    Communicator,
    MPICommunicator,
    SerialCommunicator,
    run_workers,
    worker_rng,
)
from .errors import NumericalInstabilityError, ValidationError
from .hamiltonians.ising import IsingHamiltonian, validate_ising_strengths
from .observables import correlations, ground_state_accuracy, mean_and_variance
from .optimizer import StochasticReconfiguration, imaginary_time
from .sampler import MetropolisSampler
from .utils import (
    Logger,
    ResultWriter,
    format_epoch_line,
    format_summary,
    make_progress_bar,
)


# ============================================================
# Input Validation
# ============================================================

def validate_inputs(comm: Communicator, ising_strengths, n_spins: int,
                    n_hidden: int, n_samples: int = 2, max_epochs: int = 1) -> None:
    """
    Validate externally supplied inputs once, on the leader, before training.

    The leader's verdict is broadcast so that every worker either proceeds or
    raises the same ValidationError; no worker starts computing alone.
    """
    message = None
    if comm.is_leader:
        try:
            validate_ising_strengths(ising_strengths)
            if int(n_spins) < 1 or int(n_hidden) < 1:
                raise ValidationError(
                    f"Structure has invalid number of units: "
                    f"n_spins={n_spins}, n_hidden={n_hidden}."
                )
            if int(n_samples) < 2:
                raise ValidationError(
                    f"At least two samples per epoch are needed, got {n_samples}."
                )
            if int(max_epochs) < 1:
                raise ValidationError(
                    f"max_epochs must be at least 1, got {max_epochs}."
                )
        except ValidationError as exc:
            message = str(exc)

    message = comm.bcast(message, root=0)
    if message is not None:
        raise ValidationError(message)


# ============================================================
# Result
# ============================================================

class TrainingResult:
    """Outcome of a training run, identical on every worker."""

    def __init__(self, energy: float, error: float, accuracy: float,
                 epochs: int, converged: bool, wall_time: float,
                 logger: Logger = None):
        self.energy = energy
        self.error = error
        self.accuracy = accuracy
        self.epochs = epochs
        self.converged = converged
        self.wall_time = wall_time
        self.logger = logger

    def __repr__(self) -> str:
        return (f"TrainingResult(energy={self.energy:.6f}, error={self.error:.6f}, "
                f"accuracy={self.accuracy:.6f}, epochs={self.epochs}, "
                f"converged={self.converged})")


# ============================================================
# Trainer
# ============================================================

class VMCTrainer:
    """
    Variational Monte Carlo trainer coordinating one or more workers.

    Every worker builds its own ansatz, sampler and optimizer and calls
    train() with its own Communicator. Only the leader (rank 0) prints
    progress and writes result files.
    """

    def __init__(self,
                 ansatz: Ansatz,
                 hamiltonian: IsingHamiltonian,
                 sampler: MetropolisSampler,
                 optimizer: StochasticReconfiguration,
                 comm: Communicator = None,
                 n_samples: int = 15,
                 max_epochs: int = 1000,
                 accuracy_threshold: float = 0.9999,
                 log_every: int = 10,
                 results_dir: str = None,
                 verbose: bool = True):
        """
        Args:
            ansatz:             Complex RBM wavefunction (this worker's copy).
            hamiltonian:        Ising Hamiltonian.
            sampler:            MetropolisSampler over the same ansatz.
            optimizer:          StochasticReconfiguration optimizer.
            comm:               Communicator; defaults to a single worker.
            n_samples:          Samples per epoch per worker (>= 2).
            max_epochs:         Hard stop.
            accuracy_threshold: Stop once the averaged accuracy exceeds this.
            log_every:          Print a progress line every N epochs.
            results_dir:        Directory for tables and the log. None = no files.
            verbose:            Print progress on the leader.
        """
        self.ansatz             = ansatz
        self.hamiltonian        = hamiltonian
        self.sampler            = sampler
        self.optimizer          = optimizer
        self.comm               = comm if comm is not None else SerialCommunicator()
        self.n_samples          = n_samples
        self.max_epochs         = max_epochs
        self.accuracy_threshold = accuracy_threshold
        self.log_every          = log_every
        self.results_dir        = results_dir
        self.verbose            = verbose

        self.logger = Logger()
        self.writer = None
        if results_dir is not None and self.comm.is_leader:
            self.writer = ResultWriter(results_dir)

    def validate(self) -> None:
        """Pre-training check of parameters and sizes, agreed by all workers."""
        validate_inputs(self.comm, self.hamiltonian.ising_strengths,
                        self.ansatz.n_spins, self.ansatz.n_hidden, self.n_samples,
                        self.max_epochs)
        if self.ansatz.n_spins != self.hamiltonian.n_spins:
            raise ValidationError(
                f"Ansatz has {self.ansatz.n_spins} visible units but the "
                f"Hamiltonian has {self.hamiltonian.n_spins} spins."
            )

    def average_weights(self) -> None:
        """w <- sum over workers / P."""
        self.ansatz.w = self.comm.allreduce_sum(self.ansatz.w) / self.comm.size

    def _reduce_statistics(self, batch) -> tuple:
        """Per-worker batch statistics, averaged across workers."""
        P = self.comm.size
        energy, sqerr = mean_and_variance(batch.local_energies)
        corrs = correlations(batch.samples, self.hamiltonian.alignment)
        accuracy = ground_state_accuracy(batch.samples)

        energy = self.comm.allreduce_sum(energy) / P
        stderr = float(np.sqrt(self.comm.allreduce_sum(sqerr))) / P
        corrs = self.comm.allreduce_sum(corrs) / P
        accuracy = self.comm.allreduce_sum(accuracy) / P
        accept = self.comm.allreduce_sum(batch.acceptance_rate) / P
        return energy, stderr, corrs, accuracy, accept

    def train(self) -> TrainingResult:
        """
        Run the lock-stepped training loop until convergence or max_epochs.

        Returns:
            TrainingResult with the last epoch's averaged statistics.

        Raises:
            ValidationError:           invalid inputs (before any sampling).
            NumericalInstabilityError: the averaged energy became NaN.
            SolverError:               an SR system was not positive definite.
        """
        self.validate()

        leader = self.comm.is_leader
        n = self.ansatz.n_spins
        t_start = time.perf_counter()

        if leader and self.writer is not None:
            self.writer.start()

        epoch_iter = make_progress_bar(range(1, self.max_epochs + 1),
                                       desc="VMC Training",
                                       disable=not (leader and self.verbose),
                                       leave=True)

        energy = stderr = accuracy = float('nan')
        converged = False
        epoch = 0

        for epoch in epoch_iter:
            # Synchronization point (a): parameter averaging
            self.average_weights()

            self.sampler.reset_acceptance_stats()
            batch = self.sampler.draw(epoch, self.n_samples, self.hamiltonian)

            # Synchronization point (b): statistics
            energy, stderr, corrs, accuracy, accept = self._reduce_statistics(batch)

            if leader:
                self.logger.record(epoch, energy, stderr, accuracy, accept, corrs)
                line = format_epoch_line(epoch, imaginary_time(epoch, n), energy, stderr)
                if self.writer is not None:
                    self.writer.log(line)
                if self.verbose and (epoch % self.log_every == 0 or epoch == 1):
                    print(line)
                epoch_iter.set_postfix({'E': f'{energy:.5f}',
                                        'acc': f'{accuracy:.4f}',
                                        'accept': f'{accept:.3f}'})

            if np.isnan(energy):
                raise NumericalInstabilityError(
                    f"Numerical instability: averaged energy is NaN at epoch {epoch}."
                )
            self.comm.barrier()

            if accuracy > self.accuracy_threshold:
                converged = True
                break
            if epoch == self.max_epochs:
                break

            e_centered = batch.local_energies - np.mean(batch.local_energies)
            update_norm = self.optimizer.step(self.ansatz, batch, e_centered, epoch)
            if leader:
                self.logger.record_update(update_norm)

        wall_time = time.perf_counter() - t_start

        if leader:
            summary = format_summary(wall_time, n, energy, stderr,
                                     self.hamiltonian.J, self.hamiltonian.B, accuracy)
            if self.verbose:
                print("\nTraining complete.")
                print(summary)
            if self.writer is not None:
                self.writer.log(summary)
                self.writer.write_tables(self.logger, self.hamiltonian.alignment)
                self.logger.save(os.path.join(self.results_dir, "training_history.npz"))

        return TrainingResult(energy, stderr, accuracy, epoch, converged,
                              wall_time, self.logger if leader else None)


# ============================================================
# Bootstrap
# ============================================================

def build_worker(comm: Communicator, ising_strengths, n_spins: int, n_hidden: int,
                 seed: int = 42, n_samples: int = 15, max_epochs: int = 1000,
                 accuracy_threshold: float = 0.9999, min_thermal_steps: int = 1,
                 n_threads: int = 1, log_every: int = 10,
                 results_dir: str = None, verbose: bool = True) -> VMCTrainer:
    """
    Validate the inputs and build one worker's trainer.

    Each worker gets its own random stream derived from (seed, rank), used
    first for the weight initialisation and then by the sampler.
    """
    validate_inputs(comm, ising_strengths, n_spins, n_hidden, n_samples, max_epochs)

    rng = worker_rng(seed, comm.rank)
    hamiltonian = IsingHamiltonian.from_strengths(n_spins, ising_strengths)
    ansatz = ComplexRBM(n_spins, n_hidden, rng=rng)
    sampler = MetropolisSampler(ansatz, n_spins, seed=rng,
                                min_thermal_steps=min_thermal_steps,
                                n_threads=n_threads)
    optimizer = StochasticReconfiguration(n_threads=n_threads)

    return VMCTrainer(ansatz, hamiltonian, sampler, optimizer, comm=comm,
                      n_samples=n_samples, max_epochs=max_epochs,
                      accuracy_threshold=accuracy_threshold, log_every=log_every,
                      results_dir=results_dir, verbose=verbose)


def train_ising(ising_strengths, n_spins: int, n_hidden: int,
                n_workers: int = 1, backend: str = 'threads',
                **kwargs) -> TrainingResult:
    """
    Train an RBM ground state for the Ising chain with P cooperating workers.

    Args:
        ising_strengths: [J, B] with |B| < 1.
        n_spins:         Number of spins (visible units).
        n_hidden:        Number of hidden units.
        n_workers:       P, for the 'threads' backend. With 'mpi' the worker
                         count is the number of launched processes.
        backend:         'threads' (in-process workers) or 'mpi'.
        **kwargs:        Passed on to build_worker.

    Returns:
        The leader's TrainingResult (with its Logger).
    """
    def worker(comm):
        return build_worker(comm, ising_strengths, n_spins, n_hidden, **kwargs).train()

    if backend == 'mpi':
        comm = MPICommunicator()
        try:
            return worker(comm)
        except BaseException as exc:
            # A rank that raises alone would leave its peers blocked in Allreduce
            print(f"Rank {comm.rank}: {exc!r}; aborting all processes.",
                  file=sys.stderr, flush=True)
            comm.abort()
            raise
    if backend == 'threads':
        return run_workers(worker, n_workers)[0]
    raise ValidationError(f"Unknown backend '{backend}'. Choose 'threads' or 'mpi'.")
