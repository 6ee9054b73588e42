# isingrbm/utils.py
#
# Infrastructure utilities: metric history, result files, plotting, config
# loading and the progress bar.
#
# Two plots tell the story of a training run:
#   1. Energy convergence: energy +/- standard error per epoch, plus the
#      ground-state accuracy signal that ends training
#   2. Correlation profile: correlation of every spin with the middle spin
#
# Result files follow a fixed layout so downstream analysis can rely on it:
#   energies_<alignment>.csv      columns Energy, Error; one row per epoch
#   correlations_<alignment>.csv  one row per spin, one column per epoch
#   optimization_results.log      per-epoch progress lines + final summary

import os
import platform
import time

import matplotlib
import matplotlib.pyplot as plt
import numpy as np
import yaml
from tqdm import tqdm


# ============================================================
# Training Logger
# ============================================================

class Logger:
    """
    Records training metrics epoch by epoch.

    Tracked quantities:
      - energies: worker-averaged <E> per epoch (should decrease)
      - errors: standard error of the energy estimate
      - accuracies: fraction of non-zero sampled spins (convergence signal)
      - acceptance_rates: MCMC acceptance fraction (healthy: 0.3-0.7)
      - update_norms: size of the applied parameter step
      - correlations: correlation vector against the middle spin, per epoch

    Uses Python lists internally (O(1) append) and converts to numpy on demand.
    """

    def __init__(self):
        self.epochs           = []
        self.energies         = []
        self.errors           = []
        self.accuracies       = []
        self.acceptance_rates = []
        self.update_norms     = []
        self.correlations     = []

    def record(self, epoch: int, energy: float, error: float, accuracy: float,
               acceptance_rate: float, correlations: np.ndarray) -> None:
        """Record metrics for one epoch."""
        self.epochs.append(epoch)
        self.energies.append(energy)
        self.errors.append(error)
        self.accuracies.append(accuracy)
        self.acceptance_rates.append(acceptance_rate)
        self.correlations.append(np.array(correlations, dtype=float))

    def record_update(self, update_norm: float) -> None:
        """Record the size of the parameter step taken after the latest epoch."""
        self.update_norms.append(update_norm)

    def __len__(self) -> int:
        return len(self.epochs)

    @property
    def history(self) -> dict:
        """Return all metrics as a dict of numpy arrays (ready for plotting)."""
        return {
            'epochs':           np.array(self.epochs),
            'energies':         np.array(self.energies),
            'errors':           np.array(self.errors),
            'accuracies':       np.array(self.accuracies),
            'acceptance_rates': np.array(self.acceptance_rates),
            'update_norms':     np.array(self.update_norms),
            'correlations':     np.array(self.correlations),
        }

    def save(self, path: str) -> None:
        """Save training history to a .npz file (numpy compressed archive)."""
        np.savez(path, **self.history)

    @classmethod
    def load(cls, path: str) -> 'Logger':
        """Load training history from a .npz file."""
        logger = cls()
        with np.load(path) as data:
            logger.epochs           = list(data['epochs'])
            logger.energies         = list(data['energies'])
            logger.errors           = list(data['errors'])
            logger.accuracies       = list(data['accuracies'])
            logger.acceptance_rates = list(data['acceptance_rates'])
            logger.update_norms     = list(data['update_norms'])
            logger.correlations     = list(data['correlations'])
        return logger

    def summary(self, last_n: int = 10) -> None:
        """Print a formatted summary of the last n recorded epochs."""
        if not self.energies:
            print("Logger: no data recorded yet.")
            return
        n = min(last_n, len(self.energies))
        print(f"Training summary (last {n} epochs):")
        for i in range(-n, 0):
            print(
                f"  Epoch {self.epochs[i]:4d} | "
                f"E = {self.energies[i]:+.6f} +/- {self.errors[i]:.6f} | "
                f"acc = {self.accuracies[i]:.4f} | "
                f"accept = {self.acceptance_rates[i]:.3f}"
            )


# ============================================================
# Result Files
# ============================================================

def format_epoch_line(epoch: int, tau: float, energy: float, error: float) -> str:
    """One progress line: energy of the state reached at imaginary time tau."""
    return f"    Epoch {epoch}: E[ψ(α(τ={tau:.3f}))] = {energy:.3f} ± {error:.3f}"


def format_summary(wall_time: float, n_spins: int, energy: float, error: float,
                   J: float, B: float, accuracy: float) -> str:
    """Final report written once by the leader after training."""
    return (
        f"\n    Optimization time: {wall_time:.3f} seconds for n = {n_spins} spins."
        f"\n    Ground state energy: E[ψ(α(τ → ∞))] = {energy:.3f} ± {error:.3f}"
        f" for J = {J:.1f} and B = {B:.1f}"
        f"\n    Ground state accuracy: {accuracy:.6f}\n"
        f"\n    This program was run with Python {platform.python_version()} "
        f"and numpy {np.__version__}.\n"
    )


class ResultWriter:
    """
    Writes the leader's result files into one directory.

    The log file is opened in write mode by start() and appended to
    afterwards, so a fresh run never mixes with an old log.
    """

    LOG_NAME = 'optimization_results.log'

    def __init__(self, results_dir: str):
        self.results_dir = results_dir
        os.makedirs(results_dir, exist_ok=True)
        self.log_path = os.path.join(results_dir, self.LOG_NAME)

    def start(self) -> None:
        """Begin a new log file with a dated title."""
        stamp = time.localtime()
        title = (f"Stochastic Optimization - date: {time.strftime('%Y%m%d', stamp)} "
                 f"| time: {time.strftime('%H%M%S', stamp)}")
        with open(self.log_path, 'w', encoding='utf-8') as f:
            f.write(title + '\n' + '-' * len(title) + '\n\n')

    def log(self, message: str) -> None:
        with open(self.log_path, 'a', encoding='utf-8') as f:
            f.write(message + '\n')

    def write_tables(self, logger: Logger, alignment: str) -> tuple:
        """
        Write the energy and correlation tables.

        Returns:
            (energies_path, correlations_path)
        """
        energies_path = os.path.join(self.results_dir, f"energies_{alignment}.csv")
        correlations_path = os.path.join(self.results_dir, f"correlations_{alignment}.csv")

        energies = np.column_stack([logger.energies, logger.errors])
        np.savetxt(energies_path, energies, delimiter=',',
                   header='Energy,Error', comments='')

        # Transposed: one row per spin, one column per epoch
        correlations = np.array(logger.correlations).T
        header = ','.join(f"Epoch {epoch}" for epoch in logger.epochs)
        np.savetxt(correlations_path, correlations, delimiter=',',
                   header=header, comments='')

        return energies_path, correlations_path


# ============================================================
# Plotting
# ============================================================

def plot_energy_convergence(history: dict,
                            exact_energy: float = None,
                            save_path: str = None) -> None:
    """
    Plot energy vs training epoch with a +/- standard error band.

    Left panel: energy convergence toward the ground state, with an optional
    reference energy as a dashed red line.
    Right panel: ground-state accuracy (training stops above 0.9999).

    Args:
        history:      Dict from Logger.history.
        exact_energy: Reference ground state energy (optional).
        save_path:    File path to save figure. None = plt.show().
    """
    epochs   = history['epochs']
    energies = history['energies']
    errors   = history['errors']

    fig, axes = plt.subplots(1, 2, figsize=(12, 4))

    # Left: energy convergence
    ax = axes[0]
    ax.plot(epochs, energies, color='royalblue', linewidth=1.5, label='VMC ⟨E⟩')
    ax.fill_between(epochs,
                    energies - errors,
                    energies + errors,
                    alpha=0.25, color='royalblue', label='±1 standard error')

    if exact_energy is not None:
        ax.axhline(exact_energy, color='crimson', linestyle='--', linewidth=1.5,
                   label=f'Reference: {exact_energy:.4f}')

    ax.set_xlabel('Training Epoch')
    ax.set_ylabel('Energy')
    ax.set_title('VMC Energy Convergence')
    ax.legend()
    ax.grid(True, alpha=0.3)

    # Right: ground-state accuracy
    ax = axes[1]
    ax.plot(epochs, history['accuracies'], color='seagreen', linewidth=1.5,
            label='Accuracy')
    ax.axhline(0.9999, color='orange', linestyle=':', linewidth=1.2, alpha=0.8,
               label='Stopping threshold')
    ax.set_ylim(0, 1.05)
    ax.set_xlabel('Training Epoch')
    ax.set_ylabel('Fraction of non-zero spins')
    ax.set_title('Ground State Accuracy')
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"Saved plot: {save_path}")
    else:
        plt.show()

    plt.close(fig)


def plot_correlations(history: dict, alignment: str = 'F',
                      save_path: str = None) -> None:
    """
    Plot the final-epoch correlation of every spin with the middle spin.

    For a well-converged ferromagnet the profile is flat at +1. Anti-ferromagnetic
    chains flip odd sites, so their profile is flat only when n // 2 is even.
    """
    corrs = history['correlations'][-1]
    sites = np.arange(len(corrs))

    fig, ax = plt.subplots(figsize=(6, 4))
    ax.plot(sites, corrs, 'o-', color='royalblue', markersize=5, linewidth=1.5)
    ax.axvline(len(corrs) // 2, color='crimson', linestyle='--', alpha=0.8,
               label='Reference spin')
    ax.set_ylim(-1.05, 1.05)
    ax.set_xlabel('Site j')
    ax.set_ylabel('C(j)')
    label = 'anti-ferromagnetic' if alignment == 'A' else 'ferromagnetic'
    ax.set_title(f'Spin-Spin Correlations ({label})')
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"Saved plot: {save_path}")
    else:
        plt.show()

    plt.close(fig)


def use_headless_backend() -> None:
    """Render plots to files only (for batch runs without a display)."""
    matplotlib.use('Agg')


# ============================================================
# Configuration Loading
# ============================================================

def load_config(path: str) -> dict:
    """
    Load a YAML experiment config file and return as a dict.

    YAML supports inline comments, making experiment configs self-documenting
    and reproducible.
    """
    with open(path, 'r') as f:
        config = yaml.safe_load(f)
    return config


# ============================================================
# Progress Bar
# ============================================================

def make_progress_bar(iterable, desc: str = "", total: int = None,
                      disable: bool = False, **kwargs):
    """Wrap an iterable with a tqdm progress bar."""
    return tqdm(iterable, desc=desc, total=total, disable=disable, **kwargs)
