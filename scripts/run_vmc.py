#!/usr/bin/env python3
# scripts/run_vmc.py
#
# ============================================================
# CLI ENTRY POINT — Train an RBM ground state from a YAML config
# ============================================================
#
# USAGE:
#   python scripts/run_vmc.py configs/ising_ferro.yaml
#   python scripts/run_vmc.py configs/ising_antiferro.yaml --workers 4
#   mpiexec -n 4 python scripts/run_vmc.py configs/ising_ferro.yaml --backend mpi
#
# WHAT THIS SCRIPT DOES:
#   1. Loads the YAML config to get all hyperparameters
#   2. Validates [J, B] and the network sizes (|B| < 1, n, m >= 1)
#   3. Launches P workers, each with its own RBM, sampler and SR optimizer
#   4. Runs the lock-stepped VMC loop until the accuracy threshold or
#      max_epochs is reached
#   5. Writes energies_<A|F>.csv, correlations_<A|F>.csv and the log file,
#      and saves the convergence and correlation plots
#
# ============================================================

import argparse
import os
import sys

# Add project root to path so the package imports without installation
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from isingrbm.errors import ValidationError
from isingrbm.trainer import train_ising
from isingrbm.utils import (
    load_config,
    plot_correlations,
    plot_energy_convergence,
    use_headless_backend,
)


# ============================================================
# SECTION: Config → keyword arguments
# ============================================================

def build_run_kwargs(cfg: dict, workers: int = None, backend: str = None) -> dict:
    """Flatten the config sections into train_ising() keyword arguments."""
    try:
        s = cfg['system']
        a = cfg['ansatz']
        samp = cfg['sampler']
        t = cfg['training']
    except (KeyError, TypeError) as exc:
        raise ValidationError(f"Config is missing a required section: {exc}") from exc
    out = cfg.get('output', {})

    try:
        return dict(
            ising_strengths    = [s['J'], s['B']],
            n_spins            = int(s['n_spins']),
            n_hidden           = int(a['n_hidden']),
            n_workers          = int(workers if workers is not None else t.get('n_workers', 1)),
            backend            = backend if backend is not None else t.get('backend', 'threads'),
            seed               = int(a.get('seed', 42)),
            n_samples          = int(samp.get('n_samples', 15)),
            min_thermal_steps  = int(samp.get('min_thermal_steps', 1)),
            n_threads          = int(samp.get('n_threads', 1)),
            max_epochs         = int(t.get('max_epochs', 1000)),
            accuracy_threshold = float(t.get('accuracy_threshold', 0.9999)),
            log_every          = int(t.get('log_every', 10)),
            results_dir        = out.get('results_dir', 'results/default/'),
        )
    except KeyError as exc:
        raise ValidationError(f"Config is missing a required key: {exc}") from exc


# ============================================================
# SECTION: Experiment Summary Printer
# ============================================================

def print_experiment_summary(kw: dict) -> None:
    """Print a human-readable summary of the experiment configuration."""
    J, B = kw['ising_strengths']
    n, m = kw['n_spins'], kw['n_hidden']
    alignment = 'anti-ferromagnetic' if J < 0 else 'ferromagnetic'

    print("=" * 62)
    print("  Complex RBM — Ising Chain Ground State")
    print("=" * 62)
    print(f"  System:      open TFIM  |  N = {n} spins  |  {alignment}")
    print(f"               J = {J},  B = {B}")
    print(f"  Ansatz:      complex RBM  |  M = {m} hidden  |  {n + m + n * m} parameters")
    print(f"  Optimizer:   SR + ADAM  |  dtau = {1.0 / n if n < 100 else 10.0 / n:.4f}")
    print(f"  Training:    <= {kw['max_epochs']} epochs  |  "
          f"{kw['n_samples']} samples/epoch/worker")
    print(f"  Workers:     {kw['n_workers'] if kw['backend'] == 'threads' else 'mpi'}"
          f"  ({kw['backend']})  |  {kw['n_threads']} thread(s) each")
    print(f"  Output:      {kw['results_dir']}")
    print("=" * 62)
    print()


# ============================================================
# SECTION: Main Entry Point
# ============================================================

def main():
    parser = argparse.ArgumentParser(
        description='Train a complex RBM ground state of the open Ising chain.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_vmc.py configs/ising_ferro.yaml
  python scripts/run_vmc.py configs/ising_antiferro.yaml --workers 4
        """
    )
    parser.add_argument(
        'config',
        help='Path to a YAML config file (e.g. configs/ising_ferro.yaml)'
    )
    parser.add_argument('--workers', type=int, default=None,
                        help='Override training.n_workers (threads backend)')
    parser.add_argument('--backend', choices=['threads', 'mpi'], default=None,
                        help='Override training.backend')
    parser.add_argument('--no-plot', action='store_true',
                        help='Skip the convergence and correlation plots')
    args = parser.parse_args()

    # ---- Load config ----------------------------------------------------------
    cfg = load_config(args.config)
    kw = build_run_kwargs(cfg, workers=args.workers, backend=args.backend)
    make_plots = cfg.get('output', {}).get('plot', True) and not args.no_plot

    # ---- Train ---------------------------------------------------------------
    leader = True
    if kw['backend'] == 'mpi':
        from isingrbm.distributed import MPICommunicator
        leader = MPICommunicator().is_leader
    if leader:
        print_experiment_summary(kw)

    result = train_ising(**kw)

    # Non-leader MPI ranks have no history to plot
    if result.logger is None:
        return

    # ---- Plots ---------------------------------------------------------------
    if make_plots:
        use_headless_backend()
        alignment = 'A' if kw['ising_strengths'][0] < 0 else 'F'
        history = result.logger.history
        plot_energy_convergence(
            history   = history,
            save_path = os.path.join(kw['results_dir'], 'energy_convergence.png'),
        )
        plot_correlations(
            history   = history,
            alignment = alignment,
            save_path = os.path.join(kw['results_dir'], f'correlations_{alignment}.png'),
        )

    print(f"\n{result}")
    print("\nDone.")


if __name__ == '__main__':
    main()
