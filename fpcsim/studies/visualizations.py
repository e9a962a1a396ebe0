"""
Plots for FPCS study results.

Creates graphs showing:
- Outcome rates against the malicious fraction, one line per strategy
- Distribution of honest node finalization rounds
- Like fraction per transaction over the rounds of a recorded run
"""

import os
from typing import Dict, List, Sequence, Tuple

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend for server
import matplotlib.pyplot as plt
import numpy as np

from ..framework.tracker import RunResult


def plot_outcome_rates(sweep: Dict[str, List[dict]], output_path: str) -> str:
    """
    Plot convergence and disagreement rates against malicious fraction.

    Args:
        sweep: strategy name -> list of {"malicious_fraction", "outcome_rates"} points
        output_path: PNG file to write

    Returns:
        The written path
    """
    fig, axes = plt.subplots(1, 2, figsize=(14, 6), sharey=True)
    fig.suptitle('FPCS Outcomes vs. Malicious Fraction', fontsize=14, fontweight='bold')

    for strategy, points in sorted(sweep.items()):
        fractions = np.array([p["malicious_fraction"] for p in points])
        converged = np.array([p["outcome_rates"].get("converged", 0.0) for p in points])
        disagreed = np.array([p["outcome_rates"].get("disagreed", 0.0) for p in points])
        axes[0].plot(fractions, converged, marker='o', label=strategy)
        axes[1].plot(fractions, disagreed, marker='s', label=strategy)

    axes[0].set_title('Convergence rate')
    axes[1].set_title('Disagreement rate')
    for ax in axes:
        ax.set_xlabel('Malicious fraction')
        ax.set_ylim(-0.05, 1.05)
        ax.grid(True, alpha=0.3)
        ax.legend()
    axes[0].set_ylabel('Rate')

    plt.tight_layout()
    _ensure_dir(output_path)
    plt.savefig(output_path, dpi=150)
    plt.close()
    return output_path


def plot_finalization_histogram(results: Sequence[RunResult], output_path: str) -> str:
    """Histogram of the round at which honest nodes finalized everything."""
    rounds = np.array([r for result in results for r in result.honest_finalization_rounds()])

    fig, ax = plt.subplots(figsize=(10, 6))
    if rounds.size:
        bins = np.arange(rounds.min(), rounds.max() + 2) - 0.5
        ax.hist(rounds, bins=bins, color='steelblue', edgecolor='black', alpha=0.8)
        ax.axvline(rounds.mean(), color='red', linestyle='--', label=f'mean={rounds.mean():.2f}')
        ax.legend()
    ax.set_xlabel('Finalization round')
    ax.set_ylabel('Honest nodes')
    ax.set_title(f'Node Finalization Rounds ({len(results)} runs)')
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    _ensure_dir(output_path)
    plt.savefig(output_path, dpi=150)
    plt.close()
    return output_path


def plot_opinion_trajectory(
    result: RunResult,
    output_path: str,
    threshold_band: Tuple[float, float] = (0.3, 0.7),
) -> str:
    """Fraction of updating nodes liking each transaction, round by round."""
    if not result.history:
        raise ValueError("Run has no recorded history; set record_history: true")

    rounds = np.array([record.round_number for record in result.history])
    tx_ids = sorted({tx for record in result.history for ops in record.opinions.values() for tx in ops})

    fig, ax = plt.subplots(figsize=(12, 6))
    for tx_id in tx_ids:
        fractions = np.array([
            np.mean([ops[tx_id] for ops in record.opinions.values()]) if record.opinions else 0.0
            for record in result.history
        ])
        ax.plot(rounds, fractions, marker='.', label=f'tx{tx_id}')

    ax.axhspan(*threshold_band, color='gray', alpha=0.1)
    ax.set_xlabel('Round')
    ax.set_ylabel('Like fraction')
    ax.set_ylim(-0.05, 1.05)
    ax.set_title(f'Opinion Trajectory (seed={result.seed}, {result.outcome.value})')
    ax.grid(True, alpha=0.3)
    ax.legend(loc='best', fontsize='small')

    plt.tight_layout()
    _ensure_dir(output_path)
    plt.savefig(output_path, dpi=150)
    plt.close()
    return output_path


def _ensure_dir(path: str):
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
