#!/usr/bin/env python3
"""
Adversary Sweep

Measures how FPCS degrades as the malicious share of the network grows:
- One batch of seeded trials per (strategy, malicious fraction) pair
- Convergence / disagreement / timeout rates per point
- Mean rounds to termination
- Optional plot of outcome rates against malicious fraction

Usage:
    fpcs-sweep configs/star_adversarial.yaml --fractions 0 0.1 0.2 0.3 --trials 100
"""

import argparse
import json
import logging
import os
import sys
import time
from typing import Dict, List, Optional, Sequence

from ..consensus.behavior import ADVERSARY_STRATEGIES
from ..consensus.errors import SimulationError
from ..framework.config import SimulationConfig, load_config
from ..framework.runner import run_trials


logger = logging.getLogger(__name__)

DEFAULT_FRACTIONS = [0.0, 0.05, 0.1, 0.15, 0.2, 0.25, 0.3]


# =============================================================================
# Sweep
# =============================================================================

def sweep(
    config: SimulationConfig,
    strategies: Sequence[str],
    fractions: Sequence[float],
    trials: int,
    base_seed: Optional[int] = None,
) -> Dict[str, List[dict]]:
    """
    Run trial batches over every strategy and malicious fraction.

    Faulty counts from the config are kept; the malicious fraction replaces
    any malicious count or fraction it specifies.

    Returns:
        strategy -> list of per-fraction summaries (TrialSummary.to_dict plus
        "malicious_fraction" and "malicious_count")
    """
    results: Dict[str, List[dict]] = {}
    for strategy in strategies:
        points = []
        for fraction in fractions:
            variant = config.with_overrides(
                name=f"{config.name}[{strategy}@{fraction:.2f}]",
                network={
                    "malicious_fraction": fraction,
                    "adversary_strategy": strategy,
                    "adversary_params": config.network.adversary_params
                    if strategy == config.network.adversary_strategy else {},
                },
            )
            summary = run_trials(variant, trials, base_seed=base_seed)
            point = summary.to_dict()
            point["malicious_fraction"] = fraction
            point["malicious_count"] = variant.network.counts()[2]
            points.append(point)
            logger.debug("%s: %s", variant.name, point["outcome_rates"])
        results[strategy] = points
    return results


def format_table(results: Dict[str, List[dict]]) -> str:
    """Render sweep results as a fixed-width table."""
    header = f"{'Strategy':<20} {'Malicious':>10} {'Converged':>10} {'Disagreed':>10} {'Timed out':>10} {'Rounds':>8}"
    lines = [header, "-" * len(header)]
    for strategy, points in results.items():
        for point in points:
            rates = point["outcome_rates"]
            lines.append(
                f"{strategy:<20} "
                f"{point['malicious_fraction']:>10.2f} "
                f"{rates.get('converged', 0.0):>10.1%} "
                f"{rates.get('disagreed', 0.0):>10.1%} "
                f"{rates.get('timed_out', 0.0):>10.1%} "
                f"{point['mean_rounds']:>8.2f}"
            )
    return "\n".join(lines)


# =============================================================================
# Main
# =============================================================================

def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Sweep FPCS over adversary strategies and fractions")
    parser.add_argument("config", help="Path to a YAML simulation config")
    parser.add_argument(
        "--strategies", nargs="+", default=sorted(ADVERSARY_STRATEGIES),
        help="Adversary strategies to sweep",
    )
    parser.add_argument(
        "--fractions", nargs="+", type=float, default=DEFAULT_FRACTIONS,
        help="Malicious fractions to sweep",
    )
    parser.add_argument("--trials", type=int, default=100, help="Seeded runs per point")
    parser.add_argument("--seed", type=int, default=None, help="Base seed (defaults to config seed)")
    parser.add_argument("--output-dir", default="results_adversary_sweep", help="Directory for JSON and plots")
    parser.add_argument("--plot", action="store_true", help="Also write an outcome-rate plot")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log per-point details")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    unknown = [s for s in args.strategies if s not in ADVERSARY_STRATEGIES]
    if unknown:
        print(f"Error: unknown strategies {unknown}. Valid: {sorted(ADVERSARY_STRATEGIES)}", file=sys.stderr)
        return 2

    try:
        config = load_config(args.config)
    except (OSError, SimulationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    print("=" * 80)
    print(f"FPCS ADVERSARY SWEEP: {config.name}")
    print("=" * 80)
    print(f"Strategies: {', '.join(args.strategies)}")
    print(f"Fractions: {', '.join(f'{f:.2f}' for f in args.fractions)}")
    print(f"Trials per point: {args.trials}")
    print()

    started = time.time()
    try:
        results = sweep(config, args.strategies, args.fractions, args.trials, base_seed=args.seed)
    except SimulationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    print(format_table(results))
    print(f"\nElapsed: {time.time() - started:.1f}s")

    os.makedirs(args.output_dir, exist_ok=True)
    output_path = os.path.join(args.output_dir, "adversary_sweep.json")
    with open(output_path, "w") as f:
        json.dump({"config": config.to_dict(), "trials": args.trials, "results": results}, f, indent=2)
    print(f"Results saved to: {output_path}")

    if args.plot:
        from .visualizations import plot_outcome_rates
        plot_path = plot_outcome_rates(results, os.path.join(args.output_dir, "outcome_rates.png"))
        print(f"Plot saved to: {plot_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
