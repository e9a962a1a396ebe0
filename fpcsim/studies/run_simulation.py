#!/usr/bin/env python3
"""
Run an FPCS simulation from a YAML config.

Runs the config once (optionally recording and plotting the opinion
trajectory) or as a batch of seeded trials with outcome statistics.

Usage:
    fpcs-run configs/all_honest.yaml
    fpcs-run configs/star_adversarial.yaml --trials 200 --output results/star.json
"""

import argparse
import json
import logging
import os
import sys
import time

from ..consensus.errors import SimulationError
from ..framework.config import load_config
from ..framework.runner import run_simulation, run_trials
from .visualizations import plot_finalization_histogram, plot_opinion_trajectory


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run an FPCS simulation")
    parser.add_argument("config", help="Path to a YAML simulation config")
    parser.add_argument("--seed", type=int, default=None, help="Override the config seed")
    parser.add_argument("--trials", type=int, default=1, help="Number of seeded runs")
    parser.add_argument("--workers", type=int, default=None, help="Threads per round")
    parser.add_argument("--output", default=None, help="Write results as JSON to this file")
    parser.add_argument("--plot-dir", default=None, help="Write PNG plots to this directory")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log per-round details")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
        if args.workers is not None:
            config = config.with_overrides(protocol={"workers": args.workers})
        if args.plot_dir and args.trials == 1:
            config = config.with_overrides(record_history=True)
    except (OSError, SimulationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    print("=" * 80)
    print(f"FPCS SIMULATION: {config.name}")
    print("=" * 80)
    if config.description:
        print(config.description.strip())
    honest, faulty, malicious = config.network.counts()
    print(f"Nodes: {config.network.node_count} (honest={honest}, faulty={faulty}, malicious={malicious})")
    print(f"Conflicts: {config.conflicts.topology}, {config.conflicts.transaction_count} transactions")
    print(f"Protocol: k={config.protocol.sample_size}, "
          f"threshold=[{config.protocol.threshold_low}, {config.protocol.threshold_high}], "
          f"L={config.protocol.finalization_threshold}, max_rounds={config.protocol.max_rounds}")
    print()

    started = time.time()
    try:
        if args.trials == 1:
            result = run_simulation(config, seed=args.seed)
            print(result)
            output = {"config": config.to_dict(), "result": result.to_dict()}
            results = [result]
        else:
            summary = run_trials(config, args.trials, base_seed=args.seed, keep_results=bool(args.plot_dir))
            print(summary)
            output = {"config": config.to_dict(), "summary": summary.to_dict()}
            results = summary.results
    except SimulationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    print(f"\nElapsed: {time.time() - started:.2f}s")

    if args.output:
        directory = os.path.dirname(args.output)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(args.output, "w") as f:
            json.dump(output, f, indent=2)
        print(f"Results saved to: {args.output}")

    if args.plot_dir:
        plot_finalization_histogram(results, os.path.join(args.plot_dir, "finalization_rounds.png"))
        if args.trials == 1:
            plot_opinion_trajectory(
                results[0],
                os.path.join(args.plot_dir, "opinion_trajectory.png"),
                threshold_band=(config.protocol.threshold_low, config.protocol.threshold_high),
            )
        print(f"Visualizations saved to {args.plot_dir}/")

    return 0


if __name__ == "__main__":
    sys.exit(main())
