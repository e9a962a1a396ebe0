"""
Runner and Study Tests

Tests for:
- Graph and distribution builders
- Trial batches and summaries
- Adversary sweep helpers
- Study CLIs and plots
"""

import json

import pytest

from fpcsim.consensus import Balanced, Concentrated, InvalidConfiguration, Outcome, Topology, Uniform
from fpcsim.framework import (
    ConflictSpec,
    DistributionSpec,
    build_distribution,
    build_graph,
    run_simulation,
    run_trials,
)
from fpcsim.studies import adversary_sweep, run_simulation as run_simulation_cli
from fpcsim.studies.visualizations import (
    plot_finalization_histogram,
    plot_opinion_trajectory,
    plot_outcome_rates,
)


# =============================================================================
# Builder Tests
# =============================================================================

class TestBuilders:
    def test_build_complete_graph(self):
        graph = build_graph(ConflictSpec(topology="complete", transaction_count=6, conflict_set_count=2))
        assert graph.topology == Topology.COMPLETE
        assert graph.conflict_set_ids == [0, 1]

    def test_build_star_graph_default_center(self):
        graph = build_graph(ConflictSpec(topology="star", transaction_count=3))
        assert graph.center == 0

    def test_center_on_complete_rejected(self):
        with pytest.raises(InvalidConfiguration):
            build_graph(ConflictSpec(topology="complete", transaction_count=3, center=1))

    def test_build_distributions(self):
        assert isinstance(build_distribution(DistributionSpec()), Uniform)
        assert isinstance(build_distribution(DistributionSpec(kind="concentrated", k=2)), Concentrated)
        assert isinstance(build_distribution(DistributionSpec(kind="balanced", liked=1)), Balanced)

    def test_missing_distribution_parameter(self):
        with pytest.raises(InvalidConfiguration):
            build_distribution(DistributionSpec(kind="concentrated"))


# =============================================================================
# Trial Tests
# =============================================================================

class TestRunTrials:
    def test_counts_add_up(self, adversarial_config):
        """Outcome counts sum to the number of trials."""
        summary = run_trials(adversarial_config, trials=12, base_seed=100)
        assert sum(summary.outcome_counts.values()) == 12
        assert sum(summary.outcome_rates.values()) == pytest.approx(1.0)
        assert set(summary.outcome_counts) == {"converged", "disagreed", "timed_out"}

    def test_trials_use_consecutive_seeds(self, uniform_config):
        summary = run_trials(uniform_config, trials=3, base_seed=20, keep_results=True)
        assert [r.seed for r in summary.results] == [20, 21, 22]
        single = run_simulation(uniform_config, seed=21)
        assert summary.results[1].to_dict() == single.to_dict()

    def test_round_statistics(self, scenario_a_config):
        summary = run_trials(scenario_a_config, trials=5)
        assert summary.convergence_rate == 1.0
        assert summary.rate(Outcome.DISAGREED) == 0.0
        assert summary.mean_rounds == 1
        assert summary.median_rounds == 1
        assert summary.max_rounds == 1
        assert summary.mean_finalization_round == 1
        assert summary.base_seed == scenario_a_config.seed

    def test_results_dropped_by_default(self, scenario_a_config):
        assert run_trials(scenario_a_config, trials=2).results == []

    def test_invalid_trial_count(self, scenario_a_config):
        with pytest.raises(InvalidConfiguration):
            run_trials(scenario_a_config, trials=0)

    def test_summary_export(self, scenario_a_config):
        summary = run_trials(scenario_a_config, trials=2)
        data = json.loads(json.dumps(summary.to_dict()))
        assert data["trials"] == 2
        assert "Outcomes: converged=100.0%" in str(summary)


# =============================================================================
# Study Tests
# =============================================================================

class TestAdversarySweep:
    def test_sweep_points(self, adversarial_config):
        results = adversary_sweep.sweep(
            adversarial_config, ["echo", "fixed"], [0.0, 0.1], trials=3, base_seed=0,
        )
        assert list(results) == ["echo", "fixed"]
        for points in results.values():
            assert [p["malicious_fraction"] for p in points] == [0.0, 0.1]
            assert [p["malicious_count"] for p in points] == [0, 2]
            assert all(p["trials"] == 3 for p in points)

    def test_format_table(self, adversarial_config):
        results = adversary_sweep.sweep(adversarial_config, ["random"], [0.05], trials=2)
        table = adversary_sweep.format_table(results)
        assert "Strategy" in table.splitlines()[0]
        assert "random" in table

    def test_cli_writes_json(self, tmp_path, capsys):
        config_path = tmp_path / "c.yaml"
        config_path.write_text("name: cli\nnetwork: {node_count: 8}\nprotocol: {sample_size: 4, max_rounds: 20}\n")
        code = adversary_sweep.main([
            str(config_path), "--strategies", "echo", "--fractions", "0", "0.25",
            "--trials", "2", "--output-dir", str(tmp_path / "out"), "--plot",
        ])
        assert code == 0
        data = json.loads((tmp_path / "out" / "adversary_sweep.json").read_text())
        assert len(data["results"]["echo"]) == 2
        assert (tmp_path / "out" / "outcome_rates.png").exists()
        assert "FPCS ADVERSARY SWEEP: cli" in capsys.readouterr().out

    def test_cli_rejects_unknown_strategy(self, tmp_path):
        config_path = tmp_path / "c.yaml"
        config_path.write_text("name: cli\n")
        assert adversary_sweep.main([str(config_path), "--strategies", "sneaky"]) == 2


class TestRunSimulationCli:
    def test_single_run_with_plots(self, tmp_path, capsys):
        config_path = tmp_path / "c.yaml"
        config_path.write_text("name: single\nnetwork: {node_count: 6}\nprotocol: {sample_size: 3}\n")
        output = tmp_path / "result.json"
        code = run_simulation_cli.main([
            str(config_path), "--output", str(output), "--plot-dir", str(tmp_path / "plots"),
        ])
        assert code == 0
        data = json.loads(output.read_text())
        assert data["result"]["outcome"] in ("converged", "disagreed", "timed_out")
        assert data["result"]["history"]
        assert (tmp_path / "plots" / "opinion_trajectory.png").exists()
        assert (tmp_path / "plots" / "finalization_rounds.png").exists()
        assert "FPCS SIMULATION: single" in capsys.readouterr().out

    def test_trials(self, tmp_path):
        config_path = tmp_path / "c.yaml"
        config_path.write_text("name: batch\nnetwork: {node_count: 6}\nprotocol: {sample_size: 3}\n")
        output = tmp_path / "summary.json"
        code = run_simulation_cli.main([str(config_path), "--trials", "4", "--output", str(output)])
        assert code == 0
        assert json.loads(output.read_text())["summary"]["trials"] == 4

    def test_bad_config_exit_code(self, tmp_path, capsys):
        config_path = tmp_path / "c.yaml"
        config_path.write_text("protocol: {sample_size: zero}\n")
        assert run_simulation_cli.main([str(config_path)]) == 2
        assert "protocol.sample_size" in capsys.readouterr().err


class TestVisualizations:
    def test_outcome_rates_plot(self, tmp_path):
        sweep = {"echo": [
            {"malicious_fraction": 0.0, "outcome_rates": {"converged": 1.0}},
            {"malicious_fraction": 0.2, "outcome_rates": {"converged": 0.5, "disagreed": 0.1}},
        ]}
        path = plot_outcome_rates(sweep, str(tmp_path / "rates.png"))
        assert (tmp_path / "rates.png").exists()
        assert path.endswith("rates.png")

    def test_trajectory_requires_history(self, scenario_a_config, tmp_path):
        result = run_simulation(scenario_a_config)
        with pytest.raises(ValueError):
            plot_opinion_trajectory(result, str(tmp_path / "t.png"))

    def test_histogram_with_no_finalized_nodes(self, uniform_config, tmp_path):
        config = uniform_config.with_overrides(protocol={"finalization_threshold": 100, "max_rounds": 2})
        result = run_simulation(config)
        plot_finalization_histogram([result], str(tmp_path / "h.png"))
        assert (tmp_path / "h.png").exists()
