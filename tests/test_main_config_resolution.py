import json
import textwrap

from main import _resolve_config_from_args_or_env, main
from market.errors import InvariantViolation


def test_main_resolves_config_from_env(monkeypatch, tmp_path) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(
        textwrap.dedent(
            """
            rounds: 7
            population:
              num_agents: 1
              factories_per_product: 1
            """
        ).strip()
        + "\n",
        encoding="utf-8",
    )

    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SIM_CONFIG", str(cfg_path))
    monkeypatch.setattr("sys.argv", ["main.py"])

    cfg = _resolve_config_from_args_or_env()
    assert cfg.rounds == 7
    assert cfg.population.num_agents == 1


def test_main_resolves_config_from_cli_over_env(monkeypatch, tmp_path) -> None:
    cfg_env = tmp_path / "env.yaml"
    cfg_env.write_text("rounds: 3\n", encoding="utf-8")

    cfg_cli = tmp_path / "cli.yaml"
    cfg_cli.write_text("rounds: 9\n", encoding="utf-8")

    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SIM_CONFIG", str(cfg_env))
    monkeypatch.setattr("sys.argv", ["main.py", "--config", str(cfg_cli)])

    cfg = _resolve_config_from_args_or_env()
    assert cfg.rounds == 9


def test_main_loads_default_config_yaml_when_present(monkeypatch, tmp_path) -> None:
    (tmp_path / "config.yaml").write_text("rounds: 11\n", encoding="utf-8")

    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("SIM_CONFIG", raising=False)
    monkeypatch.setattr("sys.argv", ["main.py"])

    cfg = _resolve_config_from_args_or_env()
    assert cfg.rounds == 11


def test_main_rejects_invalid_config_on_stderr(monkeypatch, tmp_path, capsys) -> None:
    (tmp_path / "bad.yaml").write_text("rounds: -1\n", encoding="utf-8")

    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("SIM_CONFIG", raising=False)

    assert main(["--config", str(tmp_path / "bad.yaml")]) == 2
    assert "Invalid configuration" in capsys.readouterr().err


def test_main_reports_aborted_run_on_stderr(monkeypatch, tmp_path, capsys) -> None:
    (tmp_path / "run.yaml").write_text(
        "rounds: 2\nlog_file: out/simulation.log\n", encoding="utf-8"
    )

    def abort(config, sink):
        raise InvariantViolation("negative stock", entity="factory:3", round_index=2)

    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("SIM_CONFIG", raising=False)
    monkeypatch.setattr("main.run_simulation", abort)

    assert main(["--config", "run.yaml"]) == 1
    err = capsys.readouterr().err
    assert "round 2" in err
    assert "entity=factory:3" in err


def test_main_runs_and_writes_summary_and_csv(monkeypatch, tmp_path) -> None:
    (tmp_path / "run.yaml").write_text(
        textwrap.dedent(
            """
            rounds: 3
            seed: 5
            task_id: mainrun000000000
            log_file: out/simulation.log
            SUMMARY_FILE: out/summary.json
            metrics_export_path: out/metrics
            matching:
              max_workers: 1
            population:
              num_agents: 5
              factories_per_product: 1
            """
        ).strip()
        + "\n",
        encoding="utf-8",
    )

    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("SIM_CONFIG", raising=False)
    monkeypatch.delenv("SIM_SEED", raising=False)

    assert main(["--config", "run.yaml"]) == 0

    summary = json.loads((tmp_path / "out" / "summary.json").read_text(encoding="utf-8"))
    assert summary["task_id"] == "mainrun000000000"
    assert summary["rounds_completed"] <= 3
    assert summary["events"]["agent_cash_logs"] > 0
    exported = sorted(p.name for p in (tmp_path / "out" / "metrics").glob("*.csv"))
    assert any(name.startswith("factory_end_of_round_logs_") for name in exported)
