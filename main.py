# main.py
import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, Sequence

from config import CONFIG_MODEL, SimulationConfig, load_simulation_config_from_yaml
from logger import log, setup_logger
from market.errors import SimulationError
from metrics.analyzer import analyze_price_convergence
from metrics.collector import EventCollector
from metrics.sink import FanOutSink, LoggingSink, TelemetrySink
from simulation.engine import SimulationResult, run_simulation

DEFAULT_CONFIG_FILE = "config.yaml"


def _resolve_config_from_args_or_env(argv: Sequence[str] | None = None) -> SimulationConfig:
    """Pick the config file: --config wins over SIM_CONFIG, then ./config.yaml, then defaults."""
    parser = argparse.ArgumentParser(description="Range-negotiation market simulation")
    parser.add_argument("--config", help="Path to a YAML simulation config")
    args, _unknown = parser.parse_known_args(sys.argv[1:] if argv is None else argv)

    path = args.config or os.getenv("SIM_CONFIG")
    if path:
        return load_simulation_config_from_yaml(path)
    if Path(DEFAULT_CONFIG_FILE).exists():
        return load_simulation_config_from_yaml(DEFAULT_CONFIG_FILE)
    return CONFIG_MODEL


def build_sink(config: SimulationConfig, collector: EventCollector) -> TelemetrySink:
    if config.logging_level == "DEBUG":
        return FanOutSink(collector, LoggingSink())
    return collector


def summarize_simulation(
    result: SimulationResult, collector: EventCollector, config: SimulationConfig
) -> dict[str, Any]:
    """Generate and save the run summary to a JSON file."""
    summary = result.summary()
    summary["events"] = {kind: len(rows) for kind, rows in collector.tables.items()}
    summary["convergence"] = analyze_price_convergence(collector)

    summary_path = Path(config.summary_file)
    summary_path.parent.mkdir(parents=True, exist_ok=True)
    with open(summary_path, "w", encoding="utf-8") as f:
        json.dump(summary, f, indent=config.json_indent, default=str)

    log(f"Simulation summary stored in {summary_path}", level="INFO")
    return summary


def main(argv: Sequence[str] | None = None) -> int:
    """Main simulation execution function."""
    setup_logger()
    try:
        config = _resolve_config_from_args_or_env(argv)
    except SimulationError as exc:
        message = f"Invalid configuration: {exc}"
        log(message, level="CRITICAL")
        print(message, file=sys.stderr)
        return 2

    setup_logger(config.logging_level, config.log_file, config.log_format)
    log("Starting market simulation...", level="INFO")

    collector = EventCollector(config)
    try:
        result = run_simulation(config, build_sink(config, collector))
    except SimulationError as exc:
        message = (
            f"Simulation aborted in round {exc.round_index} "
            f"(entity={exc.entity}): {exc.message}"
        )
        log(message, level="CRITICAL")
        print(message, file=sys.stderr)
        return 1

    log("Simulation complete.", level="INFO")
    summarize_simulation(result, collector, config)
    collector.export_metrics()
    return 0


if __name__ == "__main__":
    sys.exit(main())
