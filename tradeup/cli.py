#!/usr/bin/env python3
"""
TRADE-UP CLI

Command-line interface for the TRADE-UP chain-of-custody escrow.

Usage:
    tradeup <command> [subcommand] [options]

Commands:
    simulate    Replay a scenario document against in-memory collections
    validate    Check a scenario document against the scenario schema
    config      Configuration management

Copyright (c) 2024 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import sys
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

import yaml

from tradeup import __version__
from tradeup.config import ConfigError, get_config_manager
from tradeup.observability import EscrowLayer, configure_logging, get_logger
from tradeup.scenario import ScenarioError, load_scenario, run_scenario, validate_scenario


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.safe_dump(json.loads(json.dumps(data, default=str)), default_flow_style=False, sort_keys=False)
    return _format_text(data)


def _format_text(data: Any) -> str:
    """Format a scenario report (or any mapping) as readable lines."""
    if isinstance(data, dict) and "steps" in data and "escrow" in data:
        lines = [f"escrow {data['escrow']['address']}: {data['escrow']['status']}"]
        for step in data["steps"]:
            actor = f" {step['actor']}" if step.get("actor") else ""
            if step["ok"]:
                lines.append(f"  t={step['at']:<6} {step['action']}{actor}: ok -> {step['status']}")
            else:
                lines.append(
                    f"  t={step['at']:<6} {step['action']}{actor}: "
                    f"{step['error_type']}: {step['error']}"
                )
        for collection, owners in data["ownership"].items():
            for asset_id, owner in owners.items():
                lines.append(f"  {collection}#{asset_id}: {owner}")
        return "\n".join(lines)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    elif isinstance(data, list):
        return "\n".join(str(item) for item in data)
    return str(data)


class TradeUpCLI:
    """Main CLI application."""

    def __init__(self):
        self._logger = get_logger("cli", EscrowLayer.CLI)
        self.parser = argparse.ArgumentParser(
            prog="tradeup",
            description="TRADE-UP chain-of-custody escrow CLI",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"tradeup {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--config", "-c",
            type=Path,
            help="Configuration file to load (default: tradeup.yaml search path)",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        """Register all command groups."""
        simulate = self.subparsers.add_parser("simulate", help="Replay a scenario document")
        simulate.add_argument("scenario", type=Path, help="Scenario YAML/JSON file")
        simulate.add_argument(
            "--strict",
            action="store_true",
            help="Exit non-zero if any step was rejected",
        )

        validate = self.subparsers.add_parser("validate", help="Validate a scenario document")
        validate.add_argument("scenario", type=Path, help="Scenario YAML/JSON file")

        self._register_config_commands()

    def _register_config_commands(self) -> None:
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., escrow.default_ttl_seconds)")

        config_sub.add_parser("show", help="Show all configuration")
        config_sub.add_parser("validate", help="Validate configuration")
        config_sub.add_parser("schema", help="Export configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        fmt = OutputFormat(parsed.format)

        try:
            self._load_config(parsed.config)
            result = self._dispatch(parsed)
            if result is not None:
                print(format_output(result, fmt))
            return 0
        except CLIError as e:
            print(f"Error: {e}", file=sys.stderr)
            return e.exit_code
        except (ConfigError, ScenarioError) as e:
            self._logger.error(str(e), error_code=type(e).__name__)
            print(f"Error: {e}", file=sys.stderr)
            return 1

    def _load_config(self, path: Optional[Path]) -> None:
        manager = get_config_manager()
        if path is not None:
            manager.load_from_file(path)
        else:
            manager.load_defaults()
        configure_logging()

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch to command handler."""
        handler_name = f"_handle_{args.command}"
        if args.command == "config":
            if not args.subcommand:
                raise CLIError("config requires a subcommand (get, show, validate, schema)")
            handler_name += f"_{args.subcommand}"

        handler = getattr(self, handler_name, None)
        if handler is None:
            raise CLIError(f"Unknown command: {args.command}")
        return handler(args)

    def _handle_simulate(self, args: argparse.Namespace) -> Any:
        report = run_scenario(load_scenario(args.scenario))
        if args.strict and report.failed_steps:
            print(format_output(report.to_dict(), OutputFormat(args.format)))
            raise CLIError(f"{len(report.failed_steps)} step(s) rejected", exit_code=2)
        return report.to_dict()

    def _handle_validate(self, args: argparse.Namespace) -> Any:
        if not args.scenario.exists():
            raise CLIError(f"Scenario file not found: {args.scenario}")
        try:
            doc = yaml.safe_load(args.scenario.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise CLIError(f"Invalid YAML: {e}") from e
        errors = validate_scenario(doc)
        if errors:
            print(format_output({"valid": False, "errors": errors}, OutputFormat(args.format)))
            raise CLIError(f"{len(errors)} schema error(s)")
        return {"valid": True, "errors": []}

    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        return {args.path: get_config_manager().get(args.path)}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        errors = get_config_manager().validate()
        if errors:
            raise CLIError("; ".join(errors))
        return {"valid": True, "errors": []}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        return get_config_manager().export_schema()


def main() -> int:
    """Main entry point."""
    return TradeUpCLI().run()


if __name__ == "__main__":
    sys.exit(main())
