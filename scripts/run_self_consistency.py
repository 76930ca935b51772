"""Run self-consistency for one query and print the result as JSON."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import argparse
import asyncio
import json
from typing import Any

from dotenv import load_dotenv

from selfconsistency.config import DEFAULT_CONFIG_PATH, load_settings
from selfconsistency.consensus import Strategy, build_aggregator
from selfconsistency.models import ScriptedGenerator
from selfconsistency.runner import SelfConsistencyRunner
from selfconsistency.utils.logging_config import setup_logging

DRY_RUN_SCRIPT = [
    "Let me work through it.\n\nThe answer is: 42",
    "Adding it up gives \"42\".",
    "Rough estimate first.\nResult: 41",
    "Answer: 42.",
]


def parse_args() -> argparse.Namespace:
    """Parse CLI args."""
    parser = argparse.ArgumentParser(description="Select one answer from several sampled candidates")
    parser.add_argument("query")
    parser.add_argument("--config", type=Path, default=ROOT / DEFAULT_CONFIG_PATH)
    parser.add_argument("--strategy", choices=[s.value for s in Strategy], default=None)
    parser.add_argument("--log-dir", type=Path, default=None)
    parser.add_argument("--dry-run", action="store_true", help="Use a scripted generator instead of a provider")
    return parser.parse_args()


async def async_main(args: argparse.Namespace) -> dict[str, Any]:
    """Async entry point."""
    logger, _ = setup_logging(log_dir=args.log_dir, name="run_self_consistency")
    settings = load_settings(config_path=args.config)
    aggregator = build_aggregator(args.strategy) if args.strategy else settings.aggregator

    if not args.dry_run:
        raise SystemExit("Only --dry-run is available from the CLI; pass a generator from Python for live runs.")

    generator = ScriptedGenerator(DRY_RUN_SCRIPT, model_alias="dry-run")
    runner = SelfConsistencyRunner(config=settings.runner, aggregator=aggregator, logger=logger)
    outcome = await runner.run(args.query, generator)
    await generator.close()
    return outcome.to_dict()


def main() -> None:
    """Program entry point."""
    load_dotenv()
    args = parse_args()
    payload = asyncio.run(async_main(args))
    print(json.dumps(payload, indent=2, default=str))


if __name__ == "__main__":
    main()
