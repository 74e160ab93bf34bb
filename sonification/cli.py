"""
Command-line interface for the sonification analysis.

    sonification analyze recording.json [more.json ...] --clusters auto -o out/
    sonification compare a.json b.json
"""

import argparse
import json
import sys
from pathlib import Path

from loguru import logger
from pydantic import ValidationError
from tqdm import tqdm

from sonification.analysis import analyze_dataset
from sonification.config import AnalysisConfig, load_config
from sonification.dataset import load_dataset
from sonification.log import setup_logger
from sonification.metrics import (
    analyze_difference,
    calculate_musical_concordance,
    centered_difference,
)


def _parse_clusters(value: str) -> int | str:
    if value == "auto":
        return value
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"--clusters must be an integer or 'auto', got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Cluster calcium imaging traces and assign instrument roles."
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Analyse one or more datasets")
    analyze.add_argument("datasets", nargs="+", help="JSON files of extracted traces")
    analyze.add_argument("--config", help="YAML analysis configuration")
    analyze.add_argument(
        "--clusters",
        type=_parse_clusters,
        default=None,
        help="Number of clusters or 'auto' (overrides config)",
    )
    analyze.add_argument(
        "--components", type=int, default=None, help="PCA components (overrides config)"
    )
    analyze.add_argument("--seed", type=int, default=None, help="Explicit random seed")
    analyze.add_argument(
        "-o",
        "--output-dir",
        default=None,
        help="Write <dataset>_sonification.json here instead of printing a summary",
    )

    compare = subparsers.add_parser("compare", help="Compare two datasets")
    compare.add_argument("first", help="First dataset JSON")
    compare.add_argument("second", help="Second dataset JSON")

    return parser


def _resolve_config(args: argparse.Namespace) -> AnalysisConfig:
    config = load_config(args.config) if args.config else AnalysisConfig()
    overrides = {}
    if args.clusters is not None:
        overrides["n_clusters"] = args.clusters
    if args.components is not None:
        overrides["n_components"] = args.components
    if args.seed is not None:
        overrides["seed"] = args.seed
    if overrides:
        config = AnalysisConfig(**{**config.model_dump(), **overrides})
    return config


def run_analyze(args: argparse.Namespace) -> int:
    config = _resolve_config(args)
    output_dir = Path(args.output_dir) if args.output_dir else None
    if output_dir:
        output_dir.mkdir(parents=True, exist_ok=True)

    for path in tqdm(args.datasets, desc="Analysing datasets", disable=len(args.datasets) < 2):
        dataset = load_dataset(path)
        result = analyze_dataset(dataset, config)

        if output_dir:
            out_path = output_dir / f"{Path(path).stem}_sonification.json"
            with open(out_path, "w") as f:
                json.dump(result.to_dict(), f, indent=2)
            logger.info(f"Wrote {out_path}")
            continue

        print(f"\n{dataset.name}: {len(dataset.neurons)} neurons, seed {result.seed}")
        if result.recommendation:
            print(f"  Suggested clusters: {result.recommendation.optimal_k}")
        for cluster, role in zip(result.clusters, result.roles):
            print(
                f"  Cluster {cluster.id}: {cluster.size:4d} neurons -> "
                f"{role.value} ({role.description})"
            )
    return 0


def run_compare(args: argparse.Namespace) -> int:
    first = load_dataset(args.first)
    second = load_dataset(args.second)

    concordance = calculate_musical_concordance(first, second)
    difference = analyze_difference(centered_difference(first, second))

    print(f"\n{first.name} vs {second.name}")
    print(f"  Overall concordance:      {concordance.overall_score:+.3f}")
    print(f"  Synchronization:          {concordance.synchronization:.3f}")
    print(f"  Harmonic similarity:      {concordance.harmonic_similarity:+.3f}")
    print(f"  Activity pattern:         {concordance.activity_pattern_similarity:+.3f}")
    print(f"  {concordance.interpretation}")
    print(f"  Average difference:       {difference.average_difference:.3f}")
    print(f"  {difference.interpretation}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logger(args.log_level)

    try:
        if args.command == "analyze":
            return run_analyze(args)
        return run_compare(args)
    except (FileNotFoundError, ValueError, ValidationError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
