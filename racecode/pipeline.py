#!/usr/bin/env python3
"""Assign race/ethnicity labels to a vendor person file.

1) Read the person file and the subcode table, restore vendor codes that
   collide with the missing-value marker.
2) Resolve every record's ethnicity subcode to a baseline race label.
3) Run the surname/geography predictor (all records, or only those with an
   Unknown baseline) and reduce each posterior to a predicted label.
4) Write the augmented records plus frequency and confusion tables.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import pandas as pd

from racecode.codes import CodeMap, RaceLabel, load_code_map, resolve_baseline
from racecode.errors import RaceCodingError
from racecode.loaders import Canonicalizer, LoadConfig, read_vendor_file
from racecode.posterior import POSTERIOR_COLUMNS, SUM_TOLERANCE, reduce_posteriors
from racecode.predictor import (
    GEO_LEVELS,
    CachedPosteriorPredictor,
    Predictor,
    load_census_bundle,
    run_predictor,
    state_codes,
)
from racecode.report import frequency_table, summarize

logger = logging.getLogger("racecode")


@dataclass
class ClassifyConfig:
    geo: str = "tract"
    only_unknown: bool = False
    tolerance: float = SUM_TOLERANCE
    progress: bool = True


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def classify(
    records: pd.DataFrame,
    code_map: CodeMap,
    predictor: Predictor,
    census_data: Mapping[str, object],
    config: ClassifyConfig,
    canonicalizer: Optional[Canonicalizer] = None,
) -> pd.DataFrame:
    """Return a new frame with baseline, posterior and predicted columns."""
    canonicalizer = canonicalizer or Canonicalizer()
    clean = canonicalizer.apply(records)
    labeled = resolve_baseline(clean, code_map)

    if config.only_unknown:
        in_scope = labeled["baseline_race"] == RaceLabel.UNKNOWN.value
    else:
        in_scope = pd.Series(True, index=labeled.index)
    logger.info(f"Sending {int(in_scope.sum())} of {len(labeled)} records to the race predictor")

    predicted = run_predictor(
        predictor, labeled[in_scope], config.geo, census_data, progress=config.progress
    )
    posteriors = predicted[POSTERIOR_COLUMNS].reindex(labeled.index)
    augmented = labeled.assign(**{c: posteriors[c] for c in POSTERIOR_COLUMNS})
    return reduce_posteriors(augmented, tolerance=config.tolerance, in_scope=in_scope)


def write_tables(tables: Dict[str, object], output_dir: Path) -> None:
    ensure_dir(output_dir)
    for name, table in tables.items():
        if isinstance(table, pd.DataFrame):
            table.to_csv(output_dir / f"{name}.csv")
    if tables.get("agreement") is not None:
        logger.info(f"Baseline/predicted agreement: {tables['agreement']:.3f}")


def run_baseline(load: LoadConfig, code_map_path: Path, canonicalizer: Canonicalizer, output_dir: Path) -> None:
    records = read_vendor_file(load)
    code_map = load_code_map(code_map_path)
    labeled = resolve_baseline(canonicalizer.apply(records, str(load.path)), code_map)
    ensure_dir(output_dir)
    labeled.to_csv(output_dir / "records.csv")
    baseline = frequency_table(RaceLabel(v) for v in labeled["baseline_race"])
    baseline.to_csv(output_dir / "baseline_freq.csv")
    print(baseline.to_string())


def run_classify(
    load: LoadConfig,
    code_map_path: Path,
    canonicalizer: Canonicalizer,
    posteriors_path: Path,
    posteriors_id: str,
    census_dir: Path,
    config: ClassifyConfig,
    output_dir: Path,
) -> None:
    records = read_vendor_file(load)
    code_map = load_code_map(code_map_path)
    predictor = CachedPosteriorPredictor.from_csv(posteriors_path, posteriors_id)
    clean = canonicalizer.apply(records, str(load.path))
    census_data = load_census_bundle(census_dir, state_codes(clean).unique())

    classified = classify(clean, code_map, predictor, census_data, config)
    ensure_dir(output_dir)
    classified.to_csv(output_dir / "records.csv")
    tables = summarize(classified)
    write_tables(tables, output_dir)
    print(tables["confusion"].to_string())


def _parse_rename(pairs: List[str]) -> Dict[str, str]:
    rename = {}
    for pair in pairs:
        old, sep, new = pair.partition("=")
        if not sep or not old or not new:
            raise argparse.ArgumentTypeError(f"--rename expects OLD=NEW, got {pair!r}")
        rename[old] = new
    return rename


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--log-file", type=Path, help="Also write log records here.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--records", required=True, type=Path, help="Vendor person file.")
        sub.add_argument("--code-map", required=True, type=Path, help="CSV with subcode and race columns.")
        sub.add_argument("--output-dir", required=True, type=Path)
        sub.add_argument("--id-column", help="Record identifier column.")
        sub.add_argument("--sep", help="Field separator (default: tab for .tab/.tsv/.txt, else comma).")
        sub.add_argument("--rename", action="append", default=[], metavar="OLD=NEW",
                         help="Rename a vendor column to subcode/surname/state/county/tract.")
        sub.add_argument("--missing-value", action="append", default=None,
                         help="Text the vendor uses for a missing value (default: empty field).")
        sub.add_argument("--missing-subcode-means", help="Literal subcode an empty subcode stands for.")
        sub.add_argument("--missing-surname-means", help="Literal surname an empty surname stands for.")

    base_parser = subparsers.add_parser("baseline", help="Resolve vendor subcodes only.")
    add_common(base_parser)

    cls_parser = subparsers.add_parser("classify", help="Baseline plus surname/geography prediction.")
    add_common(cls_parser)
    cls_parser.add_argument("--posteriors", required=True, type=Path,
                            help="CSV of pred.whi/bla/his/asi/oth keyed by record id.")
    cls_parser.add_argument("--posteriors-id", default="id")
    cls_parser.add_argument("--census-dir", required=True, type=Path,
                            help="Directory of cached per-state census data (XX.pkl).")
    cls_parser.add_argument("--geo", choices=GEO_LEVELS, default="tract")
    cls_parser.add_argument("--only-unknown", action="store_true",
                            help="Predict only records whose subcode resolves to Unknown.")
    cls_parser.add_argument("--tolerance", type=float, default=SUM_TOLERANCE)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if args.log_file:
        handlers.append(logging.FileHandler(args.log_file))
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s",
                        handlers=handlers)

    try:
        rename = _parse_rename(args.rename)
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))

    load = LoadConfig(
        path=args.records,
        sep=args.sep,
        id_column=args.id_column,
        rename=rename,
        missing_values=args.missing_value or [""],
    )
    canonicalizer = Canonicalizer(
        missing_subcode_means=args.missing_subcode_means,
        missing_surname_means=args.missing_surname_means,
    )

    try:
        if args.command == "baseline":
            run_baseline(load, args.code_map, canonicalizer, args.output_dir)
        elif args.command == "classify":
            config = ClassifyConfig(geo=args.geo, only_unknown=args.only_unknown, tolerance=args.tolerance)
            run_classify(
                load,
                args.code_map,
                canonicalizer,
                args.posteriors,
                args.posteriors_id,
                args.census_dir,
                config,
                args.output_dir,
            )
    except (RaceCodingError, ValueError, OSError) as exc:
        logger.error(f"{type(exc).__name__}: {exc}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
