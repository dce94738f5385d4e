"""Reading vendor person files and putting them in predictor shape."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import chardet
import pandas as pd

from racecode.errors import require_columns

logger = logging.getLogger(__name__)

ENCODING_FALLBACKS = ["utf-8-sig", "latin-1", "cp1252"]
RECORD_COLUMNS = ["subcode", "surname", "state", "county", "tract"]
GEO_WIDTHS = {"state": 2, "county": 3, "tract": 6, "block": 4, "place": 5}


def detect_encoding(path: Path, sample_size: int = 50000) -> Optional[str]:
    """Best guess at the file encoding, or None when chardet is not confident."""
    with open(path, "rb") as handle:
        raw_data = handle.read(sample_size)

    if b"\x00" in raw_data:
        return "utf-16-le"
    result = chardet.detect(raw_data)
    if result["encoding"] and result["confidence"] > 0.85:
        return result["encoding"]
    return None


@dataclass
class LoadConfig:
    path: Path
    sep: Optional[str] = None
    id_column: Optional[str] = None
    rename: Dict[str, str] = field(default_factory=dict)
    missing_values: List[str] = field(default_factory=lambda: [""])
    encodings: List[str] = field(default_factory=lambda: list(ENCODING_FALLBACKS))


def read_vendor_file(config: LoadConfig) -> pd.DataFrame:
    """Read a vendor file as strings, trying encodings until one parses.

    Only the configured missing markers become missing values. Pandas'
    default list would turn real codes such as ``NA`` into NaN.
    """
    path = Path(config.path)
    sep = config.sep or ("\t" if path.suffix.lower() in {".tab", ".tsv", ".txt"} else ",")
    detected = detect_encoding(path)
    tried = []
    for encoding in ([detected] if detected else []) + config.encodings:
        if encoding in tried:
            continue
        tried.append(encoding)
        try:
            frame = pd.read_csv(
                path,
                sep=sep,
                dtype="string",
                encoding=encoding,
                keep_default_na=False,
                na_values=config.missing_values,
            )
        except (UnicodeDecodeError, pd.errors.ParserError) as e:
            logger.warning(f"Retrying {path.name} after {encoding} failed: {str(e)[:100]}")
            continue
        logger.info(f"Read {len(frame)} rows from {path.name} with {encoding}")
        frame = frame.rename(columns=config.rename)
        if config.id_column:
            require_columns(frame, [config.id_column], str(path))
            frame = frame.set_index(config.id_column, verify_integrity=True)
        return frame

    raise ValueError(f"Could not decode {path} with any of {tried}")


@dataclass(frozen=True)
class Canonicalizer:
    """Documented fixes for vendor values that collide with "missing".

    ``missing_subcode_means`` and ``missing_surname_means`` name the literal
    text an absent value stands for when an upstream step has already turned
    that text into a missing value (a subcode ``NA``, a surname ``NULL``).
    """

    missing_subcode_means: Optional[str] = None
    missing_surname_means: Optional[str] = None

    def apply(self, records: pd.DataFrame, source: str = "records") -> pd.DataFrame:
        require_columns(records, RECORD_COLUMNS, source)
        clean = records.copy()
        for column in ("subcode", "surname"):
            # Whitespace-only counts as missing so the overrides below apply.
            clean[column] = clean[column].astype("string").str.strip().replace("", pd.NA)
        if self.missing_subcode_means is not None:
            restored = int(clean["subcode"].isna().sum())
            clean["subcode"] = clean["subcode"].fillna(self.missing_subcode_means)
            logger.info(f"Restored {restored} missing subcodes as {self.missing_subcode_means!r}")
        if self.missing_surname_means is not None:
            clean["surname"] = clean["surname"].fillna(self.missing_surname_means)
        for column, width in GEO_WIDTHS.items():
            if column in clean.columns:
                clean[column] = clean[column].astype("string").str.strip().str.zfill(width)
        return clean
