"""
Export helpers for spreadsheets, BI tools and manual analysis.

All writers create parent directories and return the written ``Path``.
They accept generic ``list[dict]`` data so they stay decoupled from
specific view or payload shapes.

CSV and Parquet exports are flat (no nested dicts) so they load directly in
Excel, Power BI or pandas without a pre-processing step.

``flatten_payload_for_export()`` is the main adapter: it turns the nested
sections of a ``StructuredInsightPayload`` into one flat table per section.
"""

from __future__ import annotations

import csv
import json
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Optional

import pyarrow as pa
import pyarrow.parquet as pq

from ledger_forecaster.models.insight import StructuredInsightPayload

EXPORT_FORMATS: tuple[str, ...] = ("csv", "json", "parquet")


def _columns(records: Sequence[Mapping[str, Any]]) -> list[str]:
    """Union of record keys in first-seen order."""
    cols: dict[str, None] = {}
    for r in records:
        cols.update(dict.fromkeys(r))
    return list(cols)


def export_to_csv(
    records: Sequence[Mapping[str, Any]],
    path: Path,
    fieldnames: Optional[list[str]] = None,
) -> Path:
    """Write ``records`` to a UTF-8 CSV file.

    Args:
        records:    Row mappings.
        path:       Destination file path.
        fieldnames: Column order.  If None, uses every record key in first-seen order.

    Returns:
        ``path`` as written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    if not records:
        path.write_text("", encoding="utf-8")
        return path
    cols = fieldnames or _columns(records)
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=cols, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(records)
    return path


def export_to_json(data: Any, path: Path) -> Path:
    """Write ``data`` to a pretty-printed JSON file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
    return path


def export_to_parquet(
    records: Sequence[Mapping[str, Any]],
    path: Path,
    columns: Optional[list[str]] = None,
) -> Path:
    """Write ``records`` to a Parquet file via pyarrow.

    Column types are inferred by pyarrow.  An empty record list with known
    ``columns`` produces an empty table with null-typed columns.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    if records:
        cols = columns or _columns(records)
        rows = [{c: r.get(c) for c in cols} for r in records]
        table = pa.Table.from_pylist(rows)
    else:
        table = pa.table({c: pa.array([], type=pa.null()) for c in (columns or [])})
    pq.write_table(table, str(path))
    return path


def export_records(
    records: Sequence[Mapping[str, Any]],
    path: Path,
    fmt: Optional[str] = None,
    columns: Optional[list[str]] = None,
) -> Path:
    """Write ``records`` in ``fmt`` (defaults to the suffix of ``path``).

    Raises:
        ValueError: If the format is not one of ``EXPORT_FORMATS``.
    """
    fmt = (fmt or path.suffix.lstrip(".")).lower()
    if fmt == "csv":
        return export_to_csv(records, path, columns)
    if fmt == "json":
        return export_to_json([dict(r) for r in records], path)
    if fmt == "parquet":
        return export_to_parquet(records, path, columns)
    raise ValueError(f"Unknown export format '{fmt}'. Must be one of {list(EXPORT_FORMATS)}.")


# ── Payload flattening ────────────────────────────────────────────────────────


def _goal_rows(data: list[dict]) -> list[dict]:
    return [
        {
            "goal_id":           g.get("goal_id"),
            "target_amount":     g.get("target_amount"),
            "predicted_amount":  g.get("predicted_amount"),
            "monthly_required":  g.get("monthly_required"),
            "monthly_predicted": g.get("monthly_predicted"),
            "months_remaining":  g.get("months_remaining"),
            "confidence":        g.get("confidence"),
            "status":            g.get("status"),
            "expired":           g.get("expired"),
            "models_used":       ",".join(g.get("models_used", ())),
        }
        for g in data
    ]


def _recommendation_rows(data: list[dict]) -> list[dict]:
    rows: list[dict] = []
    for rec in data:
        row = {"code": rec.get("code"), "severity": rec.get("severity"), "subject": rec.get("subject")}
        for key, val in sorted(rec.get("params", {}).items()):
            row[f"param_{key}"] = val
        rows.append(row)
    return rows


def _scenario_rows(data: dict) -> list[dict]:
    """One row per scenario per projected month."""
    rows: list[dict] = []
    for label in ("optimistic", "realistic", "pessimistic"):
        scenario = data.get(label) or {}
        preds = scenario.get("predictions", {})
        periods = preds.get("periods") or []
        steps = max(len(preds.get(k) or []) for k in ("income", "expenses", "savings"))
        for i in range(steps):
            rows.append(
                {
                    "scenario": label,
                    "factor":   scenario.get("factor"),
                    "step":     i + 1,
                    "period":   periods[i] if i < len(periods) else None,
                    "income":   _at(preds.get("income"), i),
                    "expenses": _at(preds.get("expenses"), i),
                    "savings":  _at(preds.get("savings"), i),
                }
            )
    return rows


def _risk_rows(data: dict) -> list[dict]:
    rows: list[dict] = []

    def add(stream: str, assessment: dict) -> None:
        factors = assessment.get("factors", {})
        rows.append(
            {
                "stream":            stream,
                "score":             assessment.get("score"),
                "level":             assessment.get("level"),
                "volatility":        factors.get("volatility"),
                "trend_strength":    factors.get("trend_strength"),
                "recent_change_pct": factors.get("recent_change_pct"),
                "average":           factors.get("average"),
            }
        )

    for stream in ("income", "expense", "savings"):
        if f"{stream}_risk" in data:
            add(stream, data[f"{stream}_risk"])
    for category_id, assessment in sorted(data.get("category_risks", {}).items(), key=lambda kv: int(kv[0])):
        add(f"category:{category_id}", assessment)
    return rows


def _at(values: Optional[list], i: int) -> Any:
    return values[i] if values and i < len(values) else None


def flatten_payload_for_export(payload: StructuredInsightPayload) -> dict[str, list[dict]]:
    """Flatten the available payload sections into named flat tables.

    Aggregate views become one table each (``view_<name>``).  Unavailable
    sections are omitted.

    Returns:
        Table name → list of flat row dicts.
    """
    tables: dict[str, list[dict]] = {}
    if payload.aggregates.available:
        for name, rows in payload.aggregates.data.get("views", {}).items():
            tables[f"view_{name}"] = [dict(r) for r in rows]
    if payload.goals.available:
        tables["goals"] = _goal_rows(payload.goals.data)
    if payload.recommendations.available:
        tables["recommendations"] = _recommendation_rows(payload.recommendations.data)
    if payload.scenarios.available:
        tables["scenarios"] = _scenario_rows(payload.scenarios.data)
    if payload.risk.available:
        tables["risk"] = _risk_rows(payload.risk.data)
    return tables


def write_payload(
    payload: StructuredInsightPayload,
    output_dir: Path,
    stem: str = "insights",
    fmt: str = "csv",
) -> list[Path]:
    """Write the full payload as JSON plus one flat file per section table.

    Args:
        payload:    The insight payload.
        output_dir: Destination directory.
        stem:       File name prefix.
        fmt:        Format of the per-section tables (``csv`` or ``parquet``).

    Returns:
        Written paths, the JSON document first.
    """
    if fmt not in ("csv", "parquet"):
        raise ValueError(f"Section tables must be csv or parquet, got '{fmt}'.")
    paths = [export_to_json(payload.model_dump(mode="json"), output_dir / f"{stem}.json")]
    for name, rows in flatten_payload_for_export(payload).items():
        paths.append(export_records(rows, output_dir / f"{stem}_{name}.{fmt}", fmt))
    return paths
