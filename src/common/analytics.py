# ABOUTME: Turns AttemptEvent logs into pandas frames for per-skill, per-session and trend analytics.
# ABOUTME: Also exports attempt logs to CSV or Parquet for offline analysis.

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Iterable, Union

import pandas as pd

from .schemas import AttemptEvent, compute_reward

EVENT_COLUMNS = [
    "user_id",
    "session_id",
    "skill_id",
    "difficulty",
    "correct",
    "response_time_sec",
    "hint_used",
    "attempt_count",
    "error_tag",
    "explanation_style",
    "timestamp",
    "reward",
]


def events_to_frame(events: Iterable[AttemptEvent]) -> pd.DataFrame:
    """One row per attempt, ordered by timestamp, with the composite reward attached."""
    rows = [{**asdict(e), "reward": compute_reward(e)} for e in events]
    if not rows:
        return pd.DataFrame(columns=EVENT_COLUMNS)
    df = pd.DataFrame(rows, columns=EVENT_COLUMNS)
    df["time"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True)
    return df.sort_values("timestamp", kind="mergesort").reset_index(drop=True)


def skill_breakdown(events_df: pd.DataFrame) -> pd.DataFrame:
    columns = ["skill_id", "attempts", "accuracy", "avg_response_time", "avg_difficulty", "hint_rate", "avg_reward"]
    if events_df is None or events_df.empty:
        return pd.DataFrame(columns=columns)

    grouped = (
        events_df.groupby("skill_id")
        .agg(
            attempts=("correct", "count"),
            accuracy=("correct", "mean"),
            avg_response_time=("response_time_sec", "mean"),
            avg_difficulty=("difficulty", "mean"),
            hint_rate=("hint_used", "mean"),
            avg_reward=("reward", "mean"),
        )
        .reset_index()
    )
    return grouped[columns].sort_values("skill_id").reset_index(drop=True)


def session_summary(events_df: pd.DataFrame) -> pd.DataFrame:
    columns = ["session_id", "attempts", "accuracy", "avg_response_time", "started_at", "ended_at", "duration_min"]
    if events_df is None or events_df.empty:
        return pd.DataFrame(columns=columns)

    grouped = (
        events_df.groupby("session_id")
        .agg(
            attempts=("correct", "count"),
            accuracy=("correct", "mean"),
            avg_response_time=("response_time_sec", "mean"),
            started_at=("timestamp", "min"),
            ended_at=("timestamp", "max"),
        )
        .reset_index()
    )
    grouped["duration_min"] = (grouped["ended_at"] - grouped["started_at"]) / 60_000
    return grouped[columns].sort_values("started_at").reset_index(drop=True)


def error_breakdown(events_df: pd.DataFrame) -> pd.DataFrame:
    """Counts of (skill, error tag, explanation style) over wrong answers."""
    columns = ["skill_id", "error_tag", "explanation_style", "count"]
    if events_df is None or events_df.empty:
        return pd.DataFrame(columns=columns)
    wrong = events_df[~events_df["correct"].astype(bool)]
    if wrong.empty:
        return pd.DataFrame(columns=columns)
    return (
        wrong.groupby(["skill_id", "error_tag", "explanation_style"])
        .size()
        .reset_index(name="count")
        .sort_values("count", ascending=False, kind="mergesort")
        .reset_index(drop=True)
    )


def progress_series(events_df: pd.DataFrame, last_n: int = 30) -> pd.DataFrame:
    """Last ``last_n`` attempts with a rolling accuracy over the preceding five."""
    columns = ["position", "skill_id", "correct", "response_time_sec", "difficulty", "rolling_accuracy"]
    if events_df is None or events_df.empty:
        return pd.DataFrame(columns=columns)

    recent = events_df.tail(last_n).reset_index(drop=True).copy()
    recent["position"] = recent.index + 1
    recent["rolling_accuracy"] = recent["correct"].astype(float).rolling(window=5, min_periods=1).mean()
    return recent[columns]


def export_events(events: Iterable[AttemptEvent], path: Union[str, Path]) -> Path:
    """Write events as Parquet (``.parquet``) or CSV (anything else)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df = events_to_frame(events).drop(columns=["time"], errors="ignore")
    if path.suffix == ".parquet":
        df.to_parquet(path, index=False)
    else:
        df.to_csv(path, index=False)
    return path
