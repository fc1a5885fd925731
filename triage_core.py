from pathlib import Path

import pandas as pd

EXPECTED_VOLUME_COLUMNS = [
    "date",
    "emails",
    "resolved",
]


def load_volume_csv(csv_path):
    empty = pd.DataFrame(columns=EXPECTED_VOLUME_COLUMNS)
    try:
        if not Path(csv_path).exists():
            empty.attrs["error"] = f"missing: {csv_path}"
            return empty
        df = pd.read_csv(csv_path)
        missing = [c for c in EXPECTED_VOLUME_COLUMNS if c not in df.columns]
        if missing:
            empty.attrs["error"] = f"schema_mismatch: missing {missing} in {csv_path}"
            return empty
        df.attrs["error"] = None
        return df
    except Exception as e:
        empty.attrs["error"] = f"{e}"
        return empty


def prepare_volume_frame(df):
    if df is None or df.empty:
        return pd.DataFrame(columns=EXPECTED_VOLUME_COLUMNS + ["date_dt"]), 0
    frame = df.copy()
    frame["date_dt"] = pd.to_datetime(frame["date"], errors="coerce")
    frame["emails"] = pd.to_numeric(frame["emails"], errors="coerce").fillna(0).clip(lower=0).astype(int)
    frame["resolved"] = pd.to_numeric(frame["resolved"], errors="coerce").fillna(0).clip(lower=0).astype(int)
    dropped_bad_rows = int(frame["date_dt"].isna().sum())
    frame = frame[frame["date_dt"].notna()].sort_values("date_dt").copy()
    return frame, dropped_bad_rows


def compute_volume_summary(df):
    summary = {
        "total_emails": 0,
        "total_resolved": 0,
        "resolution_rate": 0.0,
        "average_per_day": 0.0,
        "busiest_day": None,
        "days": [],
        "dropped_rows": 0,
    }
    frame, dropped = prepare_volume_frame(df)
    summary["dropped_rows"] = dropped
    if frame.empty:
        return summary
    total_emails = int(frame["emails"].sum())
    total_resolved = int(frame["resolved"].sum())
    summary["total_emails"] = total_emails
    summary["total_resolved"] = total_resolved
    if total_emails > 0:
        summary["resolution_rate"] = round(total_resolved / total_emails * 100, 1)
    summary["average_per_day"] = round(float(frame["emails"].mean()), 1)
    busiest = frame.loc[frame["emails"].idxmax()]
    summary["busiest_day"] = busiest["date_dt"].strftime("%Y-%m-%d")
    summary["days"] = [
        {
            "date": row.date_dt.strftime("%Y-%m-%d"),
            "emails": int(row.emails),
            "resolved": int(row.resolved),
        }
        for row in frame.itertuples(index=False)
    ]
    return summary
