import os
from datetime import datetime
from typing import Optional, Sequence

import pandas as pd
from fpdf import FPDF

from analytics import format_summary
from schemas import CrossRow, Summary, TradeRecord

EXPORT_DIR = "exports"

SUMMARY_LABELS = [
    ("Net P&L", "total_pnl"),
    ("Total trades", "total_trades"),
    ("Open trades", "open_trades"),
    ("Win rate", "win_rate"),
    ("Profit factor", "profit_factor"),
    ("Trade expectancy", "expectancy"),
    ("Average winning trade", "avg_win"),
    ("Average losing trade", "avg_loss"),
    ("Largest profit", "largest_win"),
    ("Largest loss", "largest_loss"),
    ("Best month", "best_month"),
    ("Worst month", "worst_month"),
    ("Average per month", "avg_per_month"),
    ("Max drawdown", "max_drawdown"),
    ("Average drawdown", "avg_drawdown"),
    ("Average hold time", "hold_all"),
    ("Average winning hold", "hold_win"),
    ("Average losing hold", "hold_loss"),
    ("Average breakeven hold", "hold_breakeven"),
    ("Max consecutive winning days", "max_win_streak"),
    ("Max consecutive losing days", "max_loss_streak"),
    ("Total commissions", "total_commissions"),
]


def _default_name(ext: str, export_dir: str) -> str:
    os.makedirs(export_dir, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return os.path.join(export_dir, f"trades_{timestamp}.{ext}")


def trades_frame(trades: Sequence[TradeRecord]) -> pd.DataFrame:
    rows = []
    for t in trades:
        row = t.model_dump()
        row["tags"] = ", ".join(t.tags)
        row["model"] = t.assigned_model
        rows.append(row)
    return pd.DataFrame(rows, columns=list(TradeRecord.model_fields))


def export_to_excel(
    trades: Sequence[TradeRecord],
    filename: Optional[str] = None,
    cross_rows: Optional[Sequence[CrossRow]] = None,
    export_dir: str = EXPORT_DIR,
) -> str:
    if not filename:
        filename = _default_name("xlsx", export_dir)
    with pd.ExcelWriter(filename) as writer:
        trades_frame(trades).to_excel(writer, sheet_name="Trades", index=False)
        if cross_rows:
            pd.DataFrame([r.model_dump() for r in cross_rows]).to_excel(writer, sheet_name="Cross analysis", index=False)
    return filename


def export_summary_pdf(summary: Summary, filename: Optional[str] = None, export_dir: str = EXPORT_DIR) -> str:
    if not filename:
        filename = _default_name("pdf", export_dir)
    display = format_summary(summary)

    pdf = FPDF()
    pdf.set_auto_page_break(auto=True, margin=10)
    pdf.add_page()
    pdf.set_font("Helvetica", "B", size=14)
    pdf.cell(0, 10, "Performance summary", new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", size=10)
    for label, key in SUMMARY_LABELS:
        # core fonts are latin-1 only
        value = display[key].replace("∞", "inf").replace("—", "-")
        pdf.cell(90, 8, label)
        pdf.cell(0, 8, value, new_x="LMARGIN", new_y="NEXT")

    pdf.output(filename)
    return filename
