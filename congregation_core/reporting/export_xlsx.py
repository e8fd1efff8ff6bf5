# congregation_core/reporting/export_xlsx.py
from __future__ import annotations

from pathlib import Path
from typing import Dict

import pandas as pd


def export_tables_xlsx(out_path: str, tables: Dict[str, pd.DataFrame]) -> str:
    """Writes each DataFrame to its own sheet, in the order given."""
    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(out_path, engine="openpyxl") as w:
        for sheet_name, df in tables.items():
            # Excel caps sheet names at 31 characters
            df.to_excel(w, sheet_name=sheet_name[:31], index=False)
    return out_path
