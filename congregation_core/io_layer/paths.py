# congregation_core/io_layer/paths.py
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class InputPaths:
    """
    roster_file: xlsx workbook to import (groups / members / territories / field_service sheets)
    """
    roster_file: Optional[str] = None

    # sheet names (change here only)
    groups_sheet: str = "groups"
    members_sheet: str = "members"
    territories_sheet: str = "territories"
    field_service_sheet: str = "field_service"
