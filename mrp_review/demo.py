from __future__ import annotations

from typing import Tuple

from .parse_log import parse_lines
from .report_model import LogDocument

DEMO_OUTPUT = "demo_report.md"

DEMO_RUN_A = """Thursday, February 5, 2026 23:59:02
23:59:02 MRP Regeneration process begin
Site List -> MfgSys
Date: 2/5/2026
00:10:46 Building Pegging Demand Master...
00:12:07 Processing Part:ABC123, Attribute Set:''
00:12:30 Job 14567 Part ABC123 Due 2026-03-02 Qty: 100
00:13:02 Job 14568 Part XYZ789 Due 2026-03-10 Qty: 40
00:14:11 Job 14570 Part DEF456 Due 2026-03-15 Qty: 12
00:15:40 ERROR: Job 14570 abandoned due to timeout
00:30:15 MRP process complete"""

DEMO_RUN_B = """Friday, February 6, 2026 23:59:00
23:59:00 MRP Net Change process begin
Site List -> MfgSys
Date: 2/6/2026
00:01:00 Start Processing Part:ABC123, Attribute Set:''
00:01:30 Job 14567 Part ABC123 Due 2026-03-11 Qty: 160
00:02:02 Job 14568 Part XYZ789 Due 2026-03-10 Qty: 41
00:02:40 Job 14571 Part GHI321 Due 2026-03-20 Qty: 8
00:03:10 Part XYZ789 cannot be scheduled: missing BOM revision
00:20:00 MRP process complete"""


def demo_documents() -> Tuple[LogDocument, LogDocument]:
    """Parse the bundled sample runs (a failed regeneration followed by a net change)."""
    run_a = parse_lines(DEMO_RUN_A.splitlines(), source_id="demo_run_a.log")
    run_b = parse_lines(DEMO_RUN_B.splitlines(), source_id="demo_run_b.log")
    return run_a, run_b
