"""MCP server exposing bandwidth-inspector analysis tools."""

from __future__ import annotations

import logging
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from .analyzer import analyze_project
from .config import AnalysisConfig
from .estimator import monthly_bandwidth as estimate_monthly_bandwidth
from .host import SnapshotHost
from .models import OptimizationMode
from .report import compose_markdown
from .utils import format_bytes

logger = logging.getLogger("bandwidth_inspector.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="bandwidth-inspector")

@mcp.tool()
async def analyze_snapshot(
    path: str,
) -> str:
    """Analyze an exported project snapshot and return a Markdown bandwidth report."""

    source = Path(path).expanduser()
    if not source.exists():
        raise FileNotFoundError(f"Snapshot path does not exist: {source}")
    host = SnapshotHost.from_file(source)
    config = AnalysisConfig()
    report = await analyze_project(host, host, host, config=config)
    return compose_markdown(report, config.optimization_mode)

@mcp.tool()
async def monthly_bandwidth(
    per_visit_bytes: float,
    visits: float,
    optimized: bool = True,
) -> str:
    """Project monthly bandwidth from the bytes transferred per visit."""

    mode = OptimizationMode.OPTIMIZED if optimized else OptimizationMode.SOURCE
    estimate = estimate_monthly_bandwidth(per_visit_bytes, visits, mode)
    return (
        f"Realistic: {format_bytes(estimate.realistic)}\n"
        f"Worst case: {format_bytes(estimate.worst_case)}"
    )

def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()

if __name__ == "__main__":
    main()
