"""Configuration objects and constants for the bandwidth analysis."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .models import OptimizationMode

KIB = 1024
MIB = 1024 * 1024

DEFAULT_USER_AGENT = "bandwidth-inspector/0.1"
DEFAULT_FONT_FAMILIES = 2.5


class AnalysisMode(str, Enum):
    """Whether the run stays on the design surface or also reads the live site."""

    CANVAS = "canvas"
    PUBLISHED = "published"


@dataclass
class AnalysisConfig:
    """Top-level settings that control collection and estimation behaviour."""

    optimization_mode: OptimizationMode = OptimizationMode.OPTIMIZED
    mode: AnalysisMode = AnalysisMode.CANVAS
    exclude_design_pages: bool = True
    batch_size: int = 20
    max_depth: int = 100
    route_max_depth: int = 50
    path_max_depth: int = 30
    max_concurrency: int = 8
    request_timeout: float = 5.0
    max_probe_resources: int = 200
    font_families: float = DEFAULT_FONT_FAMILIES
    render_published: bool = False
    navigation_timeout: float = 30.0
    wait_after_load: float = 1.0
    user_agent: str = DEFAULT_USER_AGENT
