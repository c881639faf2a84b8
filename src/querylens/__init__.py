"""QueryLens - execution-plan aware SQL anti-pattern detector for BI queries."""

__version__ = "0.3.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from querylens.exceptions import (
    QueryLensError,
    AnalyzerError,
    DetectorError,
    ConfigurationError,
    ParseError,
)

from querylens.plan import (
    CostCategory,
    ExecutionPlan,
    PlanNode,
    create_mock_plan,
    load_plan,
)
from querylens.analyzer import (
    AnalysisResult,
    Analyzer,
    Bottleneck,
    DetectorRun,
    DetectorRunStatus,
    IssueType,
    Severity,
    analyze,
)
from querylens.config import (
    Config,
    Environment,
    get_config,
)
from querylens.output import OutputFormat, render

__all__ = [
    # Exception hierarchy
    "QueryLensError",
    "AnalyzerError",
    "DetectorError",
    "ConfigurationError",
    "ParseError",
    # Core
    "Analyzer",
    "analyze",
    "render",
    "OutputFormat",
    # Plan
    "ExecutionPlan",
    "PlanNode",
    "CostCategory",
    "load_plan",
    "create_mock_plan",
    # Models
    "AnalysisResult",
    "Bottleneck",
    "DetectorRun",
    "DetectorRunStatus",
    "IssueType",
    "Severity",
    # Configuration
    "Config",
    "Environment",
    "get_config",
    # Metadata
    "__version__",
    "__license__",
]
