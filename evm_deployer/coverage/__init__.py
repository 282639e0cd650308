# Author: evm-deployer developers

"""Statement coverage collection and reporting."""

from evm_deployer.coverage.collector import (
    CoverageCollector,
    CoverageMode,
    CoverageProfile,
    StatementDescriptor,
    has_coverage_report,
    trim_coverage_report,
)
from evm_deployer.coverage.source_map import SourceMap

__all__ = [
    "CoverageCollector",
    "CoverageMode",
    "CoverageProfile",
    "SourceMap",
    "StatementDescriptor",
    "has_coverage_report",
    "trim_coverage_report",
]
