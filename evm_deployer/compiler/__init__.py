# Author: evm-deployer developers

"""Solidity compilation and coverage instrumentation."""

from evm_deployer.compiler.instrumenter import CoverageInstrumenter, InstrumentedSource
from evm_deployer.compiler.solc import SolcCompiler, which_solc

__all__ = [
    "CoverageInstrumenter",
    "InstrumentedSource",
    "SolcCompiler",
    "which_solc",
]
