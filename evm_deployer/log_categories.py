# Author: evm-deployer developers

from enum import Enum


class LogCategories(Enum):
    NONE = "NONE"
    ALL = "ALL"
    SYSTEM = "DEPLOYER"
    COMPILER = "COMPILER"
    CACHE = "CACHE"
    RPC = "RPC"
    TX = "TX"
    COVERAGE = "COVERAGE"
    COMMAND = "COMMAND"
    CONFIG = "CONFIG"
