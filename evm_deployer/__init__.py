# Author: evm-deployer developers

"""evm-deployer: deploy, transact and call Solidity contracts on EVM chains,
optionally measuring statement coverage."""

from evm_deployer.__about__ import __author__, __version__
from evm_deployer.config import Config
from evm_deployer.contract import Contract
from evm_deployer.deployer import Deployer

__all__ = [
    "__author__",
    "__version__",
    "Config",
    "Contract",
    "Deployer",
]
