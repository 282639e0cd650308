# Author: evm-deployer developers

"""Transaction orchestration: deploy, tx, call and logs."""

from evm_deployer.deployer.deployer import Deployer
from evm_deployer.deployer.options import (
    CallResult,
    ContractCallOpts,
    ContractDeployOpts,
    ContractLogsOpts,
    ContractTxOpts,
    DeployResult,
    TxResult,
)

__all__ = [
    "CallResult",
    "ContractCallOpts",
    "ContractDeployOpts",
    "ContractLogsOpts",
    "ContractTxOpts",
    "Deployer",
    "DeployResult",
    "TxResult",
]
