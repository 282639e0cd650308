# Author: evm-deployer developers

__version__ = "0.3.0"
__author__ = "evm-deployer developers"
