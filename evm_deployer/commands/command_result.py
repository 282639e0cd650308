# Author: evm-deployer developers

"""Contains the base class for command results."""

from abc import ABC, abstractmethod
import json
from typing import Any

from evm_deployer.deployer.events import to_jsonable


class CommandResult(ABC):
    """Base class for the return result of commands."""

    @property
    @abstractmethod
    def successful(self) -> bool:
        """Returns true if the execution of the command was successful."""
        raise NotImplementedError()

    def to_dict(self) -> dict[str, Any]:
        return {"successful": self.successful}

    def to_json(self) -> str:
        return json.dumps(to_jsonable(self.to_dict()), indent=2)

    def __str__(self) -> str:
        return "Command returned " + (
            "successful" if self.successful else "unsuccessful"
        )
