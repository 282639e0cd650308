# Author: evm-deployer developers

"""Signer boundary used by the deployer, with raw private key and keystore
backends."""

from abc import ABC, abstractmethod
from enum import Enum
from getpass import getpass
import json
from pathlib import Path
from typing import Any

from eth_account import Account
from eth_account.datastructures import SignedTransaction
from eth_account.signers.local import LocalAccount
from eth_utils import is_address, to_checksum_address
from typing_extensions import override

from evm_deployer.errors import SignerError


class SignerType(str, Enum):
    EIP155 = "eip155"
    HOMESTEAD = "homestead"


class Signer(ABC):
    """Turns an unsigned transaction into a signed one for one address."""

    @property
    @abstractmethod
    def address(self) -> str:
        raise NotImplementedError()

    @abstractmethod
    def sign(self, from_address: str, tx: dict[str, Any]) -> SignedTransaction:
        raise NotImplementedError()

    def _check_authorized(self, from_address: str) -> None:
        if to_checksum_address(from_address) != self.address:
            raise SignerError(f"not authorized to sign with {from_address}")


class PrivateKeySigner(Signer):
    """Signs with a raw private key. EIP-155 signatures include the chain id,
    homestead signatures are unprotected."""

    def __init__(
        self,
        private_key: str | bytes,
        signer_type: SignerType = SignerType.EIP155,
        chain_id: int | None = None,
    ) -> None:
        try:
            self._account: LocalAccount = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise SignerError(f"failed to parse private key: {e}") from e

        if signer_type == SignerType.EIP155 and chain_id is None:
            raise SignerError("chain id is required for EIP-155 signatures")
        self.signer_type: SignerType = signer_type
        self.chain_id: int | None = chain_id

    @property
    @override
    def address(self) -> str:
        return self._account.address

    @override
    def sign(self, from_address: str, tx: dict[str, Any]) -> SignedTransaction:
        self._check_authorized(from_address)

        tx = dict(tx)
        tx.pop("from", None)
        if self.signer_type == SignerType.EIP155:
            tx["chainId"] = self.chain_id
        else:
            tx.pop("chainId", None)

        try:
            return self._account.sign_transaction(tx)
        except (ValueError, TypeError) as e:
            raise SignerError(f"failed to sign transaction: {e}") from e


class KeystoreSigner(PrivateKeySigner):
    """Decrypts the key of `from_address` found in a Geth/Clef keystore
    directory. Without a passphrase the user is prompted for one."""

    def __init__(
        self,
        keystore_dir: Path,
        from_address: str,
        passphrase: str | None = None,
        signer_type: SignerType = SignerType.EIP155,
        chain_id: int | None = None,
    ) -> None:
        keyfile: dict[str, Any] = self.find_keyfile(Path(keystore_dir), from_address)
        if passphrase is None:
            passphrase = getpass("Passphrase for Ethereum account: ").strip()

        try:
            private_key: bytes = Account.decrypt(keyfile, passphrase)
        except ValueError as e:
            raise SignerError(f"failed to load key for {from_address}: {e}") from e

        super().__init__(private_key, signer_type=signer_type, chain_id=chain_id)

    @staticmethod
    def find_keyfile(keystore_dir: Path, from_address: str) -> dict[str, Any]:
        if not keystore_dir.is_dir():
            raise SignerError("failed to locate keystore dir")
        if not is_address(from_address):
            raise SignerError(f"failed to parse Ethereum from address: {from_address}")

        wanted: str = from_address.lower().removeprefix("0x")
        for path in sorted(keystore_dir.iterdir()):
            if not path.is_file():
                continue
            try:
                keyfile: dict[str, Any] = json.loads(path.read_text("utf-8"))
            except (OSError, UnicodeDecodeError, json.JSONDecodeError):
                continue
            if str(keyfile.get("address", "")).lower().removeprefix("0x") == wanted:
                return keyfile
        raise SignerError(f"account {from_address} not found in keystore")


def init_signer(
    *,
    chain_id: int,
    signer_type: SignerType = SignerType.EIP155,
    from_address: str | None = None,
    private_key: str | None = None,
    keystore_dir: Path | None = None,
    passphrase: str | None = None,
) -> Signer:
    """Picks a signer backend from the available key details. A raw private key
    wins over a keystore."""
    if private_key:
        signer: Signer = PrivateKeySigner(
            private_key, signer_type=signer_type, chain_id=chain_id
        )
        if from_address and to_checksum_address(from_address) != signer.address:
            raise SignerError(
                f"from address {from_address} does not match the private key"
            )
        return signer

    if keystore_dir:
        if not from_address:
            raise SignerError(
                "cannot use Ethereum keystore without from address specified"
            )
        return KeystoreSigner(
            keystore_dir,
            from_address,
            passphrase=passphrase,
            signer_type=signer_type,
            chain_id=chain_id,
        )

    raise SignerError("insufficient ethereum key details provided")
