"""Wallet list source.

Wallets live in a JSON file holding a list of
``{"address": "0x...", "privateKey": "0x..."}`` objects.  A missing file
means "no wallets yet"; any other read or parse problem is a
configuration error and stops the runner at startup.
"""

import json
import logging
from typing import List

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from edgenode.utils import write_json_atomic

logger = logging.getLogger(__name__)


class WalletFileError(Exception):
    """The wallet file exists but cannot be read or parsed."""


class WalletRecord(BaseModel):
    """One wallet entry from the wallet file.

    Attributes:
        address: Public address as stored in the file.
        private_key: Hex private key (``privateKey`` in JSON).
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    address: str
    private_key: str = Field(alias="privateKey")

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)


_WALLET_LIST = TypeAdapter(List[WalletRecord])


def load_wallets(path: str) -> List[WalletRecord]:
    """Read the wallet list from *path*.

    Returns:
        The wallets in file order, or ``[]`` when the file does not exist.

    Raises:
        WalletFileError: The file is unreadable or not a valid wallet list.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            raw = json.load(fh)
    except FileNotFoundError:
        logger.info(f"No wallets found in {path}")
        return []
    except (OSError, ValueError) as e:
        raise WalletFileError(f"Cannot read wallet file {path}: {e}") from e

    try:
        wallets = _WALLET_LIST.validate_python(raw)
    except ValidationError as e:
        raise WalletFileError(f"Malformed wallet file {path}: {e}") from e

    logger.info(f"Loaded {len(wallets)} wallets from {path}")
    return wallets


def save_wallets(path: str, wallets: List[WalletRecord]) -> None:
    """Atomically write *wallets* to *path*, keeping the previous file as ``.bak``.

    Raises:
        WalletFileError: The file could not be written.
    """
    try:
        write_json_atomic(path, [w.to_json() for w in wallets])
    except OSError as e:
        raise WalletFileError(f"Cannot write wallet file {path}: {e}") from e


def append_wallets(path: str, new_wallets: List[WalletRecord]) -> List[WalletRecord]:
    """Append *new_wallets* to the file at *path*, skipping known addresses.

    Returns:
        The full wallet list after the append.

    Raises:
        WalletFileError: The existing file is malformed or the write failed.
    """
    existing = load_wallets(path)
    known = {w.address.lower() for w in existing}
    added = [w for w in new_wallets if w.address.lower() not in known]
    if not added:
        return existing
    combined = existing + added
    save_wallets(path, combined)
    logger.info(f"Saved {len(added)} new wallets to {path}")
    return combined
