"""
Key-ring fixtures for the e2e scenarios.

Scenarios receive an explicitly constructed KeyRing instead of reading
process-wide constants, so two suites can run with different accounts in
one process.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping

from eth_account import Account
from eth_account.signers.local import LocalAccount

DEV_KEY_NAMES = ("Alice", "Bob", "Charlie", "Dave", "Eve")


def dev_private_key(name: str) -> str:
    """Deterministic development key: the name's bytes left-padded to 32 bytes.

    The funded accounts of the local dev nodes use lowercase seeds
    ("alice", "bob", ...); see ``KeyRing.dev``.
    """
    raw = name.encode("utf-8")
    if not raw or len(raw) > 32:
        raise ValueError(f"Key name must be 1-32 bytes long, got {name!r}")
    return "0x" + raw.rjust(32, b"\x00").hex()


@dataclass(frozen=True)
class KeyRing:
    """Named accounts used by a scenario suite"""
    accounts: Mapping[str, LocalAccount] = field(default_factory=dict)

    def __getitem__(self, name: str) -> LocalAccount:
        try:
            return self.accounts[name]
        except KeyError:
            raise KeyError(f"No account named {name!r} in key ring") from None

    def __contains__(self, name: str) -> bool:
        return name in self.accounts

    def address(self, name: str) -> str:
        return self[name].address

    def private_key(self, name: str) -> str:
        return "0x" + bytes(self[name].key).hex()

    @classmethod
    def from_private_keys(cls, keys: Mapping[str, str]) -> "KeyRing":
        accounts: Dict[str, LocalAccount] = {name: Account.from_key(key) for name, key in keys.items()}
        return cls(accounts=accounts)

    @classmethod
    def dev(cls, names: Iterable[str] = DEV_KEY_NAMES) -> "KeyRing":
        """Fresh key ring with the well-known development accounts, seeded by the lowercase name."""
        return cls.from_private_keys({name: dev_private_key(name.lower()) for name in names})
