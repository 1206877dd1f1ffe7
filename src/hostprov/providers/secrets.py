"""Secrets provider generating and persisting service credentials."""

import asyncio
import logging
import secrets
from pathlib import Path
from typing import Dict, Optional, TYPE_CHECKING

from hostprov.errors import ConfigWriteError
from hostprov.models.config import CredentialsConfig
from hostprov.models.credential import Credential
from hostprov.providers.base import BaseProvider, ProviderStatus
from hostprov.utils.files import atomic_write, read_key_values

if TYPE_CHECKING:
    from hostprov.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

CREDENTIALS_MODE = 0o600

HEADER = "# Generated by hostprov. Owner-only readable.\n"


class SecretsProvider(BaseProvider):
    """Provider for generated credentials.

    All credentials live in one `key=value` file with mode 0600. Under the
    `regenerate` policy each run issues a fresh credential per owner and
    rewrites that file in place; under `preserve` an existing credential is
    reused.
    """

    def __init__(self):
        """Initialize secrets provider."""
        self.path: Optional[Path] = None
        self.config: Optional[CredentialsConfig] = None
        self._issued: Dict[str, Credential] = {}

    async def initialize(self, config, registry: "ProviderRegistry") -> None:
        """Initialize provider with configuration and registry."""
        self.path = Path(config.paths.credentials_file)
        self.config = config.credentials

    async def status(self, owner: str) -> ProviderStatus:
        """PRESENT when the credentials file holds an entry for `owner`."""
        entries = await asyncio.to_thread(read_key_values, self.path)
        try:
            Credential.from_entries(owner, entries)
        except KeyError:
            return ProviderStatus.ABSENT
        return ProviderStatus.PRESENT

    async def present(self, owner: str) -> None:
        """Ensure a credential exists for `owner`."""
        await self.get_credential(owner)

    async def absent(self, owner: str) -> None:
        """Drop the credential of `owner` from the file."""
        entries = await asyncio.to_thread(read_key_values, self.path)
        prefix = owner.upper().replace("-", "_") + "_"
        kept = {k: v for k, v in entries.items() if not k.startswith(prefix)}
        self._issued.pop(owner, None)
        if kept == entries:
            return
        if kept:
            await self._write(kept)
        else:
            await asyncio.to_thread(self.path.unlink, True)
        logger.info(f"Removed credential for {owner}")

    async def get_credential(self, owner: str) -> Credential:
        """Return the credential for `owner`, issuing it at most once per run."""
        if owner in self._issued:
            return self._issued[owner]

        entries = await asyncio.to_thread(read_key_values, self.path)
        credential = None
        if self.config.policy == "preserve":
            try:
                credential = Credential.from_entries(owner, entries)
                logger.info(f"Reusing existing {owner} credential from {self.path}")
            except KeyError:
                logger.debug(f"No existing {owner} credential in {self.path}")

        if credential is None:
            credential = self.generate(owner)
            entries.update(credential.to_entries())
            await self._write(entries)
            logger.info(f"Generated {owner} credential for user {credential.username}")

        self._issued[owner] = credential
        return credential

    def issued(self, owner: str) -> Optional[Credential]:
        """Credential handed out during this run, if any."""
        return self._issued.get(owner)

    def generate(self, owner: str) -> Credential:
        """Create a random credential."""
        username = self.config.username or f"{owner}-{secrets.token_hex(3)}"
        password = secrets.token_urlsafe(self.config.password_length)[:self.config.password_length]
        return Credential(owner=owner, username=username, password=password)

    async def _write(self, entries: Dict[str, str]) -> None:
        content = HEADER + "".join(f"{key}={value}\n" for key, value in sorted(entries.items()))
        try:
            await asyncio.to_thread(self.path.parent.mkdir, 0o700, True, True)
            await asyncio.to_thread(atomic_write, self.path, content, CREDENTIALS_MODE)
        except OSError as e:
            logger.error(f"Failed to write credentials file {self.path}: {e}")
            raise ConfigWriteError(self.path, str(e)) from e
