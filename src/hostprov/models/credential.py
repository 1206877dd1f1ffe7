"""Credential model."""

from typing import Dict

from pydantic import BaseModel, ConfigDict, Field


class Credential(BaseModel):
    """Generated username/password pair owned by one service."""
    owner: str = Field(..., description="Owning service, e.g. mqtt")
    username: str
    password: str = Field(..., repr=False)

    model_config = ConfigDict(frozen=True)

    @property
    def prefix(self) -> str:
        return self.owner.upper().replace("-", "_")

    def to_entries(self) -> Dict[str, str]:
        """Key/value lines for the credentials file."""
        return {
            f"{self.prefix}_USERNAME": self.username,
            f"{self.prefix}_PASSWORD": self.password,
        }

    @classmethod
    def from_entries(cls, owner: str, entries: Dict[str, str]) -> "Credential":
        prefix = owner.upper().replace("-", "_")
        return cls(
            owner=owner,
            username=entries[f"{prefix}_USERNAME"],
            password=entries[f"{prefix}_PASSWORD"],
        )
