"""Client contact and suggestion schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ClientInfo(BaseModel):
    """Client contact block as it appears on a draft or parse result."""

    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None

    @property
    def full_name(self) -> str:
        """Display name: explicit name, else first and last name joined."""
        if self.name and self.name.strip():
            return self.name.strip()
        names = (self.first_name, self.last_name)
        parts = [p.strip() for p in names if p and p.strip()]
        return " ".join(parts)


class ClientSuggestion(BaseModel):
    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    similarity: float = Field(..., ge=0.0, le=1.0)

    model_config = ConfigDict(from_attributes=True)


class ClientSuggestResult(BaseModel):
    """Ranked suggestions; ``exact_match`` is set for a canonical-name hit."""

    suggestions: list[ClientSuggestion] = Field(default_factory=list)
    exact_match: ClientSuggestion | None = None


class ClientLookup(BaseModel):
    """Best single match for a spoken client name."""

    client: ClientSuggestion
    similarity: float
    needs_confirmation: bool
    alternatives: list[ClientSuggestion] = Field(default_factory=list)
