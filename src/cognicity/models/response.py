from __future__ import annotations

from pydantic import BaseModel, ConfigDict, model_validator


class ResponseEnvelope(BaseModel):
    """Everything needed to write a response, or to cache it for later."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    headers: dict[str, str] = {}
    body: str | None = None

    @model_validator(mode="after")
    def check_no_content(self) -> ResponseEnvelope:
        if self.status_code == 204 and (self.body is not None or self.headers):
            raise ValueError("204 responses carry neither headers nor a body")
        return self
