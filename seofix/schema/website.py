"""
Remediation target model.
"""

from typing import Any

from pydantic import BaseModel, Field, SecretStr


class Website(BaseModel):
    """A website the engine may remediate, with the context Fixers need."""

    id: str
    user_id: str
    name: str = ""
    url: str
    keywords: list[str] = Field(default_factory=list)
    credentials: dict[str, SecretStr] = Field(default_factory=dict)
    extra: dict[str, Any] = Field(default_factory=dict)
