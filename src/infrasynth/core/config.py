"""Synthesis settings."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from infrasynth.core.logical_ids import HASH_LENGTH


class SynthConfig(BaseModel):
    """Tunables for a synthesis run.

    The core never reads the environment; the CLI builds this from its
    options and passes it in.
    """

    model_config = {"frozen": True}

    # Upper bound on nested token resolutions before giving up
    max_resolve_depth: int = Field(default=50, ge=1)
    logical_id_max_length: int = 255
    template_format_version: str | None = "2010-09-09"
    # Record each resource's construct path under Metadata
    path_metadata: bool = False

    @model_validator(mode="after")
    def check_id_length(self) -> SynthConfig:
        if self.logical_id_max_length <= HASH_LENGTH:
            raise ValueError(
                f"logical_id_max_length must be greater than the hash length ({HASH_LENGTH})"
            )
        return self
