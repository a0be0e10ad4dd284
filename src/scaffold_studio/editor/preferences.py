"""User-facing editor preferences."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class EditorPreferences(BaseModel):
    """Editor behaviour toggles shared by every open tab."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, validate_assignment=True)

    auto_save: bool = Field(default=True, description="Save edited tabs after a quiet period.")
    auto_complete: bool = Field(default=True, description="Offer completions while typing.")
    tab_size: int = Field(default=2, ge=1, le=16)
    insert_spaces: bool = True

    def toggle_auto_save(self) -> bool:
        self.auto_save = not self.auto_save
        return self.auto_save


__all__ = ["EditorPreferences"]
