"""Base model for API payloads."""

from pydantic import BaseModel, ConfigDict


class ApiModel(BaseModel):
    """Base API model; fields declare camelCase aliases and accept either name."""

    model_config = ConfigDict(populate_by_name=True)

    def to_jsonl(self) -> bytes:
        return (self.model_dump_json(by_alias=True, exclude_none=True) + "\n").encode("utf-8")
