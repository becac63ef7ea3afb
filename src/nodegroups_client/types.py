"""Response types for the nodegroups API.

Pydantic models for the JSON documents returned by the API. Records keep
any extra keys the server sends; only the fields the client unwraps are
declared.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict


class ApiResponse(BaseModel):
    """Envelope of every API response.

    ``status`` is compared as a string; servers send it either as a
    number or as a quoted number.
    """

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    status: str
    message: str | None = None
    records: list[dict[str, Any]] | None = None

    @property
    def ok(self) -> bool:
        return self.status == "200"


class NodeRecord(BaseModel):
    """Record returned by the node listing endpoints."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    node: str


class NodegroupRecord(BaseModel):
    """Record returned by the nodegroup listing endpoint."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    nodegroup: str
