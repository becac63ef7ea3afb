"""Nodegroups client.

Client library for the nodegroups API: resolves nodegroups to their member
nodes and nodes to the nodegroups they belong to.

Exports:
    NodegroupsClient: HTTP client with config merging and error reporting.
    ClientConfig: Pydantic model of the client configuration.
    ConfigFileError: Raised when a configuration file cannot be read.
    types: Module containing Pydantic models for API responses.
"""

__version__ = "0.5.0"

from . import types  # noqa: E402
from .client import NodegroupsClient  # noqa: E402
from .config import ClientConfig, ConfigFileError  # noqa: E402

__all__ = [
    "ClientConfig",
    "ConfigFileError",
    "NodegroupsClient",
    "__version__",
    "types",
]
