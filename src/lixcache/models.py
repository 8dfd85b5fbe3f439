"""Canonical Pydantic models shared across all lixcache modules.

This is the single source of truth for data shapes in the project. The
models fall into three groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`ClientConfig`, :class:`OutputConfig`, and :class:`GlobalConfig`.

**Wire models** -- the request and response bodies of the Lix cache HTTP API:
    :class:`GetOperation`, :class:`SetOperation`, :class:`DeleteOperation`
    (the :data:`BatchOperation` union), the matching result models
    (:data:`BatchResult`), :class:`ScanResult`, :class:`CacheStats`,
    :class:`ClearResult`, and :class:`HealthResponse`.

**Client results** -- :class:`RememberAllResult`, returned by
    :meth:`~lixcache.client.LixCache.remember_all`.

All models use Pydantic v2. Batch operations and results are discriminated
on their ``op`` field.
"""

from __future__ import annotations

from typing import Annotated, Any, Callable, Generic, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

T = TypeVar("T")


# --- Configuration ---


class ClientConfig(BaseModel):
    """Connection settings for a :class:`~lixcache.client.LixCache` instance."""

    url: str = Field(
        default="http://localhost:4000", description="Base URL of the Lix cache server"
    )
    timeout: float = Field(default=5.0, description="Request timeout in seconds")
    max_retries: int = Field(
        default=3, description="Retries on connection errors before giving up"
    )
    retry_delay: float = Field(
        default=0.1, description="Initial retry delay in seconds, doubled per attempt"
    )
    batching: bool = Field(
        default=True,
        description="Coalesce operations issued in one event-loop pass into one request",
    )


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: Literal["auto", "json", "plain", "rich"] = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/lixcache/config.json``.

    Loaded and saved by :func:`~lixcache.config.load_global_config` and
    :func:`~lixcache.config.save_global_config`. See
    :func:`~lixcache.config.resolve_config` for the precedence chain.
    """

    client: ClientConfig = Field(default_factory=ClientConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    store_dir: Optional[str] = Field(
        default=None,
        description="Serve requests from a local disk store instead of a server",
    )


# --- Batch operations ---


class GetOperation(BaseModel):
    """Read one key."""

    op: Literal["get"] = "get"
    key: str


class SetOperation(BaseModel):
    """Write one key, optionally expiring after ``ttl`` seconds (0 = never)."""

    op: Literal["set"] = "set"
    key: str
    value: Any = None
    ttl: Optional[int] = None


class DeleteOperation(BaseModel):
    """Remove one key."""

    op: Literal["delete"] = "delete"
    key: str


BatchOperation = Annotated[
    Union[GetOperation, SetOperation, DeleteOperation], Field(discriminator="op")
]


def dump_operation(operation: GetOperation | SetOperation | DeleteOperation) -> dict[str, Any]:
    """Serialise *operation* to its wire form.

    ``ttl`` is omitted when unset; ``value`` is always sent for writes,
    even when it is ``None``.
    """
    data = operation.model_dump(mode="json")
    if data.get("ttl", 0) is None:
        del data["ttl"]
    return data


# --- Batch results ---


class GetResult(BaseModel):
    """Result of a :class:`GetOperation`; ``value`` is ``None`` when absent."""

    model_config = ConfigDict(extra="allow")

    op: Literal["get"]
    key: str = ""
    value: Any = None
    error: Optional[Any] = None


class SetResult(BaseModel):
    """Result of a :class:`SetOperation`."""

    model_config = ConfigDict(extra="allow")

    op: Literal["set"]
    key: str = ""
    success: bool = True
    error: Optional[Any] = None


class DeleteResult(BaseModel):
    """Result of a :class:`DeleteOperation`."""

    model_config = ConfigDict(extra="allow")

    op: Literal["delete"]
    key: str = ""
    success: bool = True
    error: Optional[Any] = None


BatchResult = Annotated[
    Union[GetResult, SetResult, DeleteResult], Field(discriminator="op")
]

operations_adapter: TypeAdapter[list[BatchOperation]] = TypeAdapter(list[BatchOperation])
results_adapter: TypeAdapter[list[BatchResult]] = TypeAdapter(list[BatchResult])


# --- Other API responses ---


class ScanItem(BaseModel):
    """A single cached ``key``/``value`` pair returned by a prefix scan."""

    key: str
    value: Any = None


class ScanResult(BaseModel):
    """Response of ``GET /cache/scan``.

    ``items`` is populated for a full scan, ``keys`` for a keys-only scan.
    """

    items: Optional[list[ScanItem]] = None
    keys: Optional[list[str]] = None
    count: int = 0


class CacheStats(BaseModel):
    """Response of ``GET /cache/stats``."""

    size: int
    limit: int
    stats: dict[str, Any] = Field(default_factory=dict)


class ClearResult(BaseModel):
    """Response of ``POST /cache/clear``."""

    success: bool
    cleared: int = 0


class HealthResponse(BaseModel):
    """Response of ``GET /health``."""

    status: str


# --- Client results ---


class RememberAllResult(Generic[T]):
    """Items produced by :meth:`~lixcache.client.LixCache.remember_all`.

    ``items`` keeps the order the items were fetched or scanned in and is
    the source of truth. :meth:`get_by` looks an item up by the id that
    ``key_of`` extracted from it, through an index built once when the
    result is created.
    """

    def __init__(self, items: list[T], key_of: Callable[[T], str]) -> None:
        self.items = items
        self._index: dict[str, T] = {key_of(item): item for item in items}

    def get_by(self, item_id: str) -> Optional[T]:
        """Return the item whose id is *item_id*, or ``None``."""
        return self._index.get(item_id)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def __repr__(self) -> str:
        return f"RememberAllResult(items={self.items!r})"
