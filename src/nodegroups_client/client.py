"""Nodegroups API client.

Provides an HTTP client for the nodegroups API. Request methods return the
decoded JSON (or a list unwrapped from it) on success and ``None`` on
failure; the reason for the most recent failure is available through
:attr:`NodegroupsClient.errstr`.
"""

import ssl
import threading
import time
from pathlib import Path
from typing import Any

import httpx
import pydantic
import structlog

from . import types
from .config import ClientConfig, merge_options, resolve_config

logger = structlog.get_logger(__name__)

LIST_NODEGROUPS_FROM_NODES = "v1/r/list_nodegroups_from_nodes.php"
LIST_NODES = "v1/r/list_nodes.php"

_FALSE_STRINGS = frozenset({"0", "false", "no", "off"})
# Redirects are followed for these methods only; a POST body is never resent.
_REDIRECTABLE_METHODS = frozenset({"GET", "HEAD"})


def parse_verify_hostname(value: bool | str) -> bool | None:
    """Interpret the ``ssl_verify_hostname`` parameter.

    Returns:
        ``None`` when unset (empty string), otherwise a boolean.
    """
    if isinstance(value, bool):
        return value
    value = value.strip().lower()
    if not value:
        return None
    return value not in _FALSE_STRINGS


class NodegroupsClient:
    """HTTP client for the nodegroups API.

    Configuration is resolved once at construction from defaults, the
    default config file, ``config_file`` and explicit options, in that
    order of increasing precedence. Each instance owns its configuration.

    The httpx.Client and the error string are kept in thread-local storage,
    so a single instance can be shared between threads. Can be used as a
    context manager for automatic cleanup.
    """

    def __init__(
        self,
        config_file: str | Path | None = None,
        *,
        config: ClientConfig | None = None,
        transport: httpx.BaseTransport | None = None,
        **options: Any,
    ):
        """Initialize the client.

        Args:
            config_file: INI file with client options. Options passed as
                keyword arguments override values from this file.
            config: Pre-resolved configuration; when given, no files are
                read and ``options`` are applied on top of it.
            transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
            **options: Explicit options (``uri``, ``ssl_cafile``,
                ``ssl_capath``, ``ssl_verify_hostname``, ``user_agent``,
                ``timeout``).

        Raises:
            ConfigFileError: If ``config_file`` cannot be read.
            pydantic.ValidationError: If an option is unknown or invalid.
        """
        if config is not None:
            self._config = ClientConfig.model_validate(
                merge_options(config.model_dump(), options),
            )
        else:
            self._config = resolve_config(config_file, **options)

        self._transport = transport
        # Bumped whenever the configuration changes; stale clients are rebuilt.
        self._generation = 0
        self._local = threading.local()

        logger.debug(
            "Created nodegroups client",
            uri_ro=self._config.uri.ro,
            uri_rw=self._config.uri.rw,
        )

    @property
    def config(self) -> ClientConfig:
        """The resolved configuration of this client."""
        return self._config

    @property
    def errstr(self) -> str:
        """Error from the most recent failing call in this thread."""
        return getattr(self._local, "errstr", "")

    def _ssl_verify(self) -> ssl.SSLContext | bool:
        cafile = self._config.ssl_cafile or None
        capath = self._config.ssl_capath or None
        verify_hostname = parse_verify_hostname(self._config.ssl_verify_hostname)

        if cafile is None and capath is None and verify_hostname is None:
            return True

        context = ssl.create_default_context(cafile=cafile, capath=capath)
        if verify_hostname is not None:
            context.check_hostname = verify_hostname
        return context

    @property
    def client(self) -> httpx.Client:
        """Get or create the thread-local httpx client.

        The client is rebuilt after :meth:`set_param` changes the
        configuration, so new user agent, timeout and TLS settings apply
        to subsequent requests.

        Returns:
            Thread-local httpx.Client instance.
        """
        current = getattr(self._local, "client", None)
        if (
            current is None
            or current.is_closed
            or getattr(self._local, "generation", None) != self._generation
        ):
            if current is not None and not current.is_closed:
                current.close()
            self._local.client = httpx.Client(
                headers={
                    "Accept": "application/json",
                    "User-Agent": self._config.user_agent,
                },
                timeout=self._config.timeout,
                verify=self._ssl_verify(),
                transport=self._transport,
            )
            self._local.generation = self._generation
        return self._local.client

    def __enter__(self):
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager and cleanup resources."""
        self.close()

    def close(self):
        """Close the thread-local HTTP client if open."""
        current = getattr(self._local, "client", None)
        if current is not None and not current.is_closed:
            current.close()

    def _fail(self, message: str, **context: Any) -> None:
        """Record ``message`` as the current error and return None.

        Logged at debug; callers report the error through :attr:`errstr`.
        """
        self._local.errstr = message
        logger.debug("Nodegroups request failed", error=message, **context)

    def _build_url(self, api_type: str, path: str) -> str | None:
        base = self.get_param("uri", api_type)
        if base is None:
            return None
        return f"{base.rstrip('/')}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        api_type: str,
        path: str,
        query: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Issue a request and decode the response.

        Args:
            method: HTTP method.
            api_type: Endpoint type, ``"ro"`` or ``"rw"``.
            path: API path relative to the endpoint URI.
            query: Query parameters; ``outputFormat=json`` is always added.
            data: Form fields sent as the request body.

        Returns:
            The decoded JSON object, or None on failure.
        """
        self._local.errstr = ""

        url = self._build_url(api_type, path)
        if url is None:
            return None

        try:
            http_client = self.client
        except OSError as exc:
            return self._fail(f"Invalid TLS configuration: {exc}", url=url)

        params = [*(query or {}).items(), ("outputFormat", "json")]
        start_time = time.time()

        try:
            logger.debug("Making API request", method=method, url=url, params=params)
            response = http_client.request(
                method,
                url,
                params=params,
                data=data,
                follow_redirects=method in _REDIRECTABLE_METHODS,
            )
        except httpx.HTTPError as exc:
            return self._fail(str(exc) or type(exc).__name__, method=method, url=url)

        logger.debug(
            "API request completed",
            status_code=response.status_code,
            duration_seconds=round(time.time() - start_time, 3),
        )

        if not response.is_success:
            status_line = f"{response.status_code} {response.reason_phrase}".strip()
            return self._fail(status_line, method=method, url=url)

        return self._decode_response(response)

    def _decode_response(self, response: httpx.Response) -> dict[str, Any] | None:
        try:
            data = response.json()
        except ValueError as exc:
            return self._fail(f"Malformed JSON in response: {exc}")

        if not isinstance(data, dict) or data.get("status") is None:
            return self._fail(response.text)

        status = str(data["status"])
        if status != "200":
            return self._fail(data.get("message") or f"API returned status {status}")

        return data

    def api_get(
        self,
        api_type: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """GET from a nodegroups API.

        Args:
            api_type: Endpoint type, ``"ro"`` or ``"rw"``.
            path: API path, e.g. ``"v1/r/list_nodes.php"``.
            params: Query parameters.

        Returns:
            The decoded JSON object, or None on failure.
        """
        return self._request("GET", api_type, path, query=params)

    def api_post(
        self,
        api_type: str,
        path: str,
        params: dict[str, Any] | None = None,
        get: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """POST to a nodegroups API.

        Args:
            api_type: Endpoint type, ``"ro"`` or ``"rw"``.
            path: API path.
            params: Form fields sent in the request body.
            get: Query parameters.

        Returns:
            The decoded JSON object, or None on failure.
        """
        return self._request("POST", api_type, path, query=get, data=params)

    def _unwrap_records(
        self,
        data: dict[str, Any] | None,
        record_type: type[pydantic.BaseModel],
        field: str,
    ) -> list[str] | None:
        if data is None:
            return None

        try:
            response = types.ApiResponse.model_validate(data)
            if response.records is None:
                return self._fail("No records in response")
            return [
                getattr(record_type.model_validate(record), field)
                for record in response.records
            ]
        except pydantic.ValidationError as exc:
            return self._fail(f"Malformed records in response: {exc}")

    def get_nodegroups_from_node(
        self,
        node: str,
        app: str | None = None,
    ) -> list[str] | None:
        """Get the nodegroups a node is a member of.

        Args:
            node: Node name.
            app: Optional application; when set the nodegroups are sorted
                by that application's order.

        Returns:
            List of nodegroup names, or None on failure.
        """
        params = {"node": node}
        if app:
            params["app"] = app
            params["sortDir"] = "asc"
            params["sortField"] = "order"

        data = self.api_get("ro", LIST_NODEGROUPS_FROM_NODES, params)
        return self._unwrap_records(data, types.NodegroupRecord, "nodegroup")

    def get_nodes_from_expression(self, expression: str) -> list[str] | None:
        """Expand a nodegroup expression into its member nodes."""
        data = self.api_post("ro", LIST_NODES, {"expression": expression})
        return self._unwrap_records(data, types.NodeRecord, "node")

    def get_nodes_from_nodegroup(self, nodegroup: str) -> list[str] | None:
        """Return the member nodes of a nodegroup."""
        data = self.api_get("ro", LIST_NODES, {"nodegroup": nodegroup})
        return self._unwrap_records(data, types.NodeRecord, "node")

    def get_param(self, param: str, sub: str | None = None) -> Any:
        """Return the value of a parameter.

        Args:
            param: Parameter name, e.g. ``"user_agent"`` or ``"uri"``.
            sub: Sub-key for mapping parameters, e.g. ``"ro"``.

        Returns:
            The value, or None (with :attr:`errstr` set) if unknown.
        """
        message = f"Unknown parameter: {param}"

        if param in ClientConfig.model_fields:
            value = getattr(self._config, param)
            if sub is None:
                if isinstance(value, pydantic.BaseModel):
                    return value.model_dump()
                return value
            if isinstance(value, pydantic.BaseModel) and sub in type(value).model_fields:
                return getattr(value, sub)
            message += f" - {sub}"

        return self._fail(message)

    def set_param(self, param: str, value: Any) -> Any:
        """Replace a parameter.

        Returns:
            The new value, or None (with :attr:`errstr` set) if the
            parameter is unknown or the value is invalid.
        """
        if param not in ClientConfig.model_fields:
            return self._fail(f"Unknown param: {param}")

        try:
            setattr(self._config, param, value)
        except pydantic.ValidationError as exc:
            return self._fail(f"Invalid value for {param}: {exc}")

        self._generation += 1
        return self.get_param(param)
