"""Watching one Kubernetes node for changes to a label."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import tempfile
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import requests
import yaml

from gpushare.consts import ConfigError

log = logging.getLogger(__name__)

SERVICE_ACCOUNT_DIR = "/var/run/secrets/kubernetes.io/serviceaccount"
NODES_PATH = "/api/v1/nodes"


class _ValueSink(Protocol):
    def set(self, value: str) -> Any: ...


class _WatchExpired(Exception):
    """The server ended the watch; the node has to be listed again."""


@dataclass
class KubeConnection:
    """Where the API server is and how to authenticate to it."""

    server: str
    token: str | None = None
    ca_file: str | None = None
    cert_file: str | None = None
    key_file: str | None = None
    verify: bool = True


def _session_for(connection: KubeConnection) -> requests.Session:
    session = requests.Session()
    session.headers["Accept"] = "application/json"
    if connection.token:
        session.headers["Authorization"] = f"Bearer {connection.token}"
    if connection.verify and connection.ca_file:
        session.verify = connection.ca_file
    else:
        session.verify = connection.verify
    if connection.cert_file and connection.key_file:
        session.cert = (connection.cert_file, connection.key_file)
    elif connection.cert_file:
        session.cert = connection.cert_file
    return session


def _in_cluster_connection() -> KubeConnection:
    host = os.environ.get("KUBERNETES_SERVICE_HOST", "")
    port = os.environ.get("KUBERNETES_SERVICE_PORT", "")
    if not host or not port:
        raise ConfigError(
            "unable to load in-cluster configuration, KUBERNETES_SERVICE_HOST and "
            "KUBERNETES_SERVICE_PORT must be defined"
        )
    try:
        with open(os.path.join(SERVICE_ACCOUNT_DIR, "token"), encoding="utf-8") as stream:
            token = stream.read().strip()
    except OSError as err:
        raise ConfigError(f"unable to read service account token: {err}") from err
    if ":" in host:
        host = f"[{host}]"
    ca_file = os.path.join(SERVICE_ACCOUNT_DIR, "ca.crt")
    return KubeConnection(
        server=f"https://{host}:{port}",
        token=token,
        ca_file=ca_file if os.path.exists(ca_file) else None,
    )


def _named(items: object, name: object, kind: str) -> Mapping:
    if isinstance(items, list):
        for item in items:
            if isinstance(item, Mapping) and item.get("name") == name:
                section = item.get(kind) or {}
                if not isinstance(section, Mapping):
                    raise ConfigError(f"invalid {kind} entry '{name}'")
                return section
    raise ConfigError(f"invalid configuration: {kind} '{name}' not found")


def _file_or_data(section: Mapping, key: str, base: str) -> str | None:
    data = section.get(f"{key}-data")
    if data:
        try:
            raw = base64.b64decode(data, validate=True)
        except (binascii.Error, TypeError, ValueError) as err:
            raise ConfigError(f"invalid {key}-data: {err}") from err
        with tempfile.NamedTemporaryFile(
            prefix="kubeconfig-", suffix=f"-{key}", delete=False
        ) as stream:
            stream.write(raw)
            return stream.name
    path = section.get(key)
    if path:
        return os.path.join(base, str(path))
    return None


def load_kube_connection(kubeconfig: str = "") -> KubeConnection:
    """Read connection settings from a kubeconfig file, or from the cluster.

    With an empty path the in-cluster service account is used.
    """
    if not kubeconfig:
        return _in_cluster_connection()

    try:
        with open(kubeconfig, encoding="utf-8") as stream:
            data = yaml.safe_load(stream)
    except OSError as err:
        raise ConfigError(f"error loading kubeconfig: {err}") from err
    except yaml.YAMLError as err:
        raise ConfigError(f"error parsing kubeconfig: {err}") from err
    if not isinstance(data, Mapping):
        raise ConfigError("invalid configuration: kubeconfig must be an object")

    context_name = data.get("current-context")
    if not context_name:
        raise ConfigError("invalid configuration: no current context")
    context = _named(data.get("contexts"), context_name, "context")
    cluster = _named(data.get("clusters"), context.get("cluster"), "cluster")
    user_name = context.get("user")
    user = _named(data.get("users"), user_name, "user") if user_name else {}

    server = cluster.get("server")
    if not server:
        raise ConfigError(
            f"invalid configuration: no server found for cluster '{context.get('cluster')}'"
        )

    base = os.path.dirname(os.path.abspath(kubeconfig))
    token = user.get("token")
    token_file = user.get("tokenFile")
    if not token and token_file:
        try:
            with open(os.path.join(base, token_file), encoding="utf-8") as stream:
                token = stream.read().strip()
        except OSError as err:
            raise ConfigError(f"error reading token file: {err}") from err

    return KubeConnection(
        server=str(server).rstrip("/"),
        token=token or None,
        ca_file=_file_or_data(cluster, "certificate-authority", base),
        cert_file=_file_or_data(user, "client-certificate", base),
        key_file=_file_or_data(user, "client-key", base),
        verify=not bool(cluster.get("insecure-skip-tls-verify", False)),
    )


def node_label(node: object, label: str) -> str:
    """Return the value of label on a node object, or "" when it is absent."""
    if not isinstance(node, Mapping):
        return ""
    metadata = node.get("metadata") or {}
    labels = metadata.get("labels") or {} if isinstance(metadata, Mapping) else {}
    if not isinstance(labels, Mapping):
        return ""
    value = labels.get(label)
    return value if isinstance(value, str) else ""


class NodeLabelWatcher:
    """Keeps a config value in step with a label on one node."""

    def __init__(
        self,
        connection: KubeConnection,
        node_name: str,
        label: str,
        config: _ValueSink,
        session: Any = None,
        retry_interval: float = 1.0,
    ) -> None:
        self.connection = connection
        self.node_name = node_name
        self.label = label
        self.config = config
        self._session = session if session is not None else _session_for(connection)
        self._retry_interval = retry_interval
        self._node: Mapping | None = None
        self._resource_version = ""
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None
        self._response: Any = None

    @property
    def _selector(self) -> dict[str, str]:
        return {"fieldSelector": f"metadata.name={self.node_name}"}

    def _apply(self, node: Mapping) -> None:
        old = self._node
        self._node = node
        new_label = node_label(node, self.label)
        if old is None:
            self.config.set(new_label)
        elif node_label(old, self.label) != new_label:
            self.config.set(new_label)

    def _delete(self, node: object) -> None:
        self._node = None
        if node_label(node, self.label) != "":
            self.config.set("")

    def handle_event(self, event: Mapping) -> None:
        """Apply one watch event: ADDED, MODIFIED, DELETED, BOOKMARK or ERROR."""
        kind = event.get("type")
        obj = event.get("object")
        if kind == "ERROR":
            message = obj.get("message", "") if isinstance(obj, Mapping) else ""
            raise _WatchExpired(message or "watch error")
        if kind in ("ADDED", "MODIFIED") and isinstance(obj, Mapping):
            self._apply(obj)
        elif kind == "DELETED":
            self._delete(obj)
        if isinstance(obj, Mapping):
            version = (obj.get("metadata") or {}).get("resourceVersion")
            if version:
                self._resource_version = str(version)

    def _list(self) -> None:
        url = self.connection.server + NODES_PATH
        response = self._session.get(url, params=self._selector, timeout=30)
        response.raise_for_status()
        data = response.json()
        items = data.get("items") or []
        self._resource_version = str((data.get("metadata") or {}).get("resourceVersion", ""))
        if items:
            for item in items:
                self._apply(item)
        elif self._node is not None:
            self._delete(self._node)

    def _watch(self) -> None:
        url = self.connection.server + NODES_PATH
        params = {
            "watch": "true",
            "allowWatchBookmarks": "true",
            "resourceVersion": self._resource_version,
            **self._selector,
        }
        response = self._session.get(url, params=params, stream=True, timeout=(10, None))
        self._response = response
        try:
            response.raise_for_status()
            for line in response.iter_lines():
                if self._stopped.is_set():
                    break
                if not line:
                    continue
                self.handle_event(json.loads(line))
        finally:
            self._response = None
            response.close()

    def run(self) -> None:
        """List and watch the node until stop() is called."""
        while not self._stopped.is_set():
            try:
                self._list()
                while not self._stopped.is_set():
                    self._watch()
            except _WatchExpired as err:
                log.info("Watch of node %s ended: %s; listing again", self.node_name, err)
            except (requests.RequestException, ValueError) as err:
                if self._stopped.is_set():
                    break
                log.warning("Error watching node %s: %s", self.node_name, err)
                self._stopped.wait(self._retry_interval)

    def start(self) -> None:
        """Run the watch in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopped.clear()
        self._thread = threading.Thread(
            target=self.run, name=f"watch-node-{self.node_name}", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop the watch and wait briefly for the background thread."""
        self._stopped.set()
        response = self._response
        if response is not None:
            try:
                response.close()
            except Exception:  # closing is best effort during shutdown
                pass
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)