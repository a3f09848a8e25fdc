"""HTTP front end and request handling for the in-memory API service."""

from __future__ import annotations

import copy
import functools
import json
import logging
import queue
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Iterator, Mapping
from urllib.parse import parse_qs, unquote, urlencode, urlsplit

from minkapi import typeinfo
from minkapi.config import PROGRAM_NAME, MinKAPIConfig
from minkapi.errors import ServiceFailedError, StartFailedError
from minkapi.kubeconfig import KubeConfigParams, gen_kubeconfig
from minkapi.objects import (
    ADDED,
    DELETED,
    ObjectStore,
    WatchEvent,
    create_list,
    parse_resource_version,
    patch_object,
    patch_status,
)
from minkapi.podutil import update_pod_condition
from minkapi.typeinfo import Descriptor

_log = logging.getLogger(__name__)

STRATEGIC_MERGE_PATCH = "application/strategic-merge-patch+json"
_JSON = "application/json"
_TEXT = "text/plain; charset=utf-8"


def _q(value: str) -> str:
    return json.dumps(value)


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _gvr_key(d: Descriptor) -> tuple[str, str, str]:
    return (d.group, d.version, d.resource())


def _gvk_string(d: Descriptor) -> str:
    return f"{d.group}/{d.version}, Kind={d.kind}"


def _key(namespace: str, name: str) -> str:
    return f"{namespace}/{name}" if namespace else name


def get_object_name(descriptor: Descriptor, namespace: str, name: str) -> tuple[str, str]:
    """Return ``(namespace, name)``, defaulting the namespace of namespaced kinds to ``default``."""
    if not namespace and descriptor.namespaced:
        namespace = "default"
    return namespace, name


class ApiStatusError(Exception):
    """An error reported to clients as a ``Status`` document."""

    def __init__(
        self, code: int, reason: str, message: str, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.reason = reason
        self.message = message
        self.details = details or {}

    def to_status(self) -> dict[str, Any]:
        """Return the ``Status`` document describing this error."""
        status: dict[str, Any] = {
            "kind": "Status",
            "apiVersion": "v1",
            "metadata": {},
            "status": "Failure",
            "message": self.message,
            "reason": self.reason,
        }
        if self.details:
            status["details"] = copy.deepcopy(self.details)
        status["code"] = self.code
        return status


def _qualified_resource(d: Descriptor) -> str:
    return f"{d.resource()}.{d.group}" if d.group else d.resource()


def _not_found(d: Descriptor, key: str) -> ApiStatusError:
    details: dict[str, Any] = {"name": key}
    if d.group:
        details["group"] = d.group
    details["kind"] = d.resource()
    return ApiStatusError(404, "NotFound", f'{_qualified_resource(d)} "{key}" not found', details)


def _internal(err: object) -> ApiStatusError:
    return ApiStatusError(
        500,
        "InternalError",
        f"Internal error occurred: {err}",
        {"causes": [{"message": str(err)}]},
    )


@dataclass
class Response:
    """The outcome of handling one request.

    ``body`` is a JSON-encodable document, or text when ``content_type`` is
    not JSON. A watch sets ``stream``, an iterator of JSON event lines.
    """

    status: int = 200
    body: Any = None
    content_type: str = _JSON
    headers: dict[str, str] = field(default_factory=dict)
    stream: Iterator[str] | None = None


def _text(status: int, message: str, headers: dict[str, str] | None = None) -> Response:
    return Response(status, message + "\n", _TEXT, headers or {})


def _encode_body(response: Response) -> bytes:
    if response.body is None:
        return b""
    if response.content_type == _JSON:
        return (json.dumps(response.body) + "\n").encode("utf-8")
    return str(response.body).encode("utf-8")


@dataclass
class _Request:
    method: str
    path: str
    params: dict[str, str]
    query: dict[str, str]
    headers: dict[str, str]
    body: bytes

    def param(self, name: str) -> str:
        return self.params.get(name, "")

    @property
    def uri(self) -> str:
        return f"{self.path}?{urlencode(self.query)}" if self.query else self.path


@dataclass
class _Route:
    method: str
    segments: tuple[str, ...]
    prefix: bool
    handler: Callable[[_Request], Response]

    def accepts(self, method: str) -> bool:
        return self.method == method or (self.method == "GET" and method == "HEAD")

    def match(self, segments: list[str]) -> dict[str, str] | None:
        n = len(self.segments)
        if self.prefix:
            if len(segments) > n and tuple(segments[:n]) == self.segments:
                return {}
            return None
        if len(segments) != n:
            return None
        params: dict[str, str] = {}
        for pattern, value in zip(self.segments, segments):
            if pattern.startswith("{") and pattern.endswith("}"):
                if not value:
                    return None
                params[pattern[1:-1]] = value
            elif pattern != value:
                return None
        return params

    def specificity(self) -> tuple[int, int]:
        literals = sum(1 for s in self.segments if not s.startswith("{"))
        return (0 if self.prefix else 1, literals)


class _WatchStream:
    """An iterator of JSON event lines for one watch; closes itself when idle too long."""

    def __init__(
        self,
        owner: InMemoryKAPI,
        descriptor: Descriptor,
        namespace: str,
        pending: list[str],
        start_version: int,
        timeout: float,
        queue_size: int,
    ) -> None:
        self._owner = owner
        self._descriptor = descriptor
        self._namespace = namespace
        self._pending = deque(pending)
        self._start_version = start_version
        self._timeout = timeout
        self._events: queue.Queue[WatchEvent | None] = queue.Queue(maxsize=max(1, queue_size))
        self._closed = False

    def offer(self, event: WatchEvent) -> bool:
        try:
            self._events.put_nowait(event)
        except queue.Full:
            return False
        return True

    def __iter__(self) -> _WatchStream:
        return self

    def __next__(self) -> str:
        if self._closed:
            raise StopIteration
        if self._pending:
            return self._pending.popleft()
        while not self._closed:
            try:
                event = self._events.get(timeout=self._timeout)
            except queue.Empty:
                self.close()
                break
            if event is None:
                continue
            if _event_version(event) > self._start_version:
                return event.to_json()
        raise StopIteration

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._owner._remove_watch(self._descriptor, self._namespace, self)
        try:
            self._events.put_nowait(None)
        except queue.Full:
            pass

    def __enter__(self) -> _WatchStream:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def _event_version(event: WatchEvent) -> int:
    metadata = event.object.get("metadata") or {}
    try:
        return parse_resource_version(str(metadata.get("resourceVersion", "")))
    except ValueError:
        return 0


class InMemoryKAPI:
    """An in-memory server for a subset of the Kubernetes REST API."""

    def __init__(self, config: MinKAPIConfig | None = None) -> None:
        self.config = config or MinKAPIConfig()
        self.started = threading.Event()
        self.bound_address: str | None = None
        self._stores: dict[tuple[str, str, str], ObjectStore] = {
            _gvr_key(d): ObjectStore() for d in typeinfo.SUPPORTED_DESCRIPTORS
        }
        self._versions: dict[tuple[str, str, str], int] = {}
        self._version_lock = threading.Lock()
        self._watchers: dict[tuple[str, str, str], dict[str, _WatchStream]] = {}
        self._watch_lock = threading.Lock()
        self._routes: list[_Route] = []
        self._server: ThreadingHTTPServer | None = None
        self._server_lock = threading.Lock()
        self._register_routes()

    # ---- routing ---------------------------------------------------------

    def _add(self, method: str, pattern: str, handler: Callable[[_Request], Response]) -> None:
        prefix = pattern.endswith("/") and pattern != "/"
        segments = tuple(pattern.strip("/").split("/"))
        self._routes.append(_Route(method, segments, prefix, handler))

    def _register_routes(self) -> None:
        self._add("GET", "/api", self._handle_api_versions)
        self._add("GET", "/apis", self._handle_api_groups)
        self._add(
            "GET", "/api/v1/", self._resources_handler(typeinfo.SUPPORTED_CORE_API_RESOURCE_LIST)
        )
        for resource_list in typeinfo.SUPPORTED_GROUP_API_RESOURCE_LISTS:
            group = resource_list["resources"][0]["group"]
            self._add("GET", f"/apis/{group}/", self._resources_handler(resource_list))
        for d in typeinfo.SUPPORTED_DESCRIPTORS:
            self._register_resource_routes(d)

    def _register_resource_routes(self, d: Descriptor) -> None:
        p = functools.partial
        r = d.resource()
        if not d.group:
            base = "/api/v1"
            self._add("POST", f"{base}/namespaces/{{namespace}}/{r}", p(self._handle_create, d))
            self._add("GET", f"{base}/namespaces/{{namespace}}/{r}", p(self._handle_list_or_watch, d))
            self._add("GET", f"{base}/namespaces/{{namespace}}/{r}/{{name}}", p(self._handle_get, d))
            self._add(
                "PATCH",
                f"{base}/namespaces/{{namespace}}/{r}/{{name}}/status",
                p(self._handle_patch_status, d),
            )
            self._add(
                "DELETE", f"{base}/namespaces/{{namespace}}/{r}/{{name}}", p(self._handle_delete, d)
            )
            if d.kind == typeinfo.PODS.kind:
                self._add(
                    "POST",
                    f"{base}/namespaces/{{namespace}}/pods/{{name}}/binding",
                    self._handle_create_pod_binding,
                )
            self._add("POST", f"{base}/{r}", p(self._handle_create, d))
            self._add("GET", f"{base}/{r}", p(self._handle_list_or_watch, d))
            self._add("DELETE", f"{base}/{r}/{{name}}", p(self._handle_delete, d))
            self._add("GET", f"{base}/{r}/{{name}}", p(self._handle_get, d))
        else:
            base = f"/apis/{d.group}/{d.version}"
            self._add("POST", f"{base}/namespaces/{{namespace}}/{r}", p(self._handle_create, d))
            self._add("GET", f"{base}/namespaces/{{namespace}}/{r}", p(self._handle_list_or_watch, d))
            self._add("GET", f"{base}/namespaces/{{namespace}}/{r}/{{name}}", p(self._handle_get, d))
            self._add(
                "PATCH", f"{base}/namespaces/{{namespace}}/{r}/{{name}}", p(self._handle_patch, d)
            )
            self._add(
                "DELETE", f"{base}/namespaces/{{namespace}}/{r}/{{name}}", p(self._handle_delete, d)
            )
            self._add("POST", f"{base}/{r}", p(self._handle_create, d))
            self._add("GET", f"{base}/{r}", p(self._handle_list_or_watch, d))
            self._add("GET", f"{base}/{r}/{{name}}", p(self._handle_get, d))
            self._add("DELETE", f"{base}/{r}/{{name}}", p(self._handle_delete, d))

    @staticmethod
    def _split(path: str) -> list[str]:
        return [unquote(s) for s in path.lstrip("/").split("/")]

    def _find(self, path: str) -> list[tuple[_Route, dict[str, str]]]:
        segments = self._split(path)
        found = []
        for route in self._routes:
            params = route.match(segments)
            if params is not None:
                found.append((route, params))
        return found

    def handle(
        self,
        method: str,
        path: str,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        body: bytes | str = b"",
    ) -> Response:
        """Route one request and return its response."""
        method = method.upper()
        normalized_query: dict[str, str] = {}
        for k, v in (query or {}).items():
            if isinstance(v, (list, tuple)):
                v = v[0] if v else ""
            normalized_query[k] = str(v)
        normalized_headers = {k.lower(): v for k, v in (headers or {}).items()}
        if isinstance(body, str):
            body = body.encode("utf-8")

        found = self._find(path)
        allowed = [(route, params) for route, params in found if route.accepts(method)]
        if not allowed:
            if found:
                methods = sorted({route.method for route, _ in found})
                return _text(405, "Method Not Allowed", {"Allow": ", ".join(methods)})
            if not path.endswith("/") and any(r.prefix for r, _ in self._find(path + "/")):
                return _text(301, "Moved Permanently", {"Location": path + "/"})
            return _text(404, "404 page not found")

        route, params = max(allowed, key=lambda item: item[0].specificity())
        request = _Request(method, path, params, normalized_query, normalized_headers, body)
        try:
            return route.handler(request)
        except ApiStatusError as err:
            if err.code >= 500:
                _log.error("internal server error: %s %s: %s", method, request.uri, err)
            return Response(err.code, err.to_status())
        except Exception as err:  # noqa: BLE001 - every failure becomes a Status document
            _log.exception("internal server error: %s %s", method, request.uri)
            status_error = _internal(err)
            return Response(status_error.code, status_error.to_status())

    # ---- discovery handlers ----------------------------------------------

    def _handle_api_versions(self, req: _Request) -> Response:
        return Response(200, copy.deepcopy(typeinfo.SUPPORTED_API_VERSIONS))

    def _handle_api_groups(self, req: _Request) -> Response:
        return Response(200, copy.deepcopy(typeinfo.SUPPORTED_API_GROUPS))

    @staticmethod
    def _resources_handler(resource_list: dict[str, Any]) -> Callable[[_Request], Response]:
        def handler(req: _Request) -> Response:
            return Response(200, copy.deepcopy(resource_list))

        return handler

    # ---- helpers ---------------------------------------------------------

    def _store(self, d: Descriptor) -> ObjectStore:
        store = self._stores.get(_gvr_key(d))
        if store is None:
            _log.info("no store initialized for %s", _qualified_resource(d))
            raise _not_found(d, "STORE")
        return store

    @staticmethod
    def _bad_request(req: _Request, detail: str) -> ApiStatusError:
        message = f"cannot handle request {_q(req.method + ' ' + req.uri)}: {detail}"
        _log.error("bad request: %s", message)
        return ApiStatusError(400, "BadRequest", message)

    def _read_json(self, req: _Request) -> dict[str, Any]:
        try:
            data = json.loads(req.body.decode("utf-8") if req.body else "")
        except (UnicodeDecodeError, json.JSONDecodeError) as err:
            raise self._bad_request(
                req, f"cannot unmarshal JSON for request {_q(req.uri)}: {err}"
            ) from err
        if not isinstance(data, dict):
            raise self._bad_request(
                req, f"cannot unmarshal JSON for request {_q(req.uri)}: not a JSON object"
            )
        return data

    def _lookup(self, d: Descriptor, req: _Request) -> tuple[ObjectStore, str, dict[str, Any]]:
        store = self._store(d)
        key = _key(*get_object_name(d, req.param("namespace"), req.param("name")))
        obj = store.get_by_key(key)
        if obj is None:
            _log.error("object not found: key=%s resource=%s", key, d.resource())
            raise _not_found(d, key)
        return store, key, obj

    # ---- resource handlers -----------------------------------------------

    def _handle_create(self, d: Descriptor, req: _Request) -> Response:
        store = self._store(d)
        obj = d.create_object()
        obj.update(self._read_json(req))
        metadata = obj.get("metadata")
        if metadata is None:
            metadata = obj["metadata"] = {}
        if not isinstance(metadata, dict):
            raise self._bad_request(
                req, f"cannot unmarshal JSON for request {_q(req.uri)}: metadata is not an object"
            )

        namespace = metadata.get("namespace") or ""
        if not namespace:
            namespace, _ = get_object_name(d, req.param("namespace"), req.param("name"))
            if namespace:
                metadata["namespace"] = namespace
        name = metadata.get("name") or ""
        if not name:
            prefix = metadata.get("generateName") or ""
            if not prefix:
                raise self._bad_request(
                    req,
                    f"missing both name and generateName in request for creating object of "
                    f"GVK {_q(_gvk_string(d))} in {_q(namespace)} namespace",
                )
            name = typeinfo.generate_name(prefix)
        metadata["name"] = name
        metadata["resourceVersion"] = self.next_resource_version(d)
        if not metadata.get("creationTimestamp"):
            metadata["creationTimestamp"] = _now()
        if not metadata.get("uid"):
            metadata["uid"] = str(uuid.uuid4())

        store.add(obj)
        self.broadcast_event(d, namespace, WatchEvent(ADDED, obj))
        return Response(200, copy.deepcopy(obj))

    def _handle_get(self, d: Descriptor, req: _Request) -> Response:
        _, _, obj = self._lookup(d, req)
        return Response(200, copy.deepcopy(obj))

    def _handle_delete(self, d: Descriptor, req: _Request) -> Response:
        store = self._store(d)
        namespace, name = get_object_name(d, req.param("namespace"), req.param("name"))
        key = _key(namespace, name)
        obj = store.get_by_key(key)
        if obj is None:
            raise _not_found(d, key)
        store.delete(obj)
        self.broadcast_event(d, namespace, WatchEvent(DELETED, obj))
        uid = (obj.get("metadata") or {}).get("uid", "")
        details: dict[str, Any] = {"name": key, "kind": d.resource()}
        if uid:
            details["uid"] = uid
        status = {
            "kind": "Status",
            "apiVersion": "v1",
            "metadata": {},
            "status": "Success",
            "details": details,
        }
        return Response(200, status)

    def _handle_list_or_watch(self, d: Descriptor, req: _Request) -> Response:
        if req.query.get("watch") == "true":
            return self._handle_watch(d, req)
        return self._handle_list(d, req)

    def _handle_list(self, d: Descriptor, req: _Request) -> Response:
        store = self._store(d)
        items = [copy.deepcopy(obj) for obj in store.list()]
        try:
            document = create_list(d, req.param("namespace"), str(self.current_version(d)), items)
        except (TypeError, ValueError) as err:
            raise _internal(err) from err
        return Response(200, document)

    def _check_patch_type(self, req: _Request, key: str) -> None:
        content_type = req.headers.get("content-type", "")
        if content_type != STRATEGIC_MERGE_PATCH:
            raise _internal(f"unsupported content type {_q(content_type)} for obj {_q(key)}")

    def _handle_patch(self, d: Descriptor, req: _Request) -> Response:
        store, key, obj = self._lookup(d, req)
        self._check_patch_type(req, key)
        try:
            patch_object(obj, key, req.body)
        except (TypeError, ValueError) as err:
            raise _internal(f"failed to patch obj {_q(key)}: {err}") from err
        obj.setdefault("metadata", {})["resourceVersion"] = self.next_resource_version(d)
        store.update(obj)
        return Response(200, copy.deepcopy(obj))

    def _handle_patch_status(self, d: Descriptor, req: _Request) -> Response:
        store, key, obj = self._lookup(d, req)
        self._check_patch_type(req, key)
        try:
            patch_status(obj, key, req.body)
        except (TypeError, ValueError) as err:
            raise _internal(f"failed to patch status for obj {_q(key)}: {err}") from err
        obj.setdefault("metadata", {})["resourceVersion"] = self.next_resource_version(d)
        store.update(obj)
        return Response(200, copy.deepcopy(obj))

    def _handle_create_pod_binding(self, req: _Request) -> Response:
        d = typeinfo.PODS
        self._store(d)
        binding = self._read_json(req)
        store, _, pod = self._lookup(d, req)
        target = binding.get("target") or {}
        node_name = target.get("name", "") if isinstance(target, dict) else ""
        pod.setdefault("spec", {})["nodeName"] = node_name
        status = pod.get("status")
        if not isinstance(status, dict):
            status = pod["status"] = {}
        update_pod_condition(status, {"type": "PodScheduled", "status": "True"})
        metadata = pod.get("metadata") or {}
        _log.debug(
            "assigned pod %s/%s to node %s",
            metadata.get("namespace", ""),
            metadata.get("name", ""),
            node_name,
        )
        store.update(pod)
        return Response(200, {"kind": "Status", "metadata": {}, "status": "Success", "code": 201})

    def _handle_watch(self, d: Descriptor, req: _Request) -> Response:
        try:
            start_version = parse_resource_version(req.query.get("resourceVersion", ""))
        except ValueError:
            return _text(400, "Invalid resourceVersion")
        try:
            stream = self.watch(d, req.param("namespace"), start_version)
        except ValueError as err:
            raise _internal(err) from err
        return Response(200, stream=stream)

    # ---- watches and versions --------------------------------------------

    def watch(self, descriptor: Descriptor, namespace: str, start_version: int) -> _WatchStream:
        """Open a watch and return an iterator of JSON event lines.

        Objects newer than ``start_version`` are first reported as added; the
        stream then follows broadcast events until it is idle for the watch
        timeout or is closed. A new watch on the same namespace replaces the old.
        """
        store = self._store(descriptor)
        pending: list[str] = []
        if start_version < self.current_version(descriptor):
            for item in store.list():
                metadata = item.get("metadata") or {}
                if namespace and metadata.get("namespace", "") != namespace:
                    continue
                rv_text = str(metadata.get("resourceVersion", ""))
                try:
                    rv = parse_resource_version(rv_text)
                except ValueError as err:
                    raise ValueError(
                        f"failed to parse resource version {_q(rv_text)} for object "
                        f"{_q(metadata.get('name', ''))} in ns {_q(metadata.get('namespace', ''))}: {err}"
                    ) from err
                if rv <= start_version:
                    continue
                pending.append(WatchEvent(ADDED, copy.deepcopy(item)).to_json())

        watch_namespace = namespace
        if not watch_namespace and descriptor.namespaced:
            watch_namespace = "default"
        stream = _WatchStream(
            self,
            descriptor,
            watch_namespace,
            pending,
            start_version,
            self.config.watch_timeout,
            self.config.watch_queue_size,
        )
        with self._watch_lock:
            self._watchers.setdefault(_gvr_key(descriptor), {})[watch_namespace] = stream
        return stream

    def _remove_watch(self, descriptor: Descriptor, namespace: str, stream: _WatchStream) -> None:
        with self._watch_lock:
            watchers = self._watchers.get(_gvr_key(descriptor), {})
            if watchers.get(namespace) is stream:
                del watchers[namespace]

    def _close_watches(self) -> None:
        with self._watch_lock:
            streams = [s for watchers in self._watchers.values() for s in watchers.values()]
            self._watchers.clear()
        for stream in streams:
            stream.close()

    def broadcast_event(self, descriptor: Descriptor, namespace: str, event: WatchEvent) -> None:
        """Queue ``event`` for the watcher of ``namespace``; dropped if its queue is full."""
        snapshot = WatchEvent(event.type, copy.deepcopy(event.object))
        with self._watch_lock:
            stream = self._watchers.get(_gvr_key(descriptor), {}).get(namespace)
            if stream is not None and not stream.offer(snapshot):
                _log.debug("cannot broadcast watch event %s in namespace %s", event.type, namespace)

    def next_resource_version(self, descriptor: Descriptor) -> str:
        """Increment and return the resource version of the descriptor's resource."""
        key = _gvr_key(descriptor)
        with self._version_lock:
            self._versions[key] = self._versions.get(key, 0) + 1
            return str(self._versions[key])

    def current_version(self, descriptor: Descriptor) -> int:
        """Return the latest resource version issued for the descriptor's resource."""
        with self._version_lock:
            return self._versions.get(_gvr_key(descriptor), 0)

    # ---- server lifecycle ------------------------------------------------

    def start(self) -> None:
        """Bind, write the kubeconfig and serve requests until shut down."""
        address = self.config.address()
        try:
            server = _Server((self.config.host, self.config.port), _make_handler(self))
        except OSError as err:
            raise StartFailedError(f"cannot listen on TCP address {_q(address)}: {err}") from err
        host, port = server.server_address[:2]
        self.bound_address = f"[{host}]:{port}" if ":" in str(host) else f"{host}:{port}"
        try:
            gen_kubeconfig(
                KubeConfigParams(self.config.kubeconfig_path, "http://" + self.bound_address)
            )
        except OSError as err:
            server.server_close()
            raise StartFailedError(str(err)) from err
        _log.info("kubeconfig generated at %s", self.config.kubeconfig_path)
        _log.info("%s service listening on %s", PROGRAM_NAME, self.bound_address)
        with self._server_lock:
            self._server = server
        self.started.set()
        try:
            server.serve_forever()
        except Exception as err:
            raise ServiceFailedError(str(err)) from err
        finally:
            server.server_close()
            with self._server_lock:
                self._server = None
            self.started.clear()

    def shutdown(self, timeout: float | None = None) -> None:
        """Stop serving, waiting at most ``timeout`` seconds; raises TimeoutError if exceeded."""
        self._close_watches()
        with self._server_lock:
            server = self._server
        if server is None:
            return
        stopper = threading.Thread(target=server.shutdown, daemon=True)
        stopper.start()
        stopper.join(timeout)
        if stopper.is_alive():
            raise TimeoutError(f"{PROGRAM_NAME} shutdown did not finish in time")


class _Server(ThreadingHTTPServer):
    daemon_threads = True


def _make_handler(kapi: InMemoryKAPI) -> type[BaseHTTPRequestHandler]:
    class _Handler(BaseHTTPRequestHandler):
        protocol_version = "HTTP/1.1"
        server_version = PROGRAM_NAME

        def _dispatch(self) -> None:
            parts = urlsplit(self.path)
            query = {
                k: v[0] for k, v in parse_qs(parts.query, keep_blank_values=True).items()
            }
            length = int(self.headers.get("Content-Length") or 0)
            body = self.rfile.read(length) if length > 0 else b""
            headers = dict(self.headers.items())
            response = kapi.handle(self.command, parts.path, query, headers, body)
            self._write(response)

        do_GET = _dispatch
        do_HEAD = _dispatch
        do_POST = _dispatch
        do_PUT = _dispatch
        do_PATCH = _dispatch
        do_DELETE = _dispatch

        def _write(self, response: Response) -> None:
            self.send_response(response.status)
            self.send_header("Content-Type", response.content_type)
            for name, value in response.headers.items():
                self.send_header(name, value)
            stream = response.stream
            if stream is not None:
                self.send_header("Transfer-Encoding", "chunked")
                self.end_headers()
                try:
                    for line in stream:
                        data = (line + "\n").encode("utf-8")
                        self.wfile.write(b"%x\r\n%s\r\n" % (len(data), data))
                        self.wfile.flush()
                    self.wfile.write(b"0\r\n\r\n")
                    self.wfile.flush()
                except (BrokenPipeError, ConnectionResetError):
                    self.close_connection = True
                finally:
                    close = getattr(stream, "close", None)
                    if close is not None:
                        close()
                return
            data = _encode_body(response)
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            if self.command != "HEAD":
                self.wfile.write(data)

        def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
            _log.debug("%s - %s", self.address_string(), format % args)

    return _Handler