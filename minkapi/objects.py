"""In-memory object storage, watch events, strategic merge patches and list building."""

from __future__ import annotations

import copy
import json
import re
import threading
from dataclasses import dataclass
from typing import Any

from minkapi.typeinfo import Descriptor

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_RESOURCE_VERSION_RE = re.compile(r"[+-]?[0-9]+")

# List fields merged element-wise, by the first key that every element carries.
_MERGE_KEYS: dict[str, tuple[str, ...]] = {
    "conditions": ("type",),
    "addresses": ("type",),
    "containers": ("name",),
    "initContainers": ("name",),
    "ephemeralContainers": ("name",),
    "volumes": ("name",),
    "env": ("name",),
    "imagePullSecrets": ("name",),
    "resourceClaims": ("name",),
    "schedulingGates": ("name",),
    "volumeMounts": ("mountPath",),
    "volumeDevices": ("devicePath",),
    "ownerReferences": ("uid",),
    "ports": ("containerPort", "port"),
    "hostAliases": ("ip",),
    "topologySpreadConstraints": ("topologyKey",),
}

# Lists of scalars whose patch values are merged into the existing set.
_SCALAR_MERGE_FIELDS = frozenset({"finalizers"})


def object_key(obj: dict[str, Any]) -> str:
    """Return the store key of ``obj``: ``namespace/name``, or ``name`` without a namespace."""
    if not isinstance(obj, dict):
        raise TypeError(f"object of type {type(obj).__name__} has no metadata")
    metadata = obj.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise ValueError("object metadata is not a mapping")
    name = metadata.get("name") or ""
    namespace = metadata.get("namespace") or ""
    return f"{namespace}/{name}" if namespace else name


class ObjectStore:
    """A thread-safe store of objects keyed by ``namespace/name``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[str, dict[str, Any]] = {}

    def add(self, obj: dict[str, Any]) -> None:
        """Insert ``obj``, replacing any object with the same key."""
        key = object_key(obj)
        with self._lock:
            self._items[key] = obj

    def update(self, obj: dict[str, Any]) -> None:
        """Store ``obj`` under its key."""
        self.add(obj)

    def delete(self, obj: dict[str, Any]) -> None:
        """Remove the object with the same key as ``obj``, if present."""
        key = object_key(obj)
        with self._lock:
            self._items.pop(key, None)

    def get_by_key(self, key: str) -> dict[str, Any] | None:
        """Return the object stored under ``key``, or None."""
        with self._lock:
            return self._items.get(key)

    def list(self) -> list[dict[str, Any]]:
        """Return all stored objects."""
        with self._lock:
            return list(self._items.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


@dataclass
class WatchEvent:
    """A watch notification about one object."""

    type: str
    object: dict[str, Any]

    def to_json(self) -> str:
        """Encode the event as a single-line JSON document."""
        data = json.dumps(self.object, separators=(",", ":"))
        return f'{{"type":"{self.type}","object":{data}}}'


def parse_resource_version(value: str) -> int:
    """Parse a resource version; the empty string means 0."""
    if value == "":
        return 0
    if not _RESOURCE_VERSION_RE.fullmatch(value):
        raise ValueError(f"invalid resource version {value!r}")
    number = int(value)
    if not _INT64_MIN <= number <= _INT64_MAX:
        raise ValueError(f"resource version {value!r} out of range")
    return number


def _clean(value: Any) -> Any:
    """Return a copy of a patch value with nulls and directives removed."""
    if isinstance(value, dict):
        return _merge_dict({}, value)
    if isinstance(value, list):
        return [
            _clean(item)
            for item in value
            if not (isinstance(item, dict) and "$patch" in item)
        ]
    return value


def _merge_key(field: str, current: list[Any], patch: list[Any]) -> str | None:
    items = current + patch
    if not all(isinstance(item, dict) for item in items):
        return None
    for candidate in _MERGE_KEYS.get(field, ()):
        if all(candidate in item for item in items):
            return candidate
    return None


def _merge_list(field: str, current: list[Any], patch: list[Any]) -> list[Any]:
    if any(isinstance(item, dict) and item.get("$patch") == "replace" for item in patch):
        return _clean(patch)

    if field in _SCALAR_MERGE_FIELDS:
        merged = copy.deepcopy(current)
        merged.extend(item for item in patch if item not in merged)
        return merged

    key = _merge_key(field, current, patch)
    if key is None:
        return _clean(patch)

    merged = copy.deepcopy(current)
    for item in patch:
        position = next(
            (i for i, existing in enumerate(merged) if existing.get(key) == item[key]),
            None,
        )
        if item.get("$patch") == "delete":
            if position is not None:
                del merged[position]
        elif position is None:
            merged.append(_clean(item))
        else:
            merged[position] = _merge_dict(merged[position], item)
    return merged


def _merge_dict(original: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    if patch.get("$patch") == "replace":
        return {k: _clean(v) for k, v in patch.items() if not k.startswith("$") and v is not None}

    result = copy.deepcopy(original)
    for key, value in patch.items():
        if key.startswith("$"):
            continue
        if value is None:
            result.pop(key, None)
            continue
        current = result.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            result[key] = _merge_dict(current, value)
        elif isinstance(value, list) and isinstance(current, list):
            result[key] = _merge_list(key, current, value)
        else:
            result[key] = _clean(value)
    return result


def strategic_merge_patch(original: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Return ``original`` with ``patch`` applied as a strategic merge patch.

    Mappings merge recursively, null removes a field, keyed lists (such as
    conditions by ``type``) merge element-wise and other lists are replaced.
    """
    if not isinstance(original, dict):
        raise ValueError("original document must be a JSON object")
    if not isinstance(patch, dict):
        raise ValueError("patch must be a JSON object")
    return _merge_dict(original, patch)


def _load_patch(key: str, patch_data: bytes | str) -> dict[str, Any]:
    if isinstance(patch_data, (bytes, bytearray)):
        try:
            patch_data = patch_data.decode("utf-8")
        except UnicodeDecodeError as err:
            raise ValueError(f"failed to parse patch for {key!r} as JSON object: {err}") from err
    try:
        patch = json.loads(patch_data)
    except json.JSONDecodeError as err:
        raise ValueError(f"failed to parse patch for {key!r} as JSON object: {err}") from err
    if not isinstance(patch, dict):
        raise ValueError(f"failed to parse patch for {key!r} as JSON object")
    return patch


def patch_object(obj: dict[str, Any], key: str, patch_data: bytes | str) -> None:
    """Apply a strategic merge patch to ``obj`` in place."""
    if not isinstance(obj, dict):
        raise TypeError(f"object {key!r} must be a mapping")
    patch = _load_patch(key, patch_data)
    try:
        patched = strategic_merge_patch(obj, patch)
    except ValueError as err:
        raise ValueError(
            f"failed to apply strategic merge patch for object {key!r}: {err}"
        ) from err
    obj.clear()
    obj.update(patched)


def patch_status(obj: dict[str, Any], key: str, patch_data: bytes | str) -> None:
    """Apply the ``status`` part of a strategic merge patch to the status of ``obj``."""
    if not isinstance(obj, dict):
        raise TypeError(f"object {key!r} must be a mapping")
    if "status" not in obj:
        raise ValueError(f"object {key!r} of kind {obj.get('kind')!r} has no status field")
    patch = _load_patch(key, patch_data)
    if "status" not in patch:
        raise ValueError(f"patch for {key!r} does not contain a 'status' key")
    status_patch = patch["status"]
    if not isinstance(status_patch, dict):
        raise ValueError(f"failed to apply strategic merge patch for object {key!r}")
    obj["status"] = strategic_merge_patch(obj.get("status") or {}, status_patch)


def create_list(
    descriptor: Descriptor,
    namespace: str,
    resource_version: str,
    items: list[dict[str, Any]],
) -> dict[str, Any]:
    """Build the kind-specific list document, keeping items in ``namespace`` if one is given."""
    selected: list[dict[str, Any]] = []
    for obj in items:
        if not isinstance(obj, dict):
            raise TypeError(
                f"element for kind {descriptor.kind!r} is not an object: {type(obj).__name__}"
            )
        metadata = obj.get("metadata") or {}
        if namespace and metadata.get("namespace", "") != namespace:
            continue
        kind = obj.get("kind")
        if kind and kind != descriptor.kind:
            raise ValueError(
                f"type mismatch, list kind {descriptor.list_kind!r} expects items of kind "
                f"{descriptor.kind!r}, but got {kind!r}"
            )
        selected.append(obj)
    return {
        "kind": descriptor.list_kind,
        "apiVersion": descriptor.group_version(),
        "metadata": {"resourceVersion": resource_version},
        "items": selected,
    }