# minkapi

`minkapi` is a minimal, in-memory Kubernetes API server. It speaks a JSON-only
subset of the Kubernetes REST API that is enough for tools such as `kubectl`,
client libraries, informers and the Kubernetes scheduler to talk to it, with no
etcd and no real cluster. Everything it holds lives in memory and is lost when
it stops.

It is meant as a local helper for developing and testing controllers,
schedulers and other cluster clients. It has no dependencies beyond the
Python standard library (Python 3.10 or later).

## Installation

```
pip install .
```

## Running

```
minkapi
```

By default the service listens on `localhost:8008` and writes a kubeconfig to
`/tmp/minkapi.yaml` (or to the path in the `KUBECONFIG` environment variable).
Point a client at that kubeconfig, for example:

```
KUBECONFIG=/tmp/minkapi.yaml kubectl get pods -A
```

Stop the service with Ctrl-C or SIGTERM; it shuts down gracefully, waiting up
to six seconds. The exit status is 0 on success, 1 for bad options or a failed
start, and 254 if shutdown does not finish in time.

### Options

| Flag | Short | Default | Meaning |
|------|-------|---------|---------|
| `--kubeconfig` | `-k` | `$KUBECONFIG` or `/tmp/minkapi.yaml` | where to write the generated kubeconfig |
| `--host` | `-H` | `localhost` | address to bind; use `0.0.0.0` for all interfaces |
| `--port` | `-P` | `8008` | listen port |
| `--watch-queue-size` | `-s` | `100` | maximum queued events per watcher; further events are dropped |
| `--watch-timeout` | `-t` | `30s` | a watch with no event for this long is closed |
| `--v` | | `0` | log verbosity; 4 or more turns on debug logging |

Durations take the usual forms such as `30s`, `250ms`, `2m` or `1m30s`.

## Supported resources

Core (`/api/v1`): namespaces, serviceaccounts, configmaps, nodes, pods,
services, persistentvolumes, persistentvolumeclaims, replicationcontrollers.

Groups (`/apis/...`): `apps/v1` deployments, replicasets, statefulsets;
`coordination.k8s.io/v1` leases; `events.k8s.io/v1` events;
`rbac.authorization.k8s.io/v1` roles; `scheduling.k8s.io/v1` priorityclasses;
`policy/v1` poddisruptionbudgets; `storage.k8s.io/v1` storageclasses,
csidrivers, csistoragecapacities, csinodes, volumeattachments.

Discovery is served at `/api`, `/apis`, `/api/v1/` and `/apis/<group>/`.

For every resource the server accepts create (`POST`), get, list and watch
(`GET`, with `?watch=true` and an optional `resourceVersion`) and delete
(`DELETE`), both on namespaced paths and on the cluster-wide path. Objects
created without a namespace on a namespaced kind go into `default`; an object
without `metadata.name` gets one from `metadata.generateName` plus a random
suffix. The server fills in `resourceVersion`, `creationTimestamp` and `uid`.

Patching accepts only `application/strategic-merge-patch+json`:

- group resources: `PATCH /apis/<group>/v1/namespaces/{namespace}/<resource>/{name}`
  patches the whole object;
- core resources: `PATCH /api/v1/namespaces/{namespace}/<resource>/{name}/status`
  patches only the `status` part.

Pods also accept `POST /api/v1/namespaces/{namespace}/pods/{name}/binding`,
which sets `spec.nodeName` to the binding target and marks the pod
`PodScheduled`.

## Using it from Python

The server can be driven in-process, which is convenient in tests:

```python
from minkapi.config import MinKAPIConfig
from minkapi.server import InMemoryKAPI

kapi = InMemoryKAPI(MinKAPIConfig(port=0, kubeconfig_path="/tmp/test-kubeconfig.yaml"))
response = kapi.handle(
    "POST", "/api/v1/namespaces/default/pods", {}, {},
    b'{"metadata": {"name": "p1"}}',
)
print(response.status, response.body)
```

`InMemoryKAPI.handle` returns a `Response` with `status`, `body`,
`content_type`, `headers` and, for watches, `stream`, an iterator of JSON event
lines. `InMemoryKAPI.watch` opens a watch directly. `InMemoryKAPI.start()`
binds, writes the kubeconfig and serves over HTTP until
`InMemoryKAPI.shutdown(timeout)` stops it.

Other useful pieces:

- `minkapi.objects`: `ObjectStore`, `WatchEvent`, `strategic_merge_patch`,
  `patch_object`, `patch_status`, `create_list`, `parse_resource_version`;
- `minkapi.typeinfo`: the `Descriptor` of each supported kind and the
  discovery documents;
- `minkapi.podutil`: `get_pod_condition` and `update_pod_condition`;
- `minkapi.kubeconfig`: `render_kubeconfig` and `gen_kubeconfig`.

## What it does not do

- No persistence: all objects are lost when the process stops.
- No authentication or authorization; the generated kubeconfig has no
  credentials.
- JSON only; no protobuf or YAML request bodies.
- No `PUT` updates, no JSON patch or merge patch, and no label or field
  selectors on lists and watches.
- One watcher per resource and namespace: a new watch on the same namespace
  replaces the previous one.
- No validation, defaulting or admission of objects beyond the metadata fields
  described above.