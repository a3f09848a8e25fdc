import json
import socket
import threading
import urllib.request

import pytest

from minkapi import typeinfo
from minkapi.config import MinKAPIConfig
from minkapi.errors import StartFailedError
from minkapi.objects import ADDED, WatchEvent
from minkapi.server import ApiStatusError, InMemoryKAPI, Response, get_object_name

SMP = "application/strategic-merge-patch+json"

PATCH_POD_COND = """
{
  "status" : {
    "conditions" : [ {
      "lastProbeTime" : null,
      "lastTransitionTime" : "2025-05-08T08:21:44Z",
      "message" : "no nodes available to schedule pods",
      "reason" : "Unschedulable",
      "status" : "False",
      "type" : "PodScheduled"
    } ]
  }
}
"""


@pytest.fixture
def kapi(tmp_path):
    return InMemoryKAPI(
        MinKAPIConfig(
            host="127.0.0.1",
            port=0,
            kubeconfig_path=str(tmp_path / "kc.yaml"),
            watch_timeout=0.2,
        )
    )


def create(kapi, path, obj):
    return kapi.handle(
        "POST", path, {}, {"Content-Type": "application/json"}, json.dumps(obj).encode()
    )


def pod(name, namespace=None):
    metadata = {"name": name}
    if namespace:
        metadata["namespace"] = namespace
    return {"metadata": metadata, "spec": {"containers": [{"name": "c", "image": "img"}]}}


def test_discovery_documents(kapi):
    assert kapi.handle("GET", "/api").body == typeinfo.SUPPORTED_API_VERSIONS
    assert kapi.handle("GET", "/apis").body == typeinfo.SUPPORTED_API_GROUPS
    assert kapi.handle("GET", "/api/v1/").body == typeinfo.SUPPORTED_CORE_API_RESOURCE_LIST
    apps = kapi.handle("GET", "/apis/apps/").body
    assert apps["groupVersion"] == "apps/v1"
    assert [r["name"] for r in apps["resources"]] == ["deployments", "replicasets", "statefulsets"]


def test_create_pod_sets_metadata(kapi):
    resp = create(kapi, "/api/v1/namespaces/default/pods", pod("p1"))
    assert resp.status == 200
    meta = resp.body["metadata"]
    assert meta["name"] == "p1"
    assert meta["namespace"] == "default"
    assert meta["resourceVersion"] == "1"
    assert meta["uid"]
    assert meta["creationTimestamp"]
    assert resp.body["kind"] == "Pod"
    assert kapi.current_version(typeinfo.PODS) == 1


def test_create_with_generate_name(kapi):
    body = {"metadata": {"generateName": "web-"}}
    resp = create(kapi, "/api/v1/namespaces/default/pods", body)
    name = resp.body["metadata"]["name"]
    assert name.startswith("web-")
    assert len(name) == len("web-") + 5


def test_create_missing_name_is_bad_request(kapi):
    resp = create(kapi, "/api/v1/namespaces/default/pods", {"metadata": {}})
    assert resp.status == 400
    assert resp.body["reason"] == "BadRequest"
    assert "missing both name and generateName" in resp.body["message"]


def test_create_invalid_json_is_bad_request(kapi):
    resp = kapi.handle("POST", "/api/v1/namespaces/default/pods", {}, {}, b"{not json")
    assert resp.status == 400
    assert resp.body["code"] == 400


def test_get_existing_and_missing(kapi):
    create(kapi, "/api/v1/namespaces/default/pods", pod("p1"))
    found = kapi.handle("GET", "/api/v1/namespaces/default/pods/p1")
    assert found.body["metadata"]["name"] == "p1"
    missing = kapi.handle("GET", "/api/v1/namespaces/default/pods/nope")
    assert missing.status == 404
    assert missing.body["reason"] == "NotFound"
    assert missing.body["details"]["name"] == "default/nope"


def test_cluster_route_defaults_namespace(kapi):
    create(kapi, "/api/v1/namespaces/default/pods", pod("p1"))
    resp = kapi.handle("GET", "/api/v1/pods/p1")
    assert resp.status == 200
    assert resp.body["metadata"]["namespace"] == "default"


def test_cluster_scoped_node(kapi):
    resp = create(kapi, "/api/v1/nodes", {"metadata": {"name": "n1"}})
    assert "namespace" not in resp.body["metadata"]
    got = kapi.handle("GET", "/api/v1/nodes/n1")
    assert got.body["metadata"]["name"] == "n1"


def test_list_filters_by_namespace(kapi):
    create(kapi, "/api/v1/namespaces/default/pods", pod("p1"))
    create(kapi, "/api/v1/namespaces/other/pods", pod("p2"))
    scoped = kapi.handle("GET", "/api/v1/namespaces/other/pods").body
    assert scoped["kind"] == "PodList"
    assert [i["metadata"]["name"] for i in scoped["items"]] == ["p2"]
    everything = kapi.handle("GET", "/api/v1/pods").body
    assert sorted(i["metadata"]["name"] for i in everything["items"]) == ["p1", "p2"]
    assert everything["metadata"]["resourceVersion"] == str(kapi.current_version(typeinfo.PODS))


def test_delete(kapi):
    created = create(kapi, "/api/v1/namespaces/default/pods", pod("p1")).body
    resp = kapi.handle("DELETE", "/api/v1/namespaces/default/pods/p1")
    assert resp.body["status"] == "Success"
    assert resp.body["details"]["name"] == "default/p1"
    assert resp.body["details"]["uid"] == created["metadata"]["uid"]
    assert kapi.handle("GET", "/api/v1/namespaces/default/pods/p1").status == 404
    assert kapi.handle("DELETE", "/api/v1/namespaces/default/pods/p1").status == 404


def test_patch_deployment(kapi):
    path = "/apis/apps/v1/namespaces/default/deployments"
    created = create(kapi, path, {"metadata": {"name": "d1", "labels": {"a": "1"}}}).body
    patch = json.dumps({"metadata": {"labels": {"b": "2"}}})
    resp = kapi.handle("PATCH", path + "/d1", {}, {"Content-Type": SMP}, patch)
    assert resp.status == 200
    assert resp.body["metadata"]["labels"] == {"a": "1", "b": "2"}
    assert int(resp.body["metadata"]["resourceVersion"]) > int(
        created["metadata"]["resourceVersion"]
    )


def test_patch_wrong_content_type(kapi):
    path = "/apis/apps/v1/namespaces/default/deployments"
    create(kapi, path, {"metadata": {"name": "d1"}})
    resp = kapi.handle("PATCH", path + "/d1", {}, {"Content-Type": "application/json"}, "{}")
    assert resp.status == 500
    assert resp.body["reason"] == "InternalError"


def test_patch_pod_status(kapi):
    create(kapi, "/api/v1/namespaces/default/pods", pod("bingo"))
    resp = kapi.handle(
        "PATCH",
        "/api/v1/namespaces/default/pods/bingo/status",
        {},
        {"Content-Type": SMP},
        PATCH_POD_COND,
    )
    assert resp.status == 200
    conditions = resp.body["status"]["conditions"]
    assert conditions[0]["reason"] == "Unschedulable"
    assert conditions[0]["type"] == "PodScheduled"


def test_pod_binding(kapi):
    create(kapi, "/api/v1/namespaces/default/pods", pod("p1"))
    binding = {
        "kind": "Binding",
        "apiVersion": "v1",
        "metadata": {"name": "p1", "namespace": "default"},
        "target": {"kind": "Node", "name": "node-a"},
    }
    resp = create(kapi, "/api/v1/namespaces/default/pods/p1/binding", binding)
    assert resp.body == {"kind": "Status", "metadata": {}, "status": "Success", "code": 201}
    stored = kapi.handle("GET", "/api/v1/namespaces/default/pods/p1").body
    assert stored["spec"]["nodeName"] == "node-a"
    cond = stored["status"]["conditions"][0]
    assert (cond["type"], cond["status"]) == ("PodScheduled", "True")


def test_method_not_allowed_and_not_found(kapi):
    assert kapi.handle("PUT", "/api/v1/namespaces/default/pods").status == 405
    assert kapi.handle("GET", "/nothing/here").status == 404


def test_watch_sends_pending_added_events(kapi):
    create(kapi, "/api/v1/namespaces/default/pods", pod("p1"))
    create(kapi, "/api/v1/namespaces/other/pods", pod("p2"))
    resp = kapi.handle(
        "GET", "/api/v1/namespaces/default/pods", {"watch": "true", "resourceVersion": "0"}
    )
    assert resp.stream is not None
    events = [json.loads(line) for line in resp.stream]
    assert [e["type"] for e in events] == [ADDED]
    assert events[0]["object"]["metadata"]["name"] == "p1"


def test_watch_invalid_resource_version(kapi):
    resp = kapi.handle(
        "GET", "/api/v1/namespaces/default/pods", {"watch": "true", "resourceVersion": "abc"}
    )
    assert resp.status == 400
    assert resp.stream is None


def test_live_watch_follows_changes(kapi):
    stream = kapi.watch(typeinfo.PODS, "default", 0)
    create(kapi, "/api/v1/namespaces/default/pods", pod("p1"))
    added = json.loads(next(stream))
    assert added["type"] == "ADDED"
    assert added["object"]["metadata"]["name"] == "p1"
    kapi.handle("DELETE", "/api/v1/namespaces/default/pods/p1")
    deleted = json.loads(next(stream))
    assert deleted["type"] == "DELETED"
    assert list(stream) == []


def test_closed_watch_receives_nothing(kapi):
    stream = kapi.watch(typeinfo.PODS, "default", 0)
    stream.close()
    kapi.broadcast_event(typeinfo.PODS, "default", WatchEvent(ADDED, pod("p9", "default")))
    assert list(stream) == []


def test_resource_versions_per_resource(kapi):
    assert kapi.next_resource_version(typeinfo.PODS) == "1"
    assert kapi.next_resource_version(typeinfo.PODS) == "2"
    assert kapi.current_version(typeinfo.PODS) == 2
    assert kapi.current_version(typeinfo.NODES) == 0


def test_get_object_name():
    assert get_object_name(typeinfo.PODS, "", "x") == ("default", "x")
    assert get_object_name(typeinfo.NODES, "", "x") == ("", "x")
    assert get_object_name(typeinfo.PODS, "ns", "x") == ("ns", "x")


def test_api_status_error_document():
    status = ApiStatusError(404, "NotFound", "gone", {"name": "n"}).to_status()
    assert status["kind"] == "Status"
    assert status["status"] == "Failure"
    assert status["code"] == 404
    assert status["details"] == {"name": "n"}


def test_response_defaults():
    resp = Response(body={"a": 1})
    assert (resp.status, resp.content_type, resp.stream) == (200, "application/json", None)


def test_start_serves_and_writes_kubeconfig(kapi, tmp_path):
    thread = threading.Thread(target=kapi.start, daemon=True)
    thread.start()
    assert kapi.started.wait(5)
    with urllib.request.urlopen(f"http://{kapi.bound_address}/api", timeout=5) as reply:
        doc = json.loads(reply.read())
    assert doc == typeinfo.SUPPORTED_API_VERSIONS
    text = (tmp_path / "kc.yaml").read_text()
    assert f"http://{kapi.bound_address}" in text
    kapi.shutdown(5)
    thread.join(5)
    assert not thread.is_alive()


def test_start_fails_when_port_taken(tmp_path):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        sock.listen()
        port = sock.getsockname()[1]
        kapi = InMemoryKAPI(
            MinKAPIConfig(host="127.0.0.1", port=port, kubeconfig_path=str(tmp_path / "k.yaml"))
        )
        with pytest.raises(StartFailedError):
            kapi.start()


def test_start_fails_when_kubeconfig_unwritable(tmp_path):
    kapi = InMemoryKAPI(
        MinKAPIConfig(
            host="127.0.0.1", port=0, kubeconfig_path=str(tmp_path / "missing" / "k.yaml")
        )
    )
    with pytest.raises(StartFailedError):
        kapi.start()