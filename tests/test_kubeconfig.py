import json

import pytest

from minkapi.config import PROGRAM_NAME
from minkapi.kubeconfig import KubeConfigParams, gen_kubeconfig, render_kubeconfig


def _server(text):
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith("server:"):
            return json.loads(stripped[len("server:"):].strip())
    raise AssertionError("no server line")


def test_render_contains_url(tmp_path):
    params = KubeConfigParams(str(tmp_path / "kc.yaml"), "http://127.0.0.1:8008")
    text = render_kubeconfig(params)
    assert _server(text) == "http://127.0.0.1:8008"
    assert f"current-context: {PROGRAM_NAME}" in text.splitlines()


def test_render_quotes_unusual_url(tmp_path):
    url = 'http://localhost:1/"odd" # path'
    text = render_kubeconfig(KubeConfigParams(str(tmp_path / "kc.yaml"), url))
    assert _server(text) == url


def test_gen_writes_rendered_document(tmp_path):
    path = tmp_path / "kc.yaml"
    params = KubeConfigParams(str(path), "http://localhost:9000")
    gen_kubeconfig(params)
    assert path.read_text(encoding="utf-8") == render_kubeconfig(params)


def test_gen_overwrites_existing(tmp_path):
    path = tmp_path / "kc.yaml"
    path.write_text("old content that is much longer than needed " * 50, encoding="utf-8")
    params = KubeConfigParams(str(path), "http://localhost:9001")
    gen_kubeconfig(params)
    assert path.read_text(encoding="utf-8") == render_kubeconfig(params)


def test_gen_fails_for_missing_directory(tmp_path):
    params = KubeConfigParams(str(tmp_path / "missing" / "kc.yaml"), "http://localhost:1")
    with pytest.raises(OSError, match="cannot write kubeconfig"):
        gen_kubeconfig(params)