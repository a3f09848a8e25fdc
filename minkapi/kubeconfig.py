"""Generation of a kubeconfig pointing clients at the service."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass

from minkapi.config import PROGRAM_NAME

_TEMPLATE = """\
apiVersion: v1
kind: Config
clusters:
- cluster:
    server: {server}
  name: {name}
contexts:
- context:
    cluster: {name}
    user: {name}
  name: {name}
current-context: {name}
preferences: {{}}
users:
- name: {name}
  user: {{}}
"""


@dataclass
class KubeConfigParams:
    """Where to write the kubeconfig and the server URL it names."""

    kubeconfig_path: str
    url: str


def render_kubeconfig(params: KubeConfigParams) -> str:
    """Return the kubeconfig document for ``params``."""
    # A JSON string is a valid double-quoted YAML scalar.
    return _TEMPLATE.format(server=json.dumps(params.url), name=PROGRAM_NAME)


def gen_kubeconfig(params: KubeConfigParams) -> None:
    """Render the kubeconfig and write it to ``params.kubeconfig_path``."""
    content = render_kubeconfig(params)
    try:
        fd = os.open(params.kubeconfig_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
    except OSError as err:
        raise OSError(f"cannot write kubeconfig to {params.kubeconfig_path!r}: {err}") from err