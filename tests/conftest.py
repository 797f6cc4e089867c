import json

import pytest
from kubernetes import client
from kubernetes.client import ApiException

NODES_FORBIDDEN = (
    "nodes is forbidden: User \"system:serviceaccount:default:default\" "
    "cannot list resource \"nodes\" in API group \"\" at the cluster scope"
)


def make_pod(name, namespace, node, volumes=0):
    return client.V1Pod(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace),
        spec=client.V1PodSpec(
            node_name=node,
            containers=[client.V1Container(name="app", image="busybox")],
            volumes=[client.V1Volume(name=f"vol-{i}") for i in range(volumes)] or None,
        ),
    )


def make_node(name):
    return client.V1Node(metadata=client.V1ObjectMeta(name=name))


class FakeCoreV1:
    """Stands in for CoreV1Api; filters pods the way the API server would."""

    def __init__(self, nodes=(), pods=(), fail_nodes=False, fail_pods_on=()):
        self.nodes = list(nodes)
        self.pods = list(pods)
        self.fail_nodes = fail_nodes
        self.fail_pods_on = set(fail_pods_on)
        self.calls = []

    def list_node(self, **kwargs):
        self.calls.append(("list_node", None, None))
        if self.fail_nodes:
            err = ApiException(status=403, reason="Forbidden")
            err.body = json.dumps({
                "kind": "Status",
                "status": "Failure",
                "message": NODES_FORBIDDEN,
                "reason": "Forbidden",
                "code": 403,
            })
            raise err
        return client.V1NodeList(items=[make_node(n) for n in self.nodes])

    def _select(self, namespace, field_selector):
        key, _, node = field_selector.partition("=")
        assert key == "spec.nodeName"
        if node in self.fail_pods_on:
            raise ApiException(status=500, reason="Internal Server Error")
        items = [p for p in self.pods if p.spec.node_name == node]
        if namespace is not None:
            items = [p for p in items if p.metadata.namespace == namespace]
        return client.V1PodList(items=items)

    def list_namespaced_pod(self, namespace, field_selector=None, **kwargs):
        self.calls.append(("list_namespaced_pod", namespace, field_selector))
        return self._select(namespace, field_selector)

    def list_pod_for_all_namespaces(self, field_selector=None, **kwargs):
        self.calls.append(("list_pod_for_all_namespaces", None, field_selector))
        return self._select(None, field_selector)

    def pod_calls(self):
        return [c for c in self.calls if c[0] != "list_node"]


@pytest.fixture
def cluster():
    return FakeCoreV1(
        nodes=["node-a", "node-b"],
        pods=[make_pod("p1", "default", "node-a", volumes=2)],
    )
