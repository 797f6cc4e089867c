#!/usr/bin/env python3
"""
Kubernetes Pod Volume Counter

Purpose:
  Report, per pod, how many volumes are declared in the pod spec. Pods are
  grouped by the node they are scheduled on. Reporting can be limited to a
  single node and/or a single namespace.

Approach:
  - No --node: list every node and, for each one, list the pods whose
    spec.nodeName matches (field selector). A "Node: <name>" header is printed
    before each node's pods.
  - --node given: list pods for that node only, no header.
  - --namespace given: pods are listed in that namespace only, otherwise
    across all namespaces.
  - Only the number of entries in spec.volumes is reported, not disk usage.

Flags:
  --namespace / -ns <name>  Namespace to filter pods (default: all namespaces)
  --node <name>             Node to report on (default: every node)
  --kubeconfig <path>       Kubeconfig file (default: $KUBECONFIG, else in-cluster)
  --context <name>          Kubeconfig context to use
  --json                    Output JSON instead of human-readable text
  --strict                  Exit 2 if any node or pod list call failed

Exit Codes:
  0 success (list failures are reported but do not change the status)
  1 config / client error
  2 a list call failed (only with --strict)
  130 interrupted

Examples:
  python k8s_pod_volume_counter.py
  python k8s_pod_volume_counter.py --node worker-1 -ns default
  KUBECONFIG=~/.kube/staging python k8s_pod_volume_counter.py --json
"""
from __future__ import annotations
import argparse
import json
import os
import sys
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from kubernetes import client, config
from kubernetes.client import ApiException

SEPARATOR = "-" * 40


@dataclass(frozen=True)
class ReportOptions:
    namespace: str = ""
    node: str = ""
    json_output: bool = False
    strict: bool = False

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "ReportOptions":
        return cls(
            namespace=args.namespace or "",
            node=args.node or "",
            json_output=args.json,
            strict=args.strict,
        )


@dataclass
class PodVolumes:
    name: str
    namespace: str
    node: str
    volume_count: int


@dataclass
class NodeReport:
    node: str
    pods: List[PodVolumes] = field(default_factory=list)
    error: Optional[str] = None


def parse_args(argv: Optional[List[str]] = None):
    p = argparse.ArgumentParser(prog="k8s-pod-volume-counter",
                                description="Display volume count of pods on Kubernetes nodes")
    p.add_argument('--namespace', '-ns', default='', help='Namespace to filter pods (default all)')
    p.add_argument('--node', default='', help='Node to check (default every node)')
    p.add_argument('--kubeconfig', default=os.environ.get('KUBECONFIG'),
                   help='Kubeconfig path (default $KUBECONFIG, falls back to in-cluster config)')
    p.add_argument('--context', help='Kubeconfig context to use')
    p.add_argument('--json', action='store_true', help='JSON output')
    p.add_argument('--strict', action='store_true', help='Exit code 2 if any list call failed')
    return p.parse_args(argv)


def load_config(kubeconfig: Optional[str] = None, context: Optional[str] = None) -> str:
    """Load cluster credentials and return the source that worked.

    A kubeconfig file is tried first when one is configured; any failure there
    falls through to the in-cluster service account. Errors from the in-cluster
    loader propagate to the caller.
    """
    if kubeconfig:
        try:
            config.load_kube_config(config_file=kubeconfig, context=context)
            return "kubeconfig"
        except Exception:
            # Fallback to in-cluster
            pass
    config.load_incluster_config()
    return "in-cluster"


def build_client() -> client.CoreV1Api:
    return client.CoreV1Api()


def describe_error(err: Exception) -> str:
    if isinstance(err, ApiException):
        # Prefer the message from the Status body the API server returns
        message = None
        body = err.body
        if isinstance(body, bytes):
            body = body.decode("utf-8", "replace")
        if body:
            try:
                status = json.loads(body)
            except ValueError:
                status = None
            if isinstance(status, dict):
                message = status.get("message")
        return f"({err.status}) {message or err.reason}"
    return str(err)


def pod_volume_count(pod) -> int:
    spec = pod.spec
    if spec is None:
        return 0
    return len(spec.volumes or [])


def list_node_pods(core: client.CoreV1Api, node: str, namespace: str = "") -> NodeReport:
    """List pods scheduled on ``node``, in ``namespace`` or in all namespaces when empty."""
    selector = f"spec.nodeName={node}"
    report = NodeReport(node=node)
    try:
        if namespace:
            pods = core.list_namespaced_pod(namespace, field_selector=selector).items
        else:
            pods = core.list_pod_for_all_namespaces(field_selector=selector).items
    except Exception as e:
        report.error = f"Error getting pods: {describe_error(e)}"
        return report

    for pod in pods or []:
        report.pods.append(PodVolumes(
            name=pod.metadata.name,
            namespace=pod.metadata.namespace,
            node=node,
            volume_count=pod_volume_count(pod),
        ))
    return report


def collect_reports(core: client.CoreV1Api, opts: ReportOptions) -> Tuple[List[NodeReport], Optional[str]]:
    """Return per-node reports plus the node-list error, if listing nodes failed."""
    if opts.node:
        return [list_node_pods(core, opts.node, opts.namespace)], None

    try:
        nodes = core.list_node().items
    except Exception as e:
        return [], f"Error getting nodes: {describe_error(e)}"

    reports = []
    for n in nodes or []:
        reports.append(list_node_pods(core, n.metadata.name, opts.namespace))
    return reports, None


def build_payload(reports: List[NodeReport], node_error: Optional[str], opts: ReportOptions) -> Dict[str, Any]:
    errors = [node_error] if node_error else []
    errors.extend(r.error for r in reports if r.error)
    pods = [p for r in reports for p in r.pods]
    return {
        'namespace': opts.namespace or None,
        'node': opts.node or None,
        'nodes': [asdict(r) for r in reports],
        'errors': errors,
        'total_pods': len(pods),
        'total_volumes': sum(p.volume_count for p in pods),
    }


def print_report(reports: List[NodeReport], node_error: Optional[str], opts: ReportOptions):
    if opts.json_output:
        print(json.dumps(build_payload(reports, node_error, opts), indent=2))
        return

    if node_error:
        print(node_error)
        return

    for r in reports:
        if not opts.node:
            print(f"Node: {r.node}")
        if r.error:
            print(r.error)
            continue
        for p in r.pods:
            print(f"Pod: {p.name}, Namespace: {p.namespace}")
            print(f"Volume Count: {p.volume_count}")
            print(SEPARATOR)


def run(core: client.CoreV1Api, opts: ReportOptions) -> int:
    reports, node_error = collect_reports(core, opts)
    print_report(reports, node_error, opts)
    failed = node_error is not None or any(r.error for r in reports)
    if opts.strict and failed:
        return 2
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    opts = ReportOptions.from_args(args)

    try:
        load_config(args.kubeconfig, args.context)
    except Exception as e:
        print(f"Error creating config: {e}")
        return 1

    try:
        core = build_client()
    except Exception as e:
        print(f"Error creating Kubernetes client: {e}")
        return 1

    return run(core, opts)


def cli():
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print('Interrupted', file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        print(f'ERROR: {e}', file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    cli()
