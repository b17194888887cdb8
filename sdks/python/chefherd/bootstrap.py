"""Bootstrapping of nodes into an environment.

Hosts not yet registered with the configuration server get a full
bootstrap: the remote bootstrap command installs and configures the client
from scratch. Hosts that are already registered get a partial bootstrap:
their attributes are merged, the secret is put back on the host and a
configuration run is started. Every host is handled on its own task and
gets exactly one result, whatever happens to the others.
"""

import asyncio
import logging
from typing import Iterable, List, Optional, Protocol

from .exceptions import ValidatorCredentialMissing, ValidatorNotFound
from .models import (
    BootstrapStatus,
    BootstrapType,
    HostResponse,
    Node,
    NodeBootstrapResult,
)

_logger = logging.getLogger(__name__)


class NodeQuerier(Protocol):
    """Commands run against individual hosts."""

    async def registered_as(self, hostname: str) -> Optional[str]:
        ...

    async def put_secret(self, hostname: str) -> None:
        ...

    async def chef_run(self, hostname: str) -> None:
        ...


class ChefConnection(Protocol):
    """Node operations of the configuration server."""

    async def bootstrap(self, hosts: List[str], options: dict) -> List[HostResponse]:
        ...

    async def merge_data(self, node_name: str, attributes: dict) -> None:
        ...


class BootstrapWorker:
    """Bootstrap a group of hosts.

    Args:
        hosts: Hostnames to bootstrap
        node_querier: Remote commands on hosts
        chef_connection: Node operations on the configuration server
        options: Passed to the bootstrap command; ``attributes`` is merged
            into the record of already registered nodes
        job: Job receiving status updates
    """

    def __init__(self, hosts: Iterable[str], node_querier: NodeQuerier, chef_connection: ChefConnection,
                 options: dict = None, job=None):
        self.hosts = list(hosts)
        self.node_querier = node_querier
        self.chef_connection = chef_connection
        self.options = dict(options or {})
        self.job = job

    async def nodes(self) -> List[Node]:
        """Find out which hosts are registered and under what node name."""
        node_names = await asyncio.gather(*(self.node_querier.registered_as(host) for host in self.hosts))
        return [Node(hostname=host, node_name=name) for host, name in zip(self.hosts, node_names)]

    async def run(self) -> List[NodeBootstrapResult]:
        """Bootstrap every host.

        Returns:
            One result per host, in the order the hosts were given
        """
        if not self.hosts:
            return []
        nodes = await self.nodes()
        full = [i for i, node in enumerate(nodes) if not node.registered]
        partial = [i for i, node in enumerate(nodes) if node.registered]
        self._set_status(f"Bootstrapping {len(nodes)} node(s): {len(full)} full, {len(partial)} partial")

        # Both groups finish before any error is raised, so no host work
        # outlives the caller's lock.
        outcomes = await asyncio.gather(
            self.full_bootstrap([nodes[i] for i in full]),
            self.partial_bootstrap([nodes[i] for i in partial]),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        full_results, partial_results = outcomes
        results = [None] * len(nodes)
        for i, result in zip(full + partial, full_results + partial_results):
            results[i] = result
        return results

    async def full_bootstrap(self, nodes: Iterable) -> List[NodeBootstrapResult]:
        """Run the bootstrap command on every host.

        Raises:
            ValidatorCredentialMissing: if the validator key is not available
        """
        nodes = [self._as_node(node) for node in nodes]
        if not nodes:
            return []
        self._set_status(f"Performing full bootstrap on {', '.join(node.hostname for node in nodes)}")
        outcomes = await asyncio.gather(
            *(self._bootstrap_host(node) for node in nodes),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, ValidatorNotFound):
                raise ValidatorCredentialMissing(
                    "The validator key could not be found. Make sure the 'validator_path' of your "
                    f"configuration points to your organization's validator key ({outcome})"
                ) from outcome
        results = []
        for node, outcome in zip(nodes, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, Exception):
                _logger.error("Full bootstrap of %s failed: %s", node.hostname, outcome)
                results.append(self._result(node, BootstrapType.FULL, str(outcome)))
            else:
                results.append(outcome)
        return results

    async def _bootstrap_host(self, node: Node) -> NodeBootstrapResult:
        responses = await self.chef_connection.bootstrap([node.hostname], self.options)
        response = next((r for r in responses if r.host == node.hostname), None)
        if response is None:
            return self._result(node, BootstrapType.FULL, f"No response from {node.hostname}")
        if response.ok:
            _logger.info("Full bootstrap of %s succeeded", node.hostname)
            return self._result(node, BootstrapType.FULL)
        _logger.error("Full bootstrap of %s exited with %s", node.hostname, response.exit_code)
        return self._result(node, BootstrapType.FULL, response.stderr or f"exit code {response.exit_code}")

    async def partial_bootstrap(self, nodes: Iterable) -> List[NodeBootstrapResult]:
        """Refresh the secret and run the configuration on registered hosts."""
        nodes = [self._as_node(node) for node in nodes]
        if not nodes:
            return []
        return list(await asyncio.gather(*(self._partial_bootstrap_node(node) for node in nodes)))

    async def _partial_bootstrap_node(self, node: Node) -> NodeBootstrapResult:
        self._set_status(f"Performing partial bootstrap on {node.hostname}")
        try:
            await self.chef_connection.merge_data(node.node_name, self.options.get("attributes", {}))
            await self.node_querier.put_secret(node.hostname)
            await self.node_querier.chef_run(node.hostname)
        except Exception as e:
            _logger.error("Partial bootstrap of %s failed: %s", node.hostname, e)
            return self._result(node, BootstrapType.PARTIAL, str(e))
        _logger.info("Partial bootstrap of %s succeeded", node.hostname)
        return self._result(node, BootstrapType.PARTIAL)

    @staticmethod
    def _as_node(node) -> Node:
        if isinstance(node, Node):
            return node
        if isinstance(node, str):
            return Node(hostname=node)
        return Node(hostname=node["hostname"], node_name=node.get("node_name"))

    @staticmethod
    def _result(node: Node, bootstrap_type: BootstrapType, error: str = None) -> NodeBootstrapResult:
        return NodeBootstrapResult(
            hostname=node.hostname,
            node_name=node.node_name,
            bootstrap_type=bootstrap_type,
            status=BootstrapStatus.ERROR if error is not None else BootstrapStatus.OK,
            message=error or "",
        )

    def _set_status(self, status: str) -> None:
        _logger.info("%s", status)
        if self.job is not None:
            self.job.status = status


async def bootstrap_environment(app, job, environment: str, hosts: Iterable[str], node_querier: NodeQuerier,
                                chef_connection: ChefConnection, options: dict = None) -> Optional[List[dict]]:
    """Bootstrap ``hosts`` into ``environment`` while holding its lock.

    Run as the body of a job; see :meth:`chefherd.application.Application.bootstrap`.

    Returns:
        The per-host results, or None if the environment is locked by
        someone else (the job is failed in that case)
    """
    options = dict(options or {})
    mutex = app.chef_mutex(
        environment=environment,
        force=options.pop("force", False),
        unlock_on_failure=options.pop("unlock_on_failure", True),
        job=job,
    )
    worker = BootstrapWorker(hosts, node_querier, chef_connection, options=options, job=job)
    results = []

    async def _bootstrap():
        results.extend(await worker.run())

    if not await mutex.synchronize(_bootstrap):
        return None
    failed = [r.hostname for r in results if r.status is BootstrapStatus.ERROR]
    if failed:
        job.status = f"Bootstrap finished with errors on {', '.join(failed)}"
    else:
        job.status = "Bootstrap finished"
    return [r.to_dict() for r in results]
