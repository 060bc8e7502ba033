#!/usr/bin/env -S python3 -B -u
"""
Lab Provisioner

Creates the bridge, host forwarding setup and N node namespaces with
all-or-nothing semantics. Every step that creates a host resource records
its compensating action; any failure, cancellation included, runs the
recorded actions in reverse before the error is re-raised.

Example:
    env = LabEnvironment.from_config(load_lab_config())
    result = LabProvisioner(env).create(3)
"""

from typing import List

from ..core.exceptions import (
    CommandExecutionError, ConnectivityCheckError, ErrorCode, HostProbeError,
    LabError, LabExistsError, StateAccessError, StateNotFoundError, ValidationError
)
from ..core.models import CreateResult, LabState, Node
from .environment import LabEnvironment
from .naming import NODE_INTERFACE, is_managed_node_name, node_name, peer_name, transient_iface_name
from .netops import IP_FORWARD_KEY, HostNetwork, managed_firewall_rules
from .preflight import CREATE_COMMANDS, PreflightChecker
from .rollback import ABSENT_LINK, ABSENT_NAMESPACE, RollbackStack


class LabProvisioner:
    """Implements `create`."""

    def __init__(self, env: LabEnvironment):
        self.env = env
        self.config = env.config
        self.executor = env.executor
        self.logger = env.logger(__name__)
        self.network = HostNetwork(self.executor, env.logger('rtcemu.netops'))

    def max_nodes(self) -> int:
        return min(self.config.max_nodes, self.config.node_capacity())

    def create(self, nodes: int) -> CreateResult:
        """
        Provision a lab with `nodes` node namespaces.

        Raises:
            ValidationError: Node count out of range
            PreconditionError: Platform, privilege or program check failed
            LabExistsError: A lab or its remains are already present
            HostProbeError: Existing lab check could not be performed
            LabError: Any provisioning step failed (after rollback)
        """
        limit = self.max_nodes()
        if not isinstance(nodes, int) or isinstance(nodes, bool) or nodes < 1 or nodes > limit:
            raise ValidationError(f"nodes must be between 1 and {limit}: got {nodes}",
                                  field="nodes", value=nodes)

        PreflightChecker(self.env.system).check('create', CREATE_COMMANDS)
        self._check_no_existing_lab()

        rollback = RollbackStack(self.env.logger('rtcemu.rollback'))
        with self.logger.timer(f"lab create ({nodes} nodes)"):
            try:
                result = self._provision(nodes, rollback)
            except Exception as e:
                self.logger.warning("Lab create failed, rolling back", error=str(e), steps=len(rollback))
                failures = rollback.rollback(self.executor)
                if failures and isinstance(e, LabError):
                    e.details['rollback_failures'] = failures
                raise
        rollback.commit()
        return result

    def _check_no_existing_lab(self) -> None:
        try:
            self.env.store.load()
        except StateNotFoundError:
            pass
        except LabError as e:
            raise HostProbeError("check lab state", error_code=ErrorCode.STATE_ERROR, cause=e)
        else:
            raise LabExistsError("state file exists")

        bridge = self.config.bridge_name
        if self.network.bridge_exists(bridge):
            raise LabExistsError(f"bridge {bridge} already exists")

        if any(is_managed_node_name(ns) for ns in self.network.list_namespaces()):
            raise LabExistsError("node namespace already exists")

    def _provision(self, count: int, rollback: RollbackStack) -> CreateResult:
        config = self.config
        bridge = config.bridge_name
        run = self.executor.run

        run('ip', 'link', 'add', bridge, 'type', 'bridge')
        rollback.push(f"delete bridge {bridge}", 'ip', 'link', 'del', bridge, absent_kind=ABSENT_LINK)
        run('ip', 'addr', 'add', config.bridge_address, 'dev', bridge)
        run('ip', 'link', 'set', bridge, 'up')

        ip_forward_before = self.network.read_ip_forward()
        self.network.set_ip_forward('1')
        rollback.push(f"restore {IP_FORWARD_KEY}={ip_forward_before}",
                      'sysctl', '-w', f"{IP_FORWARD_KEY}={ip_forward_before}")

        rules = managed_firewall_rules(bridge, config.subnet)
        for rule in rules:
            self.network.ensure_firewall_rule(rule, rollback)

        nodes: List[Node] = []
        for index in range(1, count + 1):
            nodes.append(self._provision_node(index, rollback))

        internet_reachable = self._probe_internet(nodes[0].name)

        state = LabState(
            bridge=bridge,
            subnet=config.subnet,
            nodes=[node.name for node in nodes],
            rules=rules,
            ip_forward_before=ip_forward_before,
        )
        try:
            self.env.store.save(state)
        except LabError as e:
            raise StateAccessError(f"failed to persist lab state: {e.message}",
                                   e.details.get('state_path', config.state_path), cause=e)

        self.logger.info("Lab created", bridge=bridge, nodes=len(nodes), internet=internet_reachable)
        return CreateResult(bridge=bridge, nodes=nodes, internet_reachable=internet_reachable)

    def _provision_node(self, index: int, rollback: RollbackStack) -> Node:
        config = self.config
        name = node_name(index)
        address = config.node_address(index)
        peer = peer_name(name)
        transient = transient_iface_name(name)
        run = self.executor.run

        def in_node(*argv: str) -> None:
            run('ip', 'netns', 'exec', name, *argv)

        run('ip', 'netns', 'add', name)
        rollback.push(f"delete namespace {name}", 'ip', 'netns', 'del', name, absent_kind=ABSENT_NAMESPACE)

        run('ip', 'link', 'add', transient, 'type', 'veth', 'peer', 'name', peer)
        rollback.push(f"delete link {peer}", 'ip', 'link', 'del', peer, absent_kind=ABSENT_LINK)

        run('ip', 'link', 'set', transient, 'netns', name)
        run('ip', 'link', 'set', peer, 'master', config.bridge_name)
        run('ip', 'link', 'set', peer, 'up')
        in_node('ip', 'link', 'set', 'lo', 'up')
        in_node('ip', 'link', 'set', transient, 'name', NODE_INTERFACE)
        in_node('ip', 'addr', 'add', f"{address}/{config.prefix_length}", 'dev', NODE_INTERFACE)
        in_node('ip', 'link', 'set', NODE_INTERFACE, 'up')
        in_node('ip', 'route', 'add', 'default', 'via', config.gateway_ip)

        try:
            in_node('ping', '-c', '1', '-W', str(config.probe_timeout), config.gateway_ip)
        except CommandExecutionError as e:
            raise ConnectivityCheckError(name, config.gateway_ip, cause=e)

        self.logger.debug("Node ready", node=name, ip=address)
        return Node(name=name, ip=address)

    def _probe_internet(self, node: str) -> bool:
        """Advisory reachability check; never fails the create."""
        target = self.config.internet_probe_target
        try:
            self.executor.run('ip', 'netns', 'exec', node,
                              'ping', '-c', '1', '-W', str(self.config.probe_timeout), target)
        except CommandExecutionError as e:
            self.logger.info("Internet probe failed", node=node, target=target, error=e.error_output)
            return False
        return True
