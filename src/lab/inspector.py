#!/usr/bin/env -S python3 -B -u
"""Lab inspector: reports the live netem settings of every managed node."""

from ..core.exceptions import CommandExecutionError, HostProbeError, NamespaceNotFoundError
from ..core.models import NodeStatus, ShowResult
from .environment import LabEnvironment
from .naming import NODE_INTERFACE
from .netem import extract_netem_line, parse_netem_values
from .netops import HostNetwork
from .preflight import SHOW_COMMANDS, PreflightChecker


class LabInspector:
    """Implements `show`."""

    def __init__(self, env: LabEnvironment):
        self.env = env
        self.logger = env.logger(__name__)
        self.network = HostNetwork(env.executor, env.logger('rtcemu.netops'))

    def show(self) -> ShowResult:
        PreflightChecker(self.env.system).check('show', SHOW_COMMANDS)
        state = self.env.store.load()
        namespaces = set(self.network.list_namespaces())

        result = ShowResult(bridge=state.bridge, subnet=state.subnet)
        for node in state.nodes:
            if node not in namespaces:
                raise NamespaceNotFoundError(node)
            result.nodes.append(self.node_status(node))
        return result

    def node_status(self, node: str) -> NodeStatus:
        try:
            out = self.env.executor.output('ip', 'netns', 'exec', node,
                                           'tc', 'qdisc', 'show', 'dev', NODE_INTERFACE)
        except CommandExecutionError as e:
            raise HostProbeError(f"inspect qdisc for {node}", cause=e)

        status = NodeStatus(name=node, interface=NODE_INTERFACE)
        line = extract_netem_line(out)
        if line is not None:
            status.raw_qdisc = line
            status.delay, status.jitter, status.loss, status.bw = parse_netem_values(line)
        self.logger.trace("Node qdisc", node=node, qdisc=status.raw_qdisc)
        return status
