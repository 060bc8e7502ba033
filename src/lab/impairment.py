#!/usr/bin/env -S python3 -B -u
"""Impairment applier: replaces a node's root qdisc with a netem qdisc."""

from ..core.exceptions import (
    CommandExecutionError, ExecutionError, NamespaceNotFoundError, NodeNotManagedError, ValidationError
)
from ..core.models import ApplyResult, ImpairmentSpec
from .environment import LabEnvironment
from .netem import build_netem_args
from .netops import HostNetwork
from .preflight import APPLY_COMMANDS, PreflightChecker


class ImpairmentApplier:
    """Implements `apply`."""

    def __init__(self, env: LabEnvironment):
        self.env = env
        self.logger = env.logger(__name__)
        self.network = HostNetwork(env.executor, env.logger('rtcemu.netops'))

    @staticmethod
    def validate(spec: ImpairmentSpec) -> ImpairmentSpec:
        """Return the impairment with a trimmed node name; raise ValidationError if unusable."""
        node = (spec.node or "").strip()
        if not node:
            raise ValidationError("node is required", field="node", value=spec.node)
        if spec.is_empty():
            raise ValidationError("at least one impairment flag is required (--delay/--loss/--jitter/--bw)")
        if spec.jitter and not spec.delay:
            raise ValidationError("jitter requires delay", field="jitter", value=spec.jitter)
        return ImpairmentSpec(node=node, delay=spec.delay, jitter=spec.jitter, loss=spec.loss, bw=spec.bw)

    def apply(self, spec: ImpairmentSpec) -> ApplyResult:
        """
        Replace the traffic shaping of one node.

        A later apply supersedes an earlier one entirely: fields not given
        are cleared, not kept.
        """
        PreflightChecker(self.env.system).check('apply', APPLY_COMMANDS)
        spec = self.validate(spec)

        state = self.env.store.load()
        if spec.node not in state.nodes:
            raise NodeNotManagedError(spec.node, state.nodes)
        if spec.node not in self.network.list_namespaces():
            raise NamespaceNotFoundError(spec.node)

        try:
            self.env.executor.run('ip', *build_netem_args(spec))
        except CommandExecutionError as e:
            raise ExecutionError(
                f"failed to apply impairments to {spec.node}: {e}",
                suggestion="Check that the values are accepted by `tc qdisc ... netem` (e.g. 100ms, 1%, 1mbit).",
                error_code=e.error_code,
                details={"node": spec.node, **e.details},
                cause=e,
            )

        self.logger.info("Applied impairments", node=spec.node, delay=spec.delay,
                         jitter=spec.jitter, loss=spec.loss, bw=spec.bw)
        return ApplyResult(node=spec.node, delay=spec.delay, jitter=spec.jitter, loss=spec.loss, bw=spec.bw)
