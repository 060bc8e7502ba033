#!/usr/bin/env -S python3 -B -u
"""
Lab Reconciler

Tears a lab down. With a state file, everything recorded there is removed
and the forwarding setting is restored; the state file is deleted last so
an interrupted destroy can be repeated. Without one, only resources that
carry the lab's reserved names are touched: members of the reserved bridge
named br-node<k>, the bridge itself, and the well-known iptables rules.
Namespaces are never deleted on that path since nothing proves they
belong to the lab.
"""

from ..core.exceptions import StateNotFoundError
from ..core.models import DestroyResult, LabState
from .environment import LabEnvironment
from .naming import is_managed_bridge_peer
from .netops import HostNetwork, managed_firewall_rules
from .preflight import DESTROY_COMMANDS, PreflightChecker


class LabReconciler:
    """Implements `destroy`."""

    def __init__(self, env: LabEnvironment):
        self.env = env
        self.config = env.config
        self.logger = env.logger(__name__)
        self.network = HostNetwork(env.executor, env.logger('rtcemu.netops'))

    def destroy(self) -> DestroyResult:
        PreflightChecker(self.env.system).check('destroy', DESTROY_COMMANDS)

        try:
            state = self.env.store.load()
        except StateNotFoundError:
            self.logger.warning("No lab state found, removing resources by name",
                                bridge=self.config.bridge_name)
            return self._destroy_without_state()
        return self._destroy_from_state(state)

    def _destroy_from_state(self, state: LabState) -> DestroyResult:
        result = DestroyResult()

        for node in state.nodes:
            if self.network.delete_namespace(node):
                result.nodes_deleted.append(node)

        bridge = state.bridge or self.config.bridge_name
        if self.network.bridge_exists(bridge):
            self.network.delete_bridge(bridge)
            result.bridge_deleted = True

        for rule in state.rules:
            self.network.delete_firewall_rule_all(rule)

        if self.network.restore_ip_forward(state.ip_forward_before):
            result.ip_forward_restored = True
            result.ip_forward_restore_value = state.ip_forward_before

        self.env.store.delete()
        self.logger.info("Lab destroyed", bridge=bridge, nodes=len(result.nodes_deleted))
        return result

    def _destroy_without_state(self) -> DestroyResult:
        result = DestroyResult(state_missing_fallback=True)
        bridge = self.config.bridge_name

        if self.network.bridge_exists(bridge):
            for member in self.network.list_bridge_members(bridge):
                if not is_managed_bridge_peer(member):
                    self.logger.debug("Leaving foreign bridge member", member=member)
                    continue
                self.network.delete_link(member)
            self.network.delete_bridge(bridge)
            result.bridge_deleted = True

        for rule in managed_firewall_rules(bridge, self.config.subnet):
            self.network.delete_firewall_rule_all(rule)

        return result
