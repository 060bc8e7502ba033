#!/usr/bin/env -S python3 -B -u
"""
Host Network Operations

Thin wrappers around ip, iptables and sysctl invocations shared by the
lab operations. Every query distinguishes "resource absent" from "query
failed": the former is a normal return value, the latter raises
HostProbeError so callers never mistake a broken probe for an empty host.
"""

from typing import List, Optional, Tuple

from ..core.exceptions import CommandExecutionError, ErrorCode, HostProbeError
from ..core.models import IP_FORWARD_VALUES, FirewallRule
from ..core.structured_logging import StructuredLogger, get_logger
from ..executors.command_executor import CommandExecutor
from .diagnostics import is_link_not_found, is_namespace_not_found, is_rule_not_found
from .rollback import ABSENT_RULE, RollbackStack


IP_FORWARD_KEY = 'net.ipv4.ip_forward'


def managed_firewall_rules(bridge: str, subnet: str) -> List[FirewallRule]:
    """The three iptables rules a lab needs for NAT and forwarding.

    Order matters: state files record them in this order and fallback
    destroy removes them in this order.
    """
    def rule(table: Tuple[str, ...], chain_args: Tuple[str, ...]) -> FirewallRule:
        return FirewallRule(
            check_args=[*table, '-C', *chain_args],
            add_args=[*table, '-A', *chain_args],
            delete_args=[*table, '-D', *chain_args],
        )

    return [
        rule(('-t', 'nat'), ('POSTROUTING', '-s', subnet, '!', '-o', bridge, '-j', 'MASQUERADE')),
        rule((), ('FORWARD', '-i', bridge, '-j', 'ACCEPT')),
        rule((), ('FORWARD', '-o', bridge, '-m', 'conntrack', '--ctstate', 'RELATED,ESTABLISHED', '-j', 'ACCEPT')),
    ]


class HostNetwork:
    """Queries and mutations of host network state through an executor."""

    def __init__(self, executor: CommandExecutor, logger: Optional[StructuredLogger] = None):
        self.executor = executor
        self.logger = logger or get_logger(__name__)

    # Links

    def link_exists(self, name: str) -> bool:
        try:
            self.executor.run('ip', 'link', 'show', name)
        except CommandExecutionError as e:
            if is_link_not_found(e, name):
                return False
            raise HostProbeError("check bridge existence", cause=e)
        return True

    def bridge_exists(self, bridge: str) -> bool:
        return self.link_exists(bridge)

    def list_bridge_members(self, bridge: str) -> List[str]:
        """Interface names enslaved to bridge, as reported by ip -o link show master."""
        try:
            out = self.executor.output('ip', '-o', 'link', 'show', 'master', bridge)
        except CommandExecutionError as e:
            raise HostProbeError(f"list bridge members for {bridge}", cause=e)

        members = []
        for line in out.splitlines():
            fields = line.split()
            if len(fields) < 2:
                continue
            # "12: br-node1@if11: <BROADCAST,...>"
            name = fields[1]
            if name.endswith(':'):
                name = name[:-1]
            members.append(name.split('@', 1)[0])
        return members

    def delete_link(self, name: str) -> bool:
        """Delete a link; returns False if it was already gone."""
        try:
            self.executor.run('ip', 'link', 'del', name)
        except CommandExecutionError as e:
            if is_link_not_found(e, name):
                self.logger.debug("Link already absent", link=name)
                return False
            raise
        return True

    def delete_bridge(self, bridge: str) -> None:
        self.executor.run('ip', 'link', 'set', bridge, 'down')
        self.executor.run('ip', 'link', 'del', bridge)
        self.logger.info("Deleted bridge", bridge=bridge)

    # Namespaces

    def list_namespaces(self) -> List[str]:
        """Names from ip netns list (first field; "(id: N)" suffix dropped)."""
        try:
            out = self.executor.output('ip', 'netns', 'list')
        except CommandExecutionError as e:
            raise HostProbeError("list namespaces", cause=e)

        namespaces = []
        for line in out.splitlines():
            fields = line.split()
            if fields:
                namespaces.append(fields[0])
        return namespaces

    def delete_namespace(self, name: str) -> bool:
        """Delete a namespace; returns False if it was already gone."""
        try:
            self.executor.run('ip', 'netns', 'del', name)
        except CommandExecutionError as e:
            if is_namespace_not_found(e):
                self.logger.debug("Namespace already absent", namespace=name)
                return False
            raise
        return True

    # Firewall

    def firewall_rule_present(self, rule: FirewallRule) -> bool:
        try:
            self.executor.run('iptables', *rule.check_args)
        except CommandExecutionError as e:
            if is_rule_not_found(e):
                return False
            raise HostProbeError(f"check iptables rule {rule.check_args}", cause=e)
        return True

    def ensure_firewall_rule(self, rule: FirewallRule, rollback: RollbackStack) -> bool:
        """Install rule unless present; registers its removal only when added.

        Returns:
            True if the rule was added by this call
        """
        if self.firewall_rule_present(rule):
            self.logger.debug("Firewall rule already present", rule=" ".join(rule.check_args))
            return False
        self.executor.run('iptables', *rule.add_args)
        rollback.push(f"remove iptables rule {' '.join(rule.add_args)}",
                      'iptables', *rule.delete_args, absent_kind=ABSENT_RULE)
        return True

    def delete_firewall_rule_all(self, rule: FirewallRule) -> int:
        """Delete every copy of rule. Returns the number of copies removed."""
        removed = 0
        while self.firewall_rule_present(rule):
            try:
                self.executor.run('iptables', *rule.delete_args)
            except CommandExecutionError as e:
                if is_rule_not_found(e):
                    break
                raise HostProbeError(f"delete iptables rule {rule.delete_args}", cause=e)
            removed += 1
        if removed:
            self.logger.debug("Removed firewall rule", rule=" ".join(rule.delete_args), copies=removed)
        return removed

    # Forwarding

    def read_ip_forward(self) -> str:
        try:
            out = self.executor.output('sysctl', '-n', IP_FORWARD_KEY)
        except CommandExecutionError as e:
            raise HostProbeError(f"read {IP_FORWARD_KEY}", cause=e)
        value = out.strip()
        if value not in IP_FORWARD_VALUES:
            raise HostProbeError(
                f"read {IP_FORWARD_KEY}",
                cause=ValueError(f"unexpected value: {value!r}")
            )
        return value

    def set_ip_forward(self, value: str) -> None:
        self.executor.run('sysctl', '-w', f"{IP_FORWARD_KEY}={value}")

    def restore_ip_forward(self, value: str) -> bool:
        """Write back a recorded value; an empty value means nothing was recorded."""
        if not value:
            return False
        if value not in IP_FORWARD_VALUES:
            raise HostProbeError(
                f"restore {IP_FORWARD_KEY}",
                error_code=ErrorCode.STATE_ERROR,
                cause=ValueError(f"invalid restore value: {value!r}")
            )
        self.set_ip_forward(value)
        self.logger.info("Restored IP forwarding", value=value)
        return True
