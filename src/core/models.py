#!/usr/bin/env -S python3 -B -u
"""
Data Models for RTC Emulator

This module provides type-safe data models using dataclasses for the
persisted lab record, the operation inputs, and the typed results that
lab operations return to the front end.

Key Features:
- JSON serialization of the lab state with validation on load
- Immutable models where appropriate
- Clear documentation of all fields
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Any


IP_FORWARD_VALUES = ("0", "1")


@dataclass(frozen=True)
class FirewallRule:
    """
    One idempotent iptables rule.

    The rule is present iff ``iptables <check_args>`` succeeds.
    """
    check_args: List[str]
    add_args: List[str]
    delete_args: List[str]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FirewallRule":
        """Create FirewallRule from its state file representation."""
        return cls(
            check_args=_string_list(data["check_args"], "check_args"),
            add_args=_string_list(data["add_args"], "add_args"),
            delete_args=_string_list(data["del_args"], "del_args"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert FirewallRule to its state file representation."""
        return {
            "check_args": list(self.check_args),
            "add_args": list(self.add_args),
            "del_args": list(self.delete_args),
        }


@dataclass
class LabState:
    """Durable record of the single active lab."""
    bridge: str
    subnet: str
    nodes: List[str] = field(default_factory=list)
    rules: List[FirewallRule] = field(default_factory=list)
    ip_forward_before: str = ""

    def __post_init__(self):
        """Validate the recorded forwarding value."""
        if self.ip_forward_before not in ("",) + IP_FORWARD_VALUES:
            raise ValueError(f"invalid ip_forward_before value: {self.ip_forward_before!r}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LabState":
        """Create LabState from dictionary representation."""
        if not isinstance(data, dict):
            raise ValueError("lab state must be a JSON object")
        rules = data.get("rules") or []
        if not isinstance(rules, list):
            raise ValueError("rules must be a list")
        return cls(
            bridge=_string(data.get("bridge", ""), "bridge"),
            subnet=_string(data.get("subnet", ""), "subnet"),
            nodes=_string_list(data.get("nodes") or [], "nodes"),
            rules=[FirewallRule.from_dict(rule) for rule in rules],
            ip_forward_before=_string(data.get("ip_forward_before", ""), "ip_forward_before"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert LabState to dictionary representation."""
        return {
            "bridge": self.bridge,
            "subnet": self.subnet,
            "nodes": list(self.nodes),
            "rules": [rule.to_dict() for rule in self.rules],
            "ip_forward_before": self.ip_forward_before,
        }


@dataclass(frozen=True)
class Node:
    """A provisioned node namespace and its address on the bridge."""
    name: str
    ip: str


@dataclass(frozen=True)
class ImpairmentSpec:
    """Traffic shaping requested for one node; empty string means unset."""
    node: str
    delay: str = ""
    jitter: str = ""
    loss: str = ""
    bw: str = ""

    def is_empty(self) -> bool:
        return not (self.delay or self.loss or self.jitter or self.bw)


@dataclass
class NodeStatus:
    """Live traffic control state of one node; raw is "none" without netem."""
    name: str
    interface: str
    delay: str = ""
    jitter: str = ""
    loss: str = ""
    bw: str = ""
    raw_qdisc: str = "none"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CreateResult:
    bridge: str
    nodes: List[Node] = field(default_factory=list)
    internet_reachable: bool = False


@dataclass
class ApplyResult:
    node: str
    delay: str = ""
    jitter: str = ""
    loss: str = ""
    bw: str = ""


@dataclass
class ShowResult:
    bridge: str
    subnet: str
    nodes: List[NodeStatus] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bridge": self.bridge,
            "subnet": self.subnet,
            "nodes": [node.to_dict() for node in self.nodes],
        }


@dataclass
class DestroyResult:
    bridge_deleted: bool = False
    nodes_deleted: List[str] = field(default_factory=list)
    state_missing_fallback: bool = False
    ip_forward_restored: bool = False
    ip_forward_restore_value: Optional[str] = None


def _string(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    return value


def _string_list(value: Any, name: str) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"{name} must be a list of strings")
    return list(value)
