#!/usr/bin/env -S python3 -B -u
"""
Lab naming conventions.

These names are how a lab is recognised on the host when its state file
is gone, so they must not change between releases:
- node namespaces: node<k>, k >= 1 without leading zero
- host side veth end attached to the bridge: br-<node>
- namespace side veth end: veth-<node>, renamed to eth0 inside the node
"""

import re


NODE_PREFIX = 'node'
PEER_PREFIX = 'br-'
TRANSIENT_IFACE_PREFIX = 'veth-'
NODE_INTERFACE = 'eth0'

MANAGED_NODE_PATTERN = re.compile(r'^node[1-9][0-9]*$')


def node_name(index: int) -> str:
    return f"{NODE_PREFIX}{index}"


def peer_name(node: str) -> str:
    """Host side interface of a node's veth pair."""
    return f"{PEER_PREFIX}{node}"


def transient_iface_name(node: str) -> str:
    """Namespace side veth end before it is renamed to NODE_INTERFACE."""
    return f"{TRANSIENT_IFACE_PREFIX}{node}"


def is_managed_node_name(name: str) -> bool:
    return MANAGED_NODE_PATTERN.match(name) is not None


def is_managed_bridge_peer(name: str) -> bool:
    """True for br-node<k>; anything else on the bridge belongs to someone else."""
    if not name.startswith(PEER_PREFIX):
        return False
    return is_managed_node_name(name[len(PEER_PREFIX):])
