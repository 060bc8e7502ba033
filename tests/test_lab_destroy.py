#!/usr/bin/env -S python3 -B -u
"""
Tests for lab destroy.

Covers both the state driven path and the name based fallback used when
no state file exists.
"""

import unittest

from lab_fakes import (
    BRIDGE_MISSING, NETNS_MISSING, RULE_MISSING, FakeExecutor, FakeSystem, MemoryStateStore,
    make_env, sample_state
)
from src.core.exceptions import (
    CommandExecutionError, MissingCommandError, PrivilegeError, StateAccessError, UnsupportedPlatformError
)
from src.lab.reconciler import LabReconciler


MASQUERADE_CHECK = 'iptables -t nat -C POSTROUTING -s 10.200.0.0/24 ! -o rtcemu0 -j MASQUERADE'
MASQUERADE_DEL = 'iptables -t nat -D POSTROUTING -s 10.200.0.0/24 ! -o rtcemu0 -j MASQUERADE'
FORWARD_IN_CHECK = 'iptables -C FORWARD -i rtcemu0 -j ACCEPT'
FORWARD_IN_DEL = 'iptables -D FORWARD -i rtcemu0 -j ACCEPT'
FORWARD_OUT_CHECK = 'iptables -C FORWARD -o rtcemu0 -m conntrack --ctstate RELATED,ESTABLISHED -j ACCEPT'
FORWARD_OUT_DEL = 'iptables -D FORWARD -o rtcemu0 -m conntrack --ctstate RELATED,ESTABLISHED -j ACCEPT'

BRIDGE_MEMBERS = (
    "5: br-node1@if4: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 qdisc noqueue master rtcemu0 state UP\n"
    "6: br-node12@if7: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 qdisc noqueue master rtcemu0 state UP\n"
    "7: br-other@if2: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 qdisc noqueue master rtcemu0 state UP\n"
    "8: br-node01@if3: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 qdisc noqueue master rtcemu0 state UP\n"
    "9: tap0: <BROADCAST,MULTICAST> mtu 1500 qdisc noop master rtcemu0 state DOWN\n"
)


def installed_rules(executor, copies=1):
    """Each managed rule is present `copies` times, then absent."""
    for check in (MASQUERADE_CHECK, FORWARD_IN_CHECK, FORWARD_OUT_CHECK):
        executor.script(check, *([None] * copies), RULE_MISSING)
    return executor


class TestDestroyFromState(unittest.TestCase):

    def setUp(self):
        self.executor = installed_rules(FakeExecutor())
        self.store = MemoryStateStore(sample_state(ip_forward_before='0'))
        self.reconciler = LabReconciler(make_env(self.executor, self.store))

    def test_full_teardown(self):
        result = self.reconciler.destroy()

        self.assertTrue(result.bridge_deleted)
        self.assertEqual(result.nodes_deleted, ['node1', 'node2'])
        self.assertFalse(result.state_missing_fallback)
        self.assertTrue(result.ip_forward_restored)
        self.assertEqual(result.ip_forward_restore_value, '0')
        for line in ('ip netns del node1', 'ip netns del node2', 'ip link set rtcemu0 down',
                     'ip link del rtcemu0', MASQUERADE_DEL, FORWARD_IN_DEL, FORWARD_OUT_DEL,
                     'sysctl -w net.ipv4.ip_forward=0'):
            self.assertTrue(self.executor.ran(line), line)
        self.assertLess(self.executor.index('ip link set rtcemu0 down'), self.executor.index('ip link del rtcemu0'))
        self.assertIsNone(self.store.state)

    def test_state_deleted_last(self):
        calls_at_delete = []
        self.store.on_delete = lambda: calls_at_delete.append(len(self.executor.calls))

        self.reconciler.destroy()

        self.assertEqual(calls_at_delete, [len(self.executor.calls)])
        self.assertEqual(self.executor.calls[-1], 'sysctl -w net.ipv4.ip_forward=0')

    def test_vanished_namespace_is_tolerated(self):
        self.executor.script('ip netns del node1', NETNS_MISSING)

        result = self.reconciler.destroy()

        self.assertEqual(result.nodes_deleted, ['node2'])
        self.assertEqual(self.store.deletes, 1)

    def test_namespace_delete_failure_keeps_state(self):
        self.executor.script('ip netns del node2', 'Cannot remove namespace file: Device or resource busy')

        with self.assertRaises(CommandExecutionError):
            self.reconciler.destroy()

        self.assertEqual(self.store.deletes, 0)
        self.assertIsNotNone(self.store.state)

    def test_missing_bridge(self):
        self.executor.script('ip link show rtcemu0', BRIDGE_MISSING)

        result = self.reconciler.destroy()

        self.assertFalse(result.bridge_deleted)
        self.assertFalse(self.executor.ran('ip link del rtcemu0'))

    def test_duplicate_rules_removed_exhaustively(self):
        installed_rules(self.executor, copies=3)

        self.reconciler.destroy()

        self.assertEqual(self.executor.calls.count(FORWARD_IN_DEL), 3)
        self.assertEqual(self.executor.calls.count(MASQUERADE_DEL), 3)

    def test_rule_check_failure(self):
        self.executor.script(FORWARD_IN_CHECK, "iptables: Permission denied (you must be root)")

        with self.assertRaises(Exception) as ctx:
            self.reconciler.destroy()

        self.assertIn("failed to check iptables rule", str(ctx.exception))
        self.assertEqual(self.store.deletes, 0)

    def test_no_recorded_forwarding_value(self):
        self.store.state = sample_state(ip_forward_before='')

        result = self.reconciler.destroy()

        self.assertFalse(result.ip_forward_restored)
        self.assertIsNone(result.ip_forward_restore_value)
        self.assertFalse(any(call.startswith('sysctl') for call in self.executor.calls))

    def test_restores_enabled_forwarding(self):
        self.store.state = sample_state(ip_forward_before='1')

        result = self.reconciler.destroy()

        self.assertTrue(self.executor.ran('sysctl -w net.ipv4.ip_forward=1'))
        self.assertEqual(result.ip_forward_restore_value, '1')

    def test_unreadable_state(self):
        self.store.load_error = "permission denied"

        with self.assertRaises(StateAccessError):
            self.reconciler.destroy()

        self.assertEqual(self.executor.calls, [])


class TestDestroyFallback(unittest.TestCase):

    def setUp(self):
        self.executor = installed_rules(FakeExecutor())
        self.executor.outputs['ip -o link show master rtcemu0'] = BRIDGE_MEMBERS
        self.store = MemoryStateStore()
        self.reconciler = LabReconciler(make_env(self.executor, self.store))

    def test_only_managed_peers_are_deleted(self):
        result = self.reconciler.destroy()

        self.assertTrue(result.state_missing_fallback)
        self.assertTrue(result.bridge_deleted)
        self.assertFalse(result.ip_forward_restored)
        self.assertEqual(result.nodes_deleted, [])

        link_deletes = [call for call in self.executor.calls if call.startswith('ip link del ')]
        self.assertEqual(link_deletes, ['ip link del br-node1', 'ip link del br-node12', 'ip link del rtcemu0'])

    def test_never_deletes_namespaces(self):
        self.executor.outputs['ip netns list'] = "node1\nnode2\n"

        self.reconciler.destroy()

        self.assertFalse(any(call.startswith('ip netns del') for call in self.executor.calls))
        self.assertFalse(any(call.startswith('sysctl') for call in self.executor.calls))

    def test_well_known_rules_removed(self):
        self.reconciler.destroy()

        for line in (MASQUERADE_DEL, FORWARD_IN_DEL, FORWARD_OUT_DEL):
            self.assertTrue(self.executor.ran(line), line)

    def test_no_bridge(self):
        self.executor.script('ip link show rtcemu0', BRIDGE_MISSING)

        result = self.reconciler.destroy()

        self.assertFalse(result.bridge_deleted)
        self.assertFalse(self.executor.ran('ip -o link show master rtcemu0'))
        self.assertTrue(self.executor.ran(MASQUERADE_DEL))

    def test_member_already_gone(self):
        self.executor.script('ip link del br-node1', 'Cannot find device "br-node1"')

        result = self.reconciler.destroy()

        self.assertTrue(result.bridge_deleted)

    def test_member_listing_failure(self):
        self.executor.script('ip -o link show master rtcemu0', 'RTNETLINK answers: Operation not permitted')

        with self.assertRaises(Exception) as ctx:
            self.reconciler.destroy()

        self.assertIn("failed to list bridge members for rtcemu0", str(ctx.exception))
        self.assertFalse(self.executor.ran('ip link del rtcemu0'))


class TestDestroyPreflight(unittest.TestCase):

    def test_preflight(self):
        executor = FakeExecutor()
        for system, error in ((FakeSystem(platform='darwin'), UnsupportedPlatformError),
                              (FakeSystem(root=False), PrivilegeError),
                              (FakeSystem(missing={'iptables'}), MissingCommandError)):
            reconciler = LabReconciler(make_env(executor, MemoryStateStore(sample_state()), system))
            with self.assertRaises(error):
                reconciler.destroy()
        self.assertEqual(executor.calls, [])

    def test_tc_not_required(self):
        executor = installed_rules(FakeExecutor())
        result = LabReconciler(make_env(executor, MemoryStateStore(sample_state()),
                                        FakeSystem(missing={'tc', 'ping', 'sysctl'}))).destroy()
        self.assertTrue(result.bridge_deleted)


if __name__ == '__main__':
    unittest.main()
