#!/usr/bin/env -S python3 -B -u
"""Tests for the JSON file state store and LabState serialization."""

import json
import os
import shutil
import stat
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.core.exceptions import ErrorCode, StateAccessError, StateCorruptError, StateNotFoundError
from src.core.models import FirewallRule, LabState
from src.core.state_store import FileStateStore


def make_state() -> LabState:
    return LabState(
        bridge='rtcemu0',
        subnet='10.200.0.0/24',
        nodes=['node1', 'node2'],
        rules=[FirewallRule(['-C', 'FORWARD', '-i', 'rtcemu0', '-j', 'ACCEPT'],
                            ['-A', 'FORWARD', '-i', 'rtcemu0', '-j', 'ACCEPT'],
                            ['-D', 'FORWARD', '-i', 'rtcemu0', '-j', 'ACCEPT'])],
        ip_forward_before='0',
    )


class TestFileStateStore(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.path = Path(self.test_dir) / 'run' / 'rtc-emulator' / 'lab.json'
        self.store = FileStateStore(str(self.path))

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_missing_file(self):
        with self.assertRaises(StateNotFoundError) as ctx:
            self.store.load()
        self.assertEqual(ctx.exception.error_code, ErrorCode.NOT_FOUND)

    def test_save_creates_directory_and_file(self):
        self.store.save(make_state())

        self.assertTrue(self.path.exists())
        self.assertEqual(stat.S_IMODE(self.path.stat().st_mode), 0o600)
        self.assertFalse(self.path.with_name('lab.json.tmp').exists())

    def test_file_format(self):
        self.store.save(make_state())

        data = json.loads(self.path.read_text())
        self.assertEqual(set(data), {'bridge', 'subnet', 'nodes', 'rules', 'ip_forward_before'})
        self.assertEqual(data['rules'][0]['del_args'], ['-D', 'FORWARD', '-i', 'rtcemu0', '-j', 'ACCEPT'])
        self.assertEqual(data['ip_forward_before'], '0')

    def test_load_saved_state(self):
        self.store.save(make_state())
        self.assertEqual(self.store.load(), make_state())

    def test_load_written_by_hand(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text(json.dumps({
            'bridge': 'rtcemu0', 'subnet': '10.200.0.0/24', 'nodes': ['node1'],
            'rules': None, 'ip_forward_before': '',
        }))
        state = self.store.load()
        self.assertEqual(state.rules, [])
        self.assertEqual(state.ip_forward_before, '')

    def test_corrupt_json(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text('{"bridge": ')
        with self.assertRaises(StateCorruptError) as ctx:
            self.store.load()
        self.assertIn("failed to parse state file", str(ctx.exception))
        self.assertEqual(ctx.exception.error_code, ErrorCode.STATE_ERROR)

    def test_invalid_record(self):
        self.path.parent.mkdir(parents=True)
        for content in ('[]', '{"nodes": "node1"}', '{"ip_forward_before": "7"}',
                        '{"rules": [{"check_args": []}]}'):
            self.path.write_text(content)
            with self.assertRaises(StateCorruptError, msg=content):
                self.store.load()

    def test_unreadable_file(self):
        self.store.save(make_state())
        with mock.patch('builtins.open', side_effect=PermissionError(13, 'Permission denied')):
            with self.assertRaises(StateAccessError) as ctx:
                self.store.load()
        self.assertNotIsInstance(ctx.exception, StateNotFoundError)

    def test_commit_failure_removes_temp_file(self):
        with mock.patch.object(Path, 'replace', side_effect=OSError(18, 'Invalid cross-device link')):
            with self.assertRaises(StateAccessError) as ctx:
                self.store.save(make_state())
        self.assertIn("failed to commit state file", str(ctx.exception))
        self.assertFalse(self.path.with_name('lab.json.tmp').exists())
        self.assertFalse(self.path.exists())

    def test_overwrite(self):
        self.store.save(make_state())
        updated = make_state()
        updated.nodes = ['node1']
        self.store.save(updated)
        self.assertEqual(self.store.load().nodes, ['node1'])

    def test_delete_is_idempotent(self):
        self.store.save(make_state())
        self.store.delete()
        self.assertFalse(self.path.exists())
        self.store.delete()


if __name__ == '__main__':
    unittest.main()
