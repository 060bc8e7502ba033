#!/usr/bin/env -S python3 -B -u
"""
Test Suite for Error Handling

This module verifies that:
1. Errors are reported without stack traces (unless -vvv)
2. User-friendly messages and suggestions are shown
3. Correct exit codes are returned
"""

import unittest
import sys
import os
from io import StringIO

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.core.exceptions import (
    LabError, ConfigurationError, ValidationError, UnsupportedPlatformError, PrivilegeError,
    MissingCommandError, LabExistsError, HostProbeError, StateNotFoundError, StateAccessError,
    StateCorruptError, CommandExecutionError, ConnectivityCheckError, OperationCancelledError,
    NodeNotManagedError, NamespaceNotFoundError, ErrorHandler, ErrorCode
)


class TestErrorMessages(unittest.TestCase):
    """Test error message formatting at different verbosity levels."""

    def test_basic_error_message(self):
        """Test basic error message without verbosity."""
        error = LabExistsError("bridge rtcemu0 already exists")

        message = error.format_error(verbose_level=0)

        self.assertIn("Error: existing lab detected (bridge rtcemu0 already exists)", message)
        self.assertIn("Suggestion: run `rtcemu destroy` and retry", message)
        self.assertNotIn("Details:", message)
        self.assertNotIn("Stack trace:", message)

    def test_verbose_error_message(self):
        """Test error message with -v verbosity."""
        error = CommandExecutionError(['ip', 'link', 'add', 'rtcemu0', 'type', 'bridge'], 2,
                                      'RTNETLINK answers: File exists')

        message = error.format_error(verbose_level=1)

        self.assertIn("Details:", message)
        self.assertIn("command: ip link add rtcemu0 type bridge", message)
        self.assertIn("exit_code: 2", message)

    def test_debug_error_message(self):
        """Test error message with -vv verbosity."""
        cause = CommandExecutionError(['ip', 'netns', 'list'], 1, 'permission denied')
        error = HostProbeError("list namespaces", cause=cause)

        message = error.format_error(verbose_level=2)

        self.assertIn("Caused by: CommandExecutionError", message)
        self.assertIn("permission denied", message)

    def test_trace_error_message(self):
        """Test error message with -vvv verbosity."""
        try:
            raise ValueError("Test error")
        except ValueError as e:
            error = ConfigurationError("Config failed", cause=e)

        message = error.format_error(verbose_level=3)

        self.assertIn("Stack trace:", message)


class TestExceptionTypes(unittest.TestCase):
    """Test specific exception types and their properties."""

    def test_precondition_messages(self):
        self.assertEqual(str(UnsupportedPlatformError('show', 'darwin')),
                         "lab show is supported only on linux: got darwin")
        self.assertEqual(str(PrivilegeError('destroy')), "lab destroy requires root privileges")
        self.assertEqual(str(MissingCommandError('tc')), 'required command "tc" not found')
        self.assertIn("sudo", PrivilegeError('create').suggestion)

    def test_precondition_exit_codes(self):
        self.assertEqual(UnsupportedPlatformError('apply', 'win32').error_code, ErrorCode.INVALID_INPUT)
        self.assertEqual(PrivilegeError('apply').error_code, ErrorCode.PERMISSION_ERROR)
        self.assertEqual(ValidationError("jitter requires delay").error_code, ErrorCode.INVALID_INPUT)

    def test_state_errors_are_distinct(self):
        not_found = StateNotFoundError('/run/rtc-emulator/lab.json')
        corrupt = StateCorruptError('/run/rtc-emulator/lab.json', 'Expecting value')
        unreadable = StateAccessError('failed to read state file', '/run/rtc-emulator/lab.json')

        self.assertEqual(str(not_found), "lab state not found")
        self.assertIn("rtcemu create", not_found.suggestion)
        self.assertEqual(not_found.error_code, ErrorCode.NOT_FOUND)
        self.assertEqual(corrupt.error_code, ErrorCode.STATE_ERROR)
        self.assertEqual(unreadable.error_code, ErrorCode.STATE_ERROR)
        self.assertNotIsInstance(corrupt, StateNotFoundError)

    def test_probe_error_is_not_lab_exists(self):
        error = HostProbeError("check bridge existence")
        self.assertEqual(str(error), "failed to check bridge existence")
        self.assertNotIsInstance(error, LabExistsError)

    def test_connectivity_error(self):
        error = ConnectivityCheckError('node2', '10.200.0.1')
        self.assertEqual(str(error), "connectivity check failed for node2 -> 10.200.0.1")

    def test_node_errors(self):
        error = NodeNotManagedError('node7', ['node1', 'node2'])
        self.assertEqual(str(error), 'node "node7" is not managed by current lab')
        self.assertIn("node1, node2", error.suggestion)
        self.assertEqual(str(NamespaceNotFoundError('node1')), 'node "node1" namespace not found')

    def test_cancelled(self):
        error = OperationCancelledError(['ip', 'netns', 'add', 'node3'])
        self.assertEqual(error.error_code, ErrorCode.CANCELLED)
        self.assertIn("rtcemu destroy", error.suggestion)

    def test_all_errors_share_base(self):
        for error in (ValidationError("x"), LabExistsError("x"), StateNotFoundError("p"),
                      CommandExecutionError(['ip'], 1), ConfigurationError("x")):
            self.assertIsInstance(error, LabError)


class TestErrorHandler(unittest.TestCase):
    """Test the ErrorHandler utility class."""

    def setUp(self):
        self.old_stderr = sys.stderr
        sys.stderr = StringIO()

    def tearDown(self):
        sys.stderr = self.old_stderr

    def test_handle_lab_error(self):
        """Test handling of LabError."""
        exit_code = ErrorHandler.handle_error(StateNotFoundError('/run/rtc-emulator/lab.json'))
        output = sys.stderr.getvalue()

        self.assertEqual(exit_code, ErrorCode.NOT_FOUND)
        self.assertIn("Error: lab state not found", output)
        self.assertNotIn("Stack trace:", output)

    def test_handle_unexpected_error(self):
        """Test handling of unexpected errors."""
        exit_code = ErrorHandler.handle_error(RuntimeError("Unexpected failure"), verbose_level=0)
        output = sys.stderr.getvalue()

        self.assertEqual(exit_code, ErrorCode.INTERNAL_ERROR)
        self.assertIn("An unexpected error occurred", output)
        self.assertNotIn("RuntimeError", output)

    def test_handle_unexpected_error_verbose(self):
        """Test handling of unexpected errors with verbosity."""
        ErrorHandler.handle_error(RuntimeError("Unexpected failure"), verbose_level=1)
        output = sys.stderr.getvalue()

        self.assertIn("Error type: RuntimeError", output)
        self.assertIn("Error message: Unexpected failure", output)


if __name__ == '__main__':
    unittest.main()
