#!/usr/bin/env -S python3 -B -u
"""
rtcemu - RTC Network Emulator Package

Local multi-node lab environments with per-node network impairments
for testing real-time communication software.
"""

__version__ = '0.3.0'
__author__ = 'rtc-emulator developers'
__license__ = 'MIT'

# Package metadata
__all__ = [
    'core',
    'executors',
    'lab',
    'shell',
]
