"""
Command line shell for RTC emulator lab operations.
"""
