#!/usr/bin/env -S python3 -B -u
"""
Diagnostic classification for external tool failures.

ip and iptables report "nothing to do" the same way they report real
failures: a non-zero exit status and a free-form message. The functions
below decide, per tool, whether a failure only means that the target is
already absent. Anything not matched here is a real failure.
"""

from typing import Optional, Union


def _diagnostic(error: Union[BaseException, str, None]) -> str:
    if error is None:
        return ""
    if isinstance(error, str):
        return error.lower()
    return str(error).lower()


def is_link_not_found(error: Union[BaseException, str, None], device: Optional[str] = None) -> bool:
    """ip link: 'Device "x" does not exist.' / 'Cannot find device "x"'."""
    msg = _diagnostic(error)
    if not msg:
        return False
    if device and f'device "{device.lower()}" does not exist' in msg:
        return True
    return "does not exist" in msg or "cannot find device" in msg


def is_rule_not_found(error: Union[BaseException, str, None]) -> bool:
    """iptables -C/-D: 'Bad rule (does a matching rule exist in that chain?)'."""
    msg = _diagnostic(error)
    return "bad rule" in msg or "no chain/target/match" in msg


def is_namespace_not_found(error: Union[BaseException, str, None]) -> bool:
    """ip netns del: 'Cannot remove namespace file ...: No such file or directory'."""
    return "no such file or directory" in _diagnostic(error)
