#!/usr/bin/env -S python3 -B -u
"""
netem argument building and tc qdisc output parsing.

Only the four impairments the lab controls are extracted; everything else
tc prints (limit, duplicate, ...) is preserved in the raw line.
"""

from typing import List, Optional, Tuple

from ..core.models import ImpairmentSpec
from .naming import NODE_INTERFACE


NETEM_KEYWORDS = frozenset({
    'delay', 'loss', 'rate', 'limit', 'distribution', 'duplicate',
    'corrupt', 'reorder', 'gap', 'ecn', 'slot',
})


def build_netem_args(spec: ImpairmentSpec) -> List[str]:
    """Full ip argv replacing the root qdisc of the node's interface."""
    args = ['netns', 'exec', spec.node,
            'tc', 'qdisc', 'replace', 'dev', NODE_INTERFACE, 'root', 'netem']
    if spec.delay:
        args += ['delay', spec.delay]
        if spec.jitter:
            args.append(spec.jitter)
    if spec.loss:
        args += ['loss', spec.loss]
    if spec.bw:
        args += ['rate', spec.bw]
    return args


def normalize_spaces(text: str) -> str:
    return " ".join(text.split())


def extract_netem_line(output: str) -> Optional[str]:
    """First netem qdisc line of `tc qdisc show` output, whitespace normalised."""
    for line in output.splitlines():
        normalized = normalize_spaces(line)
        if normalized == 'qdisc netem' or normalized.startswith('qdisc netem '):
            return normalized
    return None


def parse_netem_values(line: str) -> Tuple[str, str, str, str]:
    """
    Extract (delay, jitter, loss, bw) from a netem qdisc line.

    >>> parse_netem_values("qdisc netem 8001: root refcnt 2 limit 1000 delay 100ms 20ms loss 1% rate 1Mbit")
    ('100ms', '20ms', '1%', '1Mbit')
    """
    delay = jitter = loss = bw = ""
    tokens = line.split()
    for i, token in enumerate(tokens):
        following = tokens[i + 1] if i + 1 < len(tokens) else ""
        if token == 'delay':
            delay = following
            if i + 2 < len(tokens) and tokens[i + 2] not in NETEM_KEYWORDS:
                jitter = tokens[i + 2]
        elif token == 'loss':
            loss = following
        elif token == 'rate':
            bw = following
    return delay, jitter, loss, bw
