#!/usr/bin/env -S python3 -B -u

"""
RTC emulator shell.

Runs one lab command given on the command line:

    rtcemu create --nodes 3
    rtcemu apply --node node1 --delay 100ms --jitter 20ms --loss 1%
    rtcemu show --json
    rtcemu destroy

or, without a command, an interactive `rtcemu>` prompt (stdin is a
terminal) or a batch of commands read from stdin, one per line.
"""

import argparse
import json
import os
import shlex
import signal
import sys
from typing import Callable, List, Optional

import cmd2
from cmd2 import Cmd2ArgumentParser, with_argparser
import colorama
from colorama import Fore, Style

from .. import __version__
from ..core.config_loader import load_lab_config
from ..core.exceptions import ErrorCode, ErrorHandler
from ..core.models import ImpairmentSpec
from ..core.structured_logging import setup_logging
from ..executors.command_executor import CancellationToken
from ..lab import ImpairmentApplier, LabEnvironment, LabInspector, LabProvisioner, LabReconciler


EnvironmentFactory = Callable[[int, CancellationToken], LabEnvironment]
LAB_CATEGORY = "Lab Commands"


def default_environment(verbose_level: int, cancel_token: CancellationToken) -> LabEnvironment:
    """Production environment built from the YAML configuration."""
    return LabEnvironment.from_config(load_lab_config(), verbose_level, cancel_token)


def _flag(value: bool) -> str:
    return 'true' if value else 'false'


class RtcEmulatorShell(cmd2.Cmd):
    """Interactive and one-shot front end for lab operations."""

    def __init__(self, verbose_level: int = 0,
                 env_factory: Optional[EnvironmentFactory] = None,
                 interactive: Optional[bool] = None, **kwargs):
        if interactive is None:
            interactive = sys.stdin.isatty() and sys.stdout.isatty()
        self.is_interactive = interactive
        kwargs.setdefault('allow_cli_args', False)
        if interactive:
            kwargs.setdefault('persistent_history_file', os.path.expanduser('~/.rtcemu_history.json'))
        super().__init__(**kwargs)

        self.verbose_level = verbose_level
        self.env_factory = env_factory or default_environment
        self.cancel_token: Optional[CancellationToken] = None
        self.last_exit_code = ErrorCode.SUCCESS

        if self.is_interactive:
            self.intro = (f"{Fore.CYAN}RTC emulator shell {__version__}{Style.RESET_ALL}\n"
                          "Type 'help' for available commands.")
            self.prompt = f"{Fore.GREEN}rtcemu{Style.RESET_ALL}> "
            self.quit_on_error = False
        else:
            self.intro = ""
            self.prompt = ""

    # Plumbing

    def _environment(self) -> LabEnvironment:
        self.cancel_token = CancellationToken()
        return self.env_factory(self.verbose_level, self.cancel_token)

    def cancel_running(self) -> bool:
        """Cancel the lab operation in progress, if any."""
        if self.cancel_token is None:
            return False
        self.cancel_token.cancel()
        return True

    def sigint_handler(self, signum, frame):
        if self.cancel_running():
            self.perror(f"{Fore.YELLOW}Cancelling, waiting for the current command to finish...{Style.RESET_ALL}")
            return
        super().sigint_handler(signum, frame)

    def _run_operation(self, operation: Callable[[LabEnvironment], None]) -> None:
        try:
            operation(self._environment())
        except Exception as e:
            self.last_exit_code = ErrorHandler.handle_error(e, self.verbose_level)
        else:
            self.last_exit_code = ErrorCode.SUCCESS
        finally:
            self.cancel_token = None

    def _line(self, text: str, color: str = "") -> None:
        if color and self.is_interactive:
            text = f"{color}{text}{Style.RESET_ALL}"
        self.poutput(text)

    def execute(self, line: str) -> int:
        """Run one command line and return its exit code."""
        self.last_exit_code = ErrorCode.INVALID_INPUT
        self.onecmd_plus_hooks(line)
        return int(self.last_exit_code)

    # Commands

    create_parser = Cmd2ArgumentParser(description='Create the lab bridge and node namespaces')
    create_parser.add_argument('--nodes', type=int, default=1, help='Number of nodes to create (default: 1)')

    @cmd2.with_category(LAB_CATEGORY)
    @with_argparser(create_parser)
    def do_create(self, args):
        """Create a lab environment."""
        def operation(env: LabEnvironment) -> None:
            result = LabProvisioner(env).create(args.nodes)
            self._line(f"created bridge={result.bridge} nodes={len(result.nodes)}", Fore.GREEN)
            for node in result.nodes:
                self._line(f"- {node.name} ip={node.ip}")
            if result.internet_reachable:
                self._line("internet-check=ok", Fore.GREEN)
            else:
                self._line("internet-check=skipped-or-unreachable (host bridge connectivity is confirmed)",
                           Fore.YELLOW)

        self._run_operation(operation)

    apply_parser = Cmd2ArgumentParser(description='Replace the network impairments of one node')
    apply_parser.add_argument('--node', required=True, help='Target node (e.g. node1)')
    apply_parser.add_argument('--delay', default='', help='Delay (e.g. 100ms)')
    apply_parser.add_argument('--loss', default='', help='Packet loss (e.g. 1%%)')
    apply_parser.add_argument('--jitter', default='', help='Delay variation, requires --delay (e.g. 20ms)')
    apply_parser.add_argument('--bw', default='', help='Bandwidth limit (e.g. 1mbit)')

    @cmd2.with_category(LAB_CATEGORY)
    @with_argparser(apply_parser)
    def do_apply(self, args):
        """Apply impairments to a node."""
        def operation(env: LabEnvironment) -> None:
            spec = ImpairmentSpec(node=args.node, delay=args.delay, jitter=args.jitter,
                                  loss=args.loss, bw=args.bw)
            result = ImpairmentApplier(env).apply(spec)
            fields = [f"node={result.node}"]
            for name in ('delay', 'jitter', 'loss', 'bw'):
                value = getattr(result, name)
                if value:
                    fields.append(f"{name}={value}")
            self._line("applied " + " ".join(fields), Fore.GREEN)

        self._run_operation(operation)

    show_parser = Cmd2ArgumentParser(description='Show the current lab and node impairments')
    show_parser.add_argument('--json', '-j', action='store_true', help='Output as JSON')

    @cmd2.with_category(LAB_CATEGORY)
    @with_argparser(show_parser)
    def do_show(self, args):
        """Show current lab state."""
        def operation(env: LabEnvironment) -> None:
            result = LabInspector(env).show()
            if args.json:
                self.poutput(json.dumps(result.to_dict(), indent=2))
                return
            self._line(f"bridge={result.bridge} subnet={result.subnet}", Fore.CYAN)
            for node in result.nodes:
                values = " ".join(
                    f"{name}={getattr(node, name) or '-'}" for name in ('delay', 'jitter', 'loss', 'bw')
                )
                self._line(f"- {node.name} interface={node.interface} {values} qdisc={node.raw_qdisc}")

        self._run_operation(operation)

    destroy_parser = Cmd2ArgumentParser(description='Remove the lab and restore host settings')

    @cmd2.with_category(LAB_CATEGORY)
    @with_argparser(destroy_parser)
    def do_destroy(self, args):
        """Destroy lab environment."""
        def operation(env: LabEnvironment) -> None:
            result = LabReconciler(env).destroy()
            self._line(f"destroyed bridge={_flag(result.bridge_deleted)} nodes={len(result.nodes_deleted)}",
                       Fore.GREEN)
            for node in result.nodes_deleted:
                self._line(f"- {node}")
            self._line(f"state-missing-fallback={_flag(result.state_missing_fallback)}",
                       Fore.YELLOW if result.state_missing_fallback else "")
            self._line(f"ip-forward-restored={_flag(result.ip_forward_restored)}")

        self._run_operation(operation)

    def do_exit(self, _):
        """Exit the shell."""
        return True

    def do_quit(self, _):
        """Quit the shell."""
        return self.do_exit(_)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='rtcemu',
        description='Local multi-node network lab with per-node impairments',
    )
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Increase verbosity (-v info, -vv debug, -vvv trace)')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('command', nargs=argparse.REMAINDER,
                        help='create | apply | show | destroy, with their options')
    return parser


def run_batch(shell: RtcEmulatorShell, lines: List[str]) -> int:
    """Run commands from a script; stop at the first failure."""
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith('#'):
            continue
        exit_code = shell.execute(line)
        if exit_code != ErrorCode.SUCCESS:
            return exit_code
    return ErrorCode.SUCCESS


def main(argv: Optional[List[str]] = None) -> None:
    """Console entry point."""
    args = build_arg_parser().parse_args(argv)
    verbose_level = min(args.verbose, 3)
    setup_logging(verbose_level)
    colorama.init()

    shell = RtcEmulatorShell(verbose_level=verbose_level,
                             interactive=(not args.command and sys.stdin.isatty() and sys.stdout.isatty()))
    signal.signal(signal.SIGTERM, lambda signum, frame: shell.cancel_running())

    if args.command:
        # SIGINT is left to cmd2 at the prompt; a one-shot run only cancels
        signal.signal(signal.SIGINT, lambda signum, frame: shell.cancel_running())
        exit_code = shell.execute(shlex.join(args.command))
    elif shell.is_interactive:
        shell.cmdloop()
        exit_code = shell.last_exit_code
    else:
        exit_code = run_batch(shell, sys.stdin.readlines())

    sys.exit(int(exit_code))


if __name__ == '__main__':
    main()
