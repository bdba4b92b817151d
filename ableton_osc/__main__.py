#!/usr/bin/env python3

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import re
import sys
import argparse
import json
import time
import asyncio
import logging

from ableton_osc.internal_types import *

from ableton_osc import (
    __version__ as pkg_version,
    AbletonLive,
    OscMessage,
    DEFAULT_HOST,
    DEFAULT_SEND_PORT,
    DEFAULT_RECEIVE_PORT,
    DEFAULT_QUERY_TIMEOUT,
  )

class CmdExitError(RuntimeError):
    exit_code: int

    def __init__(self, exit_code: int, msg: Optional[str]=None):
        if msg is None:
            msg = f"Command exited with return code {exit_code}"
        super().__init__(msg)
        self.exit_code = exit_code

class ArgparseExitError(CmdExitError):
    pass

class NoExitArgumentParser(argparse.ArgumentParser):
    def exit(self, status=0, message=None):
        if message:
            self._print_message(message, sys.stderr)
        raise ArgparseExitError(status, message)

_int_re = re.compile(r'^[-+]?[0-9]+$')
_float_re = re.compile(r'^[-+]?([0-9]+\.[0-9]*|\.[0-9]+)([eE][-+]?[0-9]+)?$|^[-+]?[0-9]+[eE][-+]?[0-9]+$')

def parse_osc_arg(value: str) -> OscArg:
    """Converts a command-line argument to an OSC argument: "true"/"false" become bool,
       integer literals become int, decimal literals become float, anything else is a str."""
    lower = value.lower()
    if lower == 'true':
        return True
    if lower == 'false':
        return False
    if _int_re.match(value):
        return int(value)
    if _float_re.match(value):
        return float(value)
    return value

def message_summary(message: OscMessage) -> JsonableDict:
    summary = message.to_jsonable()
    summary["type_tags"] = message.type_tags
    return summary

class CommandHandler:
    _argv: Optional[Sequence[str]]
    _parser: argparse.ArgumentParser
    _args: argparse.Namespace
    _provide_traceback: bool = True

    def __init__(self, argv: Optional[Sequence[str]]=None):
        self._argv = argv

    def _create_live(self) -> AbletonLive:
        return AbletonLive(
            host=self._args.host,
            send_port=self._args.send_port,
            receive_port=self._args.receive_port,
            timeout=self._args.timeout,
            bind_address=self._args.bind_address,
          )

    def _osc_args(self) -> List[OscArg]:
        return [parse_osc_arg(x) for x in self._args.osc_args]

    async def cmd_bare(self) -> int:
        print("A command is required", file=sys.stderr)
        return 1

    async def cmd_ping(self) -> int:
        async with self._create_live() as live:
            ok = await live.ping()
        print(json.dumps(ok))
        return 0 if ok else 1

    async def cmd_send(self) -> int:
        async with self._create_live() as live:
            live.send(self._args.address, *self._osc_args())
        return 0

    async def cmd_query(self) -> int:
        async with self._create_live() as live:
            response = await live.query(self._args.address, *self._osc_args())
        print(json.dumps(message_summary(response), indent=2, sort_keys=True))
        return 0

    async def cmd_listen(self) -> int:
        max_count: int = self._args.count
        duration: float = self._args.duration
        properties: List[str] = self._args.properties
        end_time = None if duration <= 0.0 else time.monotonic() + duration
        n = 0
        async with self._create_live() as live:
            for prop in properties:
                # printing is done from the subscriber below
                live.song.add_listener(prop, lambda value: None)
            async with live.subscribe() as subscriber:
                while max_count <= 0 or n < max_count:
                    if end_time is None:
                        result = await subscriber.receive()
                    else:
                        remaining_time = end_time - time.monotonic()
                        if remaining_time <= 0.0:
                            break
                        try:
                            result = await asyncio.wait_for(subscriber.receive(), remaining_time)
                        except asyncio.TimeoutError:
                            break
                    if result is None:
                        break
                    src_addr, message = result
                    summary = message_summary(message)
                    summary["src_addr"] = f"{src_addr[0]}:{src_addr[1]}"
                    print(json.dumps(summary, sort_keys=True))
                    sys.stdout.flush()
                    n += 1
        return 0

    async def cmd_version(self) -> int:
        print(pkg_version)
        return 0

    async def arun(self) -> int:
        """Run the ableton-osc command-line tool with provided arguments

        Args:
            argv (Optional[Sequence[str]], optional):
                A list of commandline arguments (NOT including the program as argv[0]!),
                or None to use sys.argv[1:]. Defaults to None.

        Returns:
            int: The exit code that would be returned if this were run as a standalone command.
        """
        parser = NoExitArgumentParser(prog="ableton-osc", description="Control Ableton Live through AbletonOSC.")


        # ======================= Main command

        self._parser = parser
        parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                            help='Display detailed exception information')
        parser.add_argument('--log-level', dest='log_level', default='warning',
                            choices=['debug', 'info', 'warning', 'error', 'critical'],
                            help='''The logging level to use. Default: warning''')
        parser.add_argument('--host', default=DEFAULT_HOST,
                            help=f'''The host running Ableton Live with AbletonOSC. Default: {DEFAULT_HOST}''')
        parser.add_argument('--send-port', dest='send_port', type=int, default=DEFAULT_SEND_PORT,
                            help=f'''The UDP port AbletonOSC listens on. Default: {DEFAULT_SEND_PORT}''')
        parser.add_argument('--receive-port', dest='receive_port', type=int, default=DEFAULT_RECEIVE_PORT,
                            help=f'''The local UDP port to receive replies on. Default: {DEFAULT_RECEIVE_PORT}''')
        parser.add_argument('-b', '--bind', dest='bind_address', default=None,
                            help='''The local IP address to bind to. Default: all interfaces''')
        parser.add_argument('--timeout', type=float, default=DEFAULT_QUERY_TIMEOUT,
                            help=f'''The time to wait for a reply to a query, in seconds. Default: {DEFAULT_QUERY_TIMEOUT}''')
        parser.set_defaults(func=self.cmd_bare)

        subparsers = parser.add_subparsers(
                            title='Commands',
                            description='Valid commands',
                            help='Additional help available with "<command-name> -h"')


        # ======================= ping

        parser_ping = subparsers.add_parser('ping', description="Test whether AbletonOSC is responding")
        parser_ping.set_defaults(func=self.cmd_ping)

        # ======================= send

        parser_send = subparsers.add_parser('send', description="Send a one-way OSC message")
        parser_send.add_argument('address', help='The OSC address; e.g., /live/song/start_playing')
        parser_send.add_argument('osc_args', nargs='*', default=[],
                            help='''Message arguments. true/false, integers and decimals are sent as bool, int and float.''')
        parser_send.set_defaults(func=self.cmd_send)

        # ======================= query

        parser_query = subparsers.add_parser('query', description="Send an OSC message and print the reply")
        parser_query.add_argument('address', help='The OSC address; e.g., /live/song/get/tempo')
        parser_query.add_argument('osc_args', nargs='*', default=[],
                            help='''Message arguments. true/false, integers and decimals are sent as bool, int and float.''')
        parser_query.set_defaults(func=self.cmd_query)

        # ======================= listen

        parser_listen = subparsers.add_parser('listen', description="Print inbound OSC messages")
        parser_listen.add_argument('-p', '--property', dest='properties', action='append', default=[],
                            help='''A song property to start listening to, e.g. tempo or beat. May be repeated.''')
        parser_listen.add_argument('--count', type=int, default=0,
                            help='The number of messages to print before exiting. Default: 0 (no limit)')
        parser_listen.add_argument('--duration', type=float, default=0.0,
                            help='The time to listen for, in seconds. Default: 0 (no limit)')
        parser_listen.set_defaults(func=self.cmd_listen)

        # ======================= version

        parser_version = subparsers.add_parser('version',
                                description='''Display version information.''')
        parser_version.set_defaults(func=self.cmd_version)

        # =========================================================

        try:
            args = parser.parse_args(self._argv)
        except ArgparseExitError as ex:
            return ex.exit_code
        traceback: bool = args.traceback
        self._provide_traceback = traceback

        try:
            logging.basicConfig(
                level=logging.getLevelName(args.log_level.upper()),
            )
            self._args = args
            func: Callable[[], Awaitable[int]] = args.func
            logging.debug(f"Running command {func.__name__}, tb = {traceback}")
            rc = await func()
            logging.debug(f"Command {func.__name__} returned {rc}")
        except Exception as ex:
            if isinstance(ex, CmdExitError):
                rc = ex.exit_code
            else:
                rc = 1
            if rc != 0:
                if traceback:
                    raise
            print(f"ableton-osc: error: {ex}", file=sys.stderr)
        except BaseException as ex:
            print(f"ableton-osc: Unhandled exception: {ex}", file=sys.stderr)
            raise

        return rc

    def run(self) -> int:
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            rc = loop.run_until_complete(self.arun())
        finally:
            loop.close()
        return rc

def run(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = CommandHandler(argv).run()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

async def arun(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = await CommandHandler(argv).arun()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
    sys.exit(run())
