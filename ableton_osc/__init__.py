# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package ableton_osc controls a running Ableton Live instance through the AbletonOSC
remote script.

AbletonOSC listens for OSC 1.0 messages on UDP port 11000 and sends replies and
listener notifications to UDP port 11001 on the requesting host. Every reply bears the
address of the request it answers, which is how queries are matched to replies.

The package provides the OSC message codec, an asyncio client that sends commands and
correlates query replies (AbletonOscClient), and a thin application-level wrapper
(AbletonLive).
"""

from .version import __version__

from .internal_types import Jsonable, JsonableDict, OscArg, HostAndPort

from .exceptions import (
    OscError,
    OscEncodeError,
    OscDecodeError,
    OscNotConnectedError,
    OscConnectError,
    OscBindError,
    OscSendError,
    OscQueryTimeoutError,
    OscConnectionClosedError,
  )

from .osc_message import (
    OscMessage,
    encode_osc_message,
    decode_osc_message,
    osc_type_tag,
  )
from .osc_socket import OscSocket, OscSocketState, OscMessageSubscriber
from .client import AbletonOscClient, PendingQuery
from .live import AbletonLive, SongListeners
from .constants import (
    DEFAULT_HOST,
    DEFAULT_SEND_PORT,
    DEFAULT_RECEIVE_PORT,
    DEFAULT_QUERY_TIMEOUT,
  )

__all__ = [
    '__version__',
    'Jsonable', 'JsonableDict', 'OscArg', 'HostAndPort',
    'OscError', 'OscEncodeError', 'OscDecodeError', 'OscNotConnectedError', 'OscConnectError',
    'OscBindError', 'OscSendError', 'OscQueryTimeoutError', 'OscConnectionClosedError',
    'OscMessage', 'encode_osc_message', 'decode_osc_message', 'osc_type_tag',
    'OscSocket', 'OscSocketState', 'OscMessageSubscriber',
    'AbletonOscClient', 'PendingQuery',
    'AbletonLive', 'SongListeners',
    'DEFAULT_HOST', 'DEFAULT_SEND_PORT', 'DEFAULT_RECEIVE_PORT', 'DEFAULT_QUERY_TIMEOUT',
]
