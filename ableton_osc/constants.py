# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by this package"""

DEFAULT_HOST = "127.0.0.1"
"""The default host running Ableton Live with the AbletonOSC remote script."""

DEFAULT_SEND_PORT = 11000
"""The UDP port AbletonOSC listens on for requests."""

DEFAULT_RECEIVE_PORT = 11001
"""The local UDP port that AbletonOSC sends replies and notifications to."""

DEFAULT_QUERY_TIMEOUT = 5.0
"""The default amount of time (in seconds) to wait for a reply to a query."""

PING_ADDRESS = "/live/test"
"""The address queried by ping()."""

PING_OK = "ok"
"""The first reply argument AbletonOSC returns for a successful ping."""

INT32_MIN = -2**31
INT32_MAX = 2**31 - 1

MAX_QUEUE_SIZE = 1000
"""The maximum number of undelivered messages buffered per subscriber."""
