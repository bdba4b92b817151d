#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

class OscError(Exception):
  """Base class for all error exceptions defined by this package."""
  pass

class OscEncodeError(OscError, ValueError):
  """An address or argument cannot be represented in the OSC wire format."""
  pass

class OscDecodeError(OscError, ValueError):
  """A received datagram is not a well-formed OSC message."""
  pass

class OscNotConnectedError(OscError):
  """An operation needing a bound socket was attempted before connect() or after close()."""
  pass

class OscConnectError(OscError):
  """The client could not be connected."""
  pass

class OscBindError(OscConnectError):
  """The local receive port could not be bound."""
  pass

class OscSendError(OscError):
  """A datagram could not be handed to the network stack."""
  pass

class OscQueryTimeoutError(OscError, TimeoutError):
  """No reply with a matching address arrived before the query deadline."""
  pass

class OscConnectionClosedError(OscError):
  """The connection was closed while a query was waiting for its reply."""
  pass
