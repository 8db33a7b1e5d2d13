from __future__ import annotations
from loguru import logger

import usb.core, usb.util

### Package Imports
from .usb import TransferError
###

FTDI_GET_LATENCY: int = 10
FTDI_SET_LATENCY: int = 9
CONTROL_TIMEOUT_MS: int = 1000

LATENCY_MIN: int = 0
LATENCY_MAX: int = 255

REQ_IN: int = usb.util.build_request_type(usb.util.CTRL_IN, usb.util.CTRL_TYPE_VENDOR, usb.util.CTRL_RECIPIENT_DEVICE)
REQ_OUT: int = usb.util.build_request_type(usb.util.CTRL_OUT, usb.util.CTRL_TYPE_VENDOR, usb.util.CTRL_RECIPIENT_DEVICE)

### Latency Timer

def get_latency(device: usb.core.Device, port: int) -> int:
  """Read the latency timer (ms) of the adapter port through one vendor IN request."""
  logger.trace(f"Querying latency timer on port {port}")
  try:
    response = device.ctrl_transfer(REQ_IN, FTDI_GET_LATENCY, 0, port, 1, timeout=CONTROL_TIMEOUT_MS)
  except usb.core.USBError as e:
    raise TransferError(f"Failed to query adapter: ({type(e).__name__}) {e}") from e
  if len(response) != 1:
    raise TransferError(f"Failed to query adapter: expected 1 byte, got {len(response)}")
  return response[0]

def set_latency(device: usb.core.Device, port: int, latency: int) -> None:
  """Write the latency timer (ms) of the adapter port. Nothing is read back."""
  if not LATENCY_MIN <= latency <= LATENCY_MAX:
    raise ValueError(f"Latency must be between {LATENCY_MIN} and {LATENCY_MAX}, got {latency}")
  logger.trace(f"Setting latency timer on port {port} to {latency} ms")
  try:
    device.ctrl_transfer(REQ_OUT, FTDI_SET_LATENCY, latency, port, bytes(1), timeout=CONTROL_TIMEOUT_MS)
  except usb.core.USBError as e:
    raise TransferError(f"Failed to configure adapter: ({type(e).__name__}) {e}") from e

__all__ = [
  'FTDI_GET_LATENCY', 'FTDI_SET_LATENCY', 'CONTROL_TIMEOUT_MS',
  'LATENCY_MIN', 'LATENCY_MAX', 'REQ_IN', 'REQ_OUT',
  'get_latency', 'set_latency',
]
