
from .ftdi import *
from .usb import *

__version__ = "0.1.0"

__all__ = [
  # ftdi
  'FTDI_GET_LATENCY', 'FTDI_SET_LATENCY', 'CONTROL_TIMEOUT_MS',
  'LATENCY_MIN', 'LATENCY_MAX', 'REQ_IN', 'REQ_OUT',
  'get_latency', 'set_latency',
  # usb
  'USBIdentity', 'DeviceSelector', 'DeviceSummary',
  'USBSubsystemError', 'DeviceNotFoundError', 'TransferError',
  'get_backend', 'enumerate_devices', 'open_device',
]
