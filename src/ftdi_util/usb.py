from __future__ import annotations
from loguru import logger
from typing import TypedDict
from collections.abc import Generator
import contextlib

import usb.core, usb.util, usb.backend.libusb1

class USBSubsystemError(RuntimeError): pass
class DeviceNotFoundError(RuntimeError): pass
class TransferError(RuntimeError): pass

class USBIdentity(TypedDict):
  product: int
  vendor: int

class DeviceSelector(USBIdentity):
  port: int

  @staticmethod
  def render(selector: DeviceSelector) -> str:
    return f"{selector['vendor']:04x}:{selector['product']:04x} (port {selector['port']})"

class DeviceSummary(TypedDict):
  bus: int
  address: int
  vendor: int
  product: int

  @staticmethod
  def from_device(device: usb.core.Device) -> DeviceSummary:
    return {
      "bus": device.bus or 0,
      "address": device.address or 0,
      "vendor": device.idVendor,
      "product": device.idProduct,
    }

  @staticmethod
  def render(summary: DeviceSummary) -> str:
    return (
      f"Bus {summary['bus']:03} Device {summary['address']:03} "
      f"ID {summary['vendor']:05}:{summary['product']:05} "
      f"(hex: {summary['vendor']:04x}:{summary['product']:04x})"
    )

### USB Backend

def get_backend(libusb1_path: str | None = None) -> usb.backend.IBackend | None:
  """Load libusb1 from an explicit path; `None` lets pyusb pick a backend itself."""
  if libusb1_path is None:
    logger.debug("Searching for an available USB Backend")
    return None
  logger.debug(f"Using custom libusb1 path: {libusb1_path}")
  # See https://github.com/pyusb/pyusb/blob/master/docs/tutorial.rst#specifying-libraries-by-hand
  backend = usb.backend.libusb1.get_backend(find_library=lambda x: libusb1_path)
  if backend is None: raise USBSubsystemError(f"Couldn't load libusb1 from `{libusb1_path}`")
  return backend

def enumerate_devices(libusb1_path: str | None = None) -> list[DeviceSummary]:
  """Summaries of every visible USB device; nothing is returned if enumeration fails part way."""
  backend = get_backend(libusb1_path)
  try:
    summaries = [DeviceSummary.from_device(dev) for dev in usb.core.find(find_all=True, backend=backend)]
  except usb.core.NoBackendError as e:
    raise USBSubsystemError(f"Failed to initialize the USB subsystem: {e}") from e
  except usb.core.USBError as e:
    raise USBSubsystemError(f"Failed to enumerate USB devices: {e}") from e
  logger.debug(f"Enumerated {len(summaries)} USB Devices")
  return summaries

@contextlib.contextmanager
def open_device(
  identity: USBIdentity,
  libusb1_path: str | None = None,
) -> Generator[usb.core.Device, None, None]:
  backend = get_backend(libusb1_path)
  try:
    # find() without find_all returns the first enumerated match
    usb_dev = usb.core.find(idVendor=identity['vendor'], idProduct=identity['product'], backend=backend)
  except usb.core.NoBackendError as e:
    raise USBSubsystemError(f"Failed to initialize the USB subsystem: {e}") from e
  except usb.core.USBError as e:
    raise USBSubsystemError(f"Failed to enumerate USB devices: {e}") from e
  if usb_dev is None:
    raise DeviceNotFoundError(f"Couldn't find FTDI adapter {identity['vendor']:04x}:{identity['product']:04x}")

  logger.debug(f"Found USB Device {identity['vendor']:04x}:{identity['product']:04x}; if several match, the first one is used")
  try:
    yield usb_dev
  finally:
    logger.trace("Releasing USB Device")
    usb.util.dispose_resources(usb_dev)

__all__ = [
  'USBIdentity', 'DeviceSelector', 'DeviceSummary',
  'USBSubsystemError', 'DeviceNotFoundError', 'TransferError',
  'get_backend', 'enumerate_devices', 'open_device',
]
