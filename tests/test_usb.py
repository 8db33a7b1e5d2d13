import re
import pytest
import usb.backend.libusb1

import ftdi_util

LIST_REG_EXP = re.compile(r"Bus \d{3} Device \d{3} ID \d{5}:\d{5} \(hex: [0-9a-f]{4}:[0-9a-f]{4}\)")

def test_render_summary():
  summary: ftdi_util.DeviceSummary = {"bus": 1, "address": 7, "vendor": 1027, "product": 24597}
  line = ftdi_util.DeviceSummary.render(summary)
  assert line == "Bus 001 Device 007 ID 01027:24597 (hex: 0403:6015)"
  assert LIST_REG_EXP.fullmatch(line)

def test_enumerate_devices(fake_bus):
  fake_bus.attach(0x0403, 0x6015, bus=1, address=4)
  fake_bus.attach(0x1d6b, 0x0002, bus=2, address=1)
  assert ftdi_util.enumerate_devices() == [
    {"bus": 1, "address": 4, "vendor": 0x0403, "product": 0x6015},
    {"bus": 2, "address": 1, "vendor": 0x1d6b, "product": 0x0002},
  ]
  assert fake_bus.transfers == []
  assert fake_bus.disposed == []

def test_enumerate_devices_without_backend(fake_bus):
  fake_bus.no_backend = True
  with pytest.raises(ftdi_util.USBSubsystemError, match="initialize the USB subsystem"):
    ftdi_util.enumerate_devices()

def test_missing_libusb1_library(fake_bus, monkeypatch):
  monkeypatch.setattr(usb.backend.libusb1, 'get_backend', lambda find_library=None: None)
  with pytest.raises(ftdi_util.USBSubsystemError, match="/nowhere/libusb-1.0.so"):
    ftdi_util.enumerate_devices('/nowhere/libusb-1.0.so')
  assert fake_bus.finds == []

def test_open_device_first_match_and_release(fake_bus):
  first = fake_bus.attach(0x0403, 0x6015, address=2)
  fake_bus.attach(0x0403, 0x6015, address=3)
  with ftdi_util.open_device({"vendor": 0x0403, "product": 0x6015}) as usb_dev:
    assert usb_dev is first
    assert fake_bus.disposed == []
  assert fake_bus.disposed == [first]
  assert fake_bus.finds == [{"idVendor": 0x0403, "idProduct": 0x6015}]

def test_open_device_released_on_error(fake_bus):
  dev = fake_bus.attach(0x0403, 0x6015)
  with pytest.raises(ftdi_util.TransferError):
    with ftdi_util.open_device({"vendor": 0x0403, "product": 0x6015}):
      raise ftdi_util.TransferError("boom")
  assert fake_bus.disposed == [dev]

def test_open_device_not_found(fake_bus):
  fake_bus.attach(0x1d6b, 0x0002)
  with pytest.raises(ftdi_util.DeviceNotFoundError, match="Couldn't find FTDI adapter 0403:6001"):
    with ftdi_util.open_device({"vendor": 0x0403, "product": 0x6001}):
      pass
  assert fake_bus.disposed == []

def test_open_device_usb_error(fake_bus):
  import usb.core
  error = usb.core.USBError('Access denied (insufficient permissions)', errno=13)
  fake_bus.find_error = error
  with pytest.raises(ftdi_util.USBSubsystemError, match="insufficient permissions") as exc_info:
    with ftdi_util.open_device({"vendor": 0x0403, "product": 0x6015}):
      pass
  assert exc_info.value.__cause__ is error
  assert fake_bus.disposed == []
