import array
import pytest
import usb.core, usb.util

class FakeDevice:
  """Stands in for `usb.core.Device`; answers the FTDI latency requests."""

  def __init__(self, vendor: int, product: int, bus: int = 1, address: int = 1, latency: int = 16):
    self.idVendor = vendor
    self.idProduct = product
    self.bus = bus
    self.address = address
    self.latency = latency
    self.error: Exception | None = None
    self.transfers: list[tuple] = []

  def ctrl_transfer(self, bmRequestType, bRequest, wValue=0, wIndex=0, data_or_wLength=None, timeout=None):
    self.transfers.append((bmRequestType, bRequest, wValue, wIndex, data_or_wLength, timeout))
    if self.error is not None: raise self.error
    if bmRequestType & usb.util.CTRL_IN:
      return array.array('B', [self.latency])
    self.latency = wValue
    return len(data_or_wLength)

class FakeBus:
  def __init__(self):
    self.devices: list[FakeDevice] = []
    self.finds: list[dict] = []
    self.disposed: list[FakeDevice] = []
    self.no_backend = False
    self.find_error: Exception | None = None

  def attach(self, *args, **kwargs) -> FakeDevice:
    device = FakeDevice(*args, **kwargs)
    self.devices.append(device)
    return device

  def find(self, find_all=False, backend=None, custom_match=None, **args):
    self.finds.append(args)
    if self.no_backend: raise usb.core.NoBackendError('No backend available')
    if self.find_error is not None: raise self.find_error
    matches = [dev for dev in self.devices if all(getattr(dev, k) == v for k, v in args.items())]
    if find_all: return iter(matches)
    return matches[0] if matches else None

  def dispose(self, device):
    self.disposed.append(device)

  @property
  def transfers(self) -> list[tuple]:
    return [t for dev in self.devices for t in dev.transfers]

@pytest.fixture
def fake_bus(monkeypatch) -> FakeBus:
  bus = FakeBus()
  monkeypatch.setattr(usb.core, 'find', bus.find)
  monkeypatch.setattr(usb.util, 'dispose_resources', bus.dispose)
  return bus
