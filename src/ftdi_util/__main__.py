from __future__ import annotations
import os, sys, orjson
from typing import TypedDict, NotRequired, Literal
from collections.abc import Mapping, Sequence
from loguru import logger

### Local Imports
import ftdi_util
###

FTDI_VENDOR: int = 1027 # 0x0403
FTDI_CHIPIX_PID: int = 24597 # 0x6015
DEFAULT_PORT: int = 0

SUBCOMMANDS: tuple[str, ...] = ('list-devices', 'get-latency', 'set-latency')
OUTPUT_FORMATS: tuple[str, ...] = ('text', 'json')

USAGE = f"""Usage: ftdi-util [OPTIONS] <SUBCOMMAND>

Configures an FTDI USB-RS232 dongle

Options:
  -v, --vendor <VID>     USB vendor ID (default: {FTDI_VENDOR})
  -p, --product <PID>    USB product ID to use (default: {FTDI_CHIPIX_PID})
  -i, --port <PORT>      Endpoint index (default: {DEFAULT_PORT})
      --format <FORMAT>  Output format; one of {', '.join(OUTPUT_FORMATS)} (default: text)
      --log <LEVEL>      Log level (default: $LOG_LEVEL or INFO)
      --libusb1 <PATH>   Path of the libusb-1.0 library to load (default: $LIBUSB1_PATH)
  -h, --help             Print this help
  -V, --version          Print the version

Subcommands:
  list-devices           Lists all known USB devices
  get-latency            Displays the latency timer for the selected dongle
  set-latency            Sets the latency timer for the selected dongle in milliseconds
    -l, --latency <MS>   Latency in milliseconds (0-255)
"""

class CLIError(RuntimeError): pass

class Command(TypedDict):
  kind: Literal['list-devices', 'get-latency', 'set-latency']
  latency: NotRequired[int]

class CLI_KWARGS(TypedDict):
  log: str
  libusb1: str | None
  format: str
  vendor: NotRequired[str]
  product: NotRequired[str]
  port: NotRequired[str]
  latency: NotRequired[str]
  help: NotRequired[bool]
  version: NotRequired[bool]

_OPTIONS: dict[str, str] = {
  '-v': 'vendor', '--vendor': 'vendor', '--vid': 'vendor',
  '-p': 'product', '--product': 'product', '--pid': 'product',
  '-i': 'port', '--port': 'port',
  '-l': 'latency', '--latency': 'latency',
  '--log': 'log',
  '--libusb1': 'libusb1',
  '--format': 'format',
  '-h': 'help', '--help': 'help',
  '-V': 'version', '--version': 'version',
}
_SWITCHES = frozenset(('help', 'version'))

def parse_argv(argv: Sequence[str], env: Mapping[str, str]) -> tuple[tuple[str, ...], CLI_KWARGS]:
  args = []
  kwargs = {
    "log": env.get('LOG_LEVEL', 'INFO'),
    "libusb1": env.get('LIBUSB1_PATH', None),
    "format": 'text',
  }
  idx = 0
  while idx < len(argv):
    arg = argv[idx]
    if arg == '--':
      logger.trace(f"Found end of arguments at index {idx}")
      args.extend(argv[idx+1:])
      break
    elif arg.startswith('-') and arg != '-':
      logger.trace(f"Found option: {arg}")
      if arg.startswith('--') and '=' in arg: name, value = arg.split('=', 1)
      else: name, value = arg, None
      if name not in _OPTIONS: raise CLIError(f"Unknown option: {name}")
      key = _OPTIONS[name]
      if key in _SWITCHES:
        if value is not None: raise CLIError(f"Option {name} does not take a value")
        kwargs[key] = True
      else:
        if value is None:
          idx += 1
          if idx >= len(argv): raise CLIError(f"Option {name} requires a value")
          value = argv[idx]
        kwargs[key] = value
    else:
      logger.trace(f"Found positional argument: {arg}")
      args.append(arg)
    idx += 1
  return tuple(args), kwargs

def parse_uint(field: str, value: str, bits: int) -> int:
  limit = (1 << bits) - 1
  # plain decimal only; a leading '+' is rejected
  digits = value.lstrip('0')
  if not (value.isascii() and value.isdigit()) or len(digits) > len(str(limit)) or int(digits or '0') > limit:
    raise CLIError(f"{field} must be an integer between 0 and {limit}, got {value!r}")
  return int(digits or '0')

def build_config(
  args: tuple[str, ...],
  kwargs: CLI_KWARGS,
  default_vendor: int = FTDI_VENDOR,
  default_product: int = FTDI_CHIPIX_PID,
  default_port: int = DEFAULT_PORT,
) -> tuple[ftdi_util.DeviceSelector, Command]:
  selector: ftdi_util.DeviceSelector = {
    "vendor": parse_uint('VID', kwargs['vendor'], 16) if 'vendor' in kwargs else default_vendor,
    "product": parse_uint('PID', kwargs['product'], 16) if 'product' in kwargs else default_product,
    "port": parse_uint('Port', kwargs['port'], 16) if 'port' in kwargs else default_port,
  }
  if kwargs['format'] not in OUTPUT_FORMATS:
    raise CLIError(f"Output format must be one of {', '.join(OUTPUT_FORMATS)}, got {kwargs['format']!r}")

  if len(args) < 1: raise CLIError("Missing subcommand")
  subcmd, extra = args[0], args[1:]
  if subcmd not in SUBCOMMANDS: raise CLIError(f"Unknown subcommand: {subcmd}")
  if extra: raise CLIError(f"Unexpected arguments for {subcmd}: {' '.join(extra)}")

  command: Command = {"kind": subcmd}
  if subcmd == 'set-latency':
    if 'latency' not in kwargs: raise CLIError("set-latency requires --latency")
    command['latency'] = parse_uint('Latency', kwargs['latency'], 8)
  elif 'latency' in kwargs:
    raise CLIError(f"--latency is only accepted by set-latency, not {subcmd}")
  return selector, command

def emit(output_format: str, text: str, record: dict) -> None:
  if output_format == 'json':
    sys.stdout.flush()
    sys.stdout.buffer.write(orjson.dumps(record, option=orjson.OPT_APPEND_NEWLINE))
  else:
    sys.stdout.write(f"{text}\n")
  sys.stdout.flush()

def main(selector: ftdi_util.DeviceSelector, command: Command, kwargs: CLI_KWARGS) -> int:
  output_format, libusb1_path = kwargs['format'], kwargs['libusb1']
  if command['kind'] == 'list-devices':
    logger.info("Listing USB Devices")
    for summary in ftdi_util.enumerate_devices(libusb1_path):
      emit(output_format, ftdi_util.DeviceSummary.render(summary), summary)
  elif command['kind'] == 'get-latency':
    logger.info(f"Reading the latency timer of {ftdi_util.DeviceSelector.render(selector)}")
    with ftdi_util.open_device(selector, libusb1_path) as usb_dev:
      latency = ftdi_util.get_latency(usb_dev, selector['port'])
    emit(output_format, f"Latency is: {latency} ms", {"port": selector['port'], "latency_ms": latency})
  elif command['kind'] == 'set-latency':
    latency = command['latency']
    logger.info(f"Setting the latency timer of {ftdi_util.DeviceSelector.render(selector)}")
    with ftdi_util.open_device(selector, libusb1_path) as usb_dev:
      ftdi_util.set_latency(usb_dev, selector['port'], latency)
    logger.success(f"Latency set to {latency} ms")
    if output_format == 'json': emit(output_format, "", {"port": selector['port'], "latency_ms": latency})
  else:
    raise CLIError(f"Unknown subcommand: {command['kind']}")
  return 0

### Logging

def setup_logging(log_level: str = os.environ.get('LOG_LEVEL', 'INFO')):
  log_level = log_level.upper()
  _log_level = {
    'TRACE': 'DEBUG',
    'DEBUG': 'DEBUG',
    'INFO': 'INFO',
    'WARNING': 'WARNING',
    'SUCCESS': 'ERROR',
    'ERROR': 'ERROR',
    'CRITICAL': 'CRITICAL'
  }.get(log_level)
  if _log_level is None: raise CLIError(f"Unknown log level: {log_level}")
  logger.remove()
  logger.add(sys.stderr, level=log_level, enqueue=True, colorize=True)
  logger.trace(f'Log level set to {log_level}')
  import logging
  for _handle in (
    'usb',
    'usb.core',
  ):
    logger.trace(f'Setting log level for {_handle} to {_log_level}')
    logging.getLogger(_handle).setLevel(_log_level)
  # usb.core propagates to usb; only the parent gets a stream, bound to the current stderr
  _usb_logger = logging.getLogger('usb')
  for _handler in [h for h in _usb_logger.handlers if type(h) is logging.StreamHandler]:
    _usb_logger.removeHandler(_handler)
  _usb_logger.addHandler(logging.StreamHandler(sys.stderr))

def finalize_logging():
  logger.complete()

### Entrypoint

def run(argv: Sequence[str] | None = None, env: Mapping[str, str] | None = None) -> int:
  if argv is None: argv = sys.argv[1:]
  if env is None: env = os.environ
  _rc = 255
  try:
    setup_logging(env.get('LOG_LEVEL', 'INFO'))
  except CLIError:
    setup_logging('INFO')
  try:
    logger.trace(f"Arguments: {list(argv)}")
    args, kwargs = parse_argv(argv, env)
    logger.trace(f"Arguments: {args}\nKeywords: {kwargs}")
    setup_logging(kwargs['log']) # Reconfigure logging
    if kwargs.get('help'):
      sys.stdout.write(USAGE)
      _rc = 0
    elif kwargs.get('version'):
      sys.stdout.write(f"ftdi-util {ftdi_util.__version__}\n")
      _rc = 0
    elif len(args) < 1:
      sys.stderr.write(USAGE)
      _rc = 2
    else:
      selector, command = build_config(args, kwargs)
      _rc = main(selector, command, kwargs)
  except CLIError as e:
    logger.error(str(e))
    _rc = 2
  except (ftdi_util.USBSubsystemError, ftdi_util.DeviceNotFoundError, ftdi_util.TransferError) as e:
    logger.error(str(e))
    _rc = 1
  except Exception:
    logger.opt(exception=True).critical('Unhandled exception')
    _rc = 3
  finally:
    finalize_logging()
    sys.stdout.flush()
    sys.stderr.flush()
  return _rc

def console_main() -> None:
  sys.exit(run())

if __name__ == '__main__':
  console_main()
