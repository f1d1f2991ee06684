import logging
import sys
from pathlib import Path

# Use absolute import so it works when frozen as a script entrypoint.
from tablet_mapper.app import create_application
from tablet_mapper.config import load_config
from tablet_mapper.errors import ConfigError
from tablet_mapper.input.hid_backend import HidSession, find_devices, hid_available
from tablet_mapper.monitor import DecodeMonitor

logger = logging.getLogger("tablet_mapper")


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv if argv is None else argv)
    app = create_application(argv)
    if len(argv) != 2:
        logger.error("usage: tablet-mapper CONFIG.json")
        return 2

    try:
        config = load_config(Path(argv[1]))
    except (OSError, ConfigError) as exc:
        logger.error("Cannot load %s: %s", argv[1], exc)
        return 1

    if not hid_available():
        logger.error("hidapi is not installed")
        return 1
    devices = find_devices(config.device_info.vendor_id, config.device_info.product_id)
    if not devices:
        logger.error("%s (%s:%s) is not connected", config.name, config.vendor_id, config.product_id)
        return 1

    session = HidSession()
    session.open(devices[0])
    logger.info("Decoding reports from %s", devices[0].product_string)
    monitor = DecodeMonitor(session=session, config=config)
    monitor.start()
    try:
        return app.exec()
    finally:
        monitor.stop()
        session.close()


if __name__ == "__main__":
    raise SystemExit(main())
