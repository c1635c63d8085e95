import argparse
import sys

from forensic_imager import __version__
from forensic_imager.config.settings import clear_encryption_key, load_config
from forensic_imager.hardware.gpio import status_indicator
from forensic_imager.logging import clear_secrets, get_logger, register_secret, setup_logging
from forensic_imager.storage import devices, preflight
from forensic_imager.storage.exceptions import (
    DeviceQueryError,
    InvalidDeviceError,
    MissingKeyError,
    PreconditionError,
    TransferError,
    UsageError,
)
from forensic_imager.storage.imaging import DuplicationPipeline, S3ObjectStore

PROG = "forensic-imager"

USAGE = f"""\
Usage: ENCRYPTION_KEY='your_secret_key' [GPIO_ENABLED=true] {PROG} <source_disk> <s3_bucket>
Example: ENCRYPTION_KEY='mySecretKey' GPIO_ENABLED=true {PROG} /dev/sda my-forensic-bucket
If source_disk is omitted, available unmounted disks will be displayed."""


def build_parser():
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Forensic disk duplicator: hash, encrypt and upload a block device to S3",
        epilog=USAGE,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "positionals",
        nargs="*",
        metavar="source_disk s3_bucket",
        help="Block device to image and destination bucket",
    )
    parser.add_argument(
        "-l", "--list", action="store_true", help="List unmounted disks and exit"
    )
    parser.add_argument(
        "--gpio",
        dest="gpio",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Blink a status LED on GPIO while uploading (overrides GPIO_ENABLED)",
    )
    parser.add_argument("--log-file", default=None, help="Path of the run log")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Enable trace output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def print_usage():
    print(USAGE)


def list_unmounted_disks(log) -> None:
    log.info("Listing available unmounted disks:")
    disks = devices.list_unmounted_disks()
    if not disks:
        log.info("  (none found)")
    for disk in disks:
        log.info(f"  {devices.format_disk_line(disk)}")


def run_duplication(config, source, bucket, log) -> None:
    preflight.check_root()
    preflight.check_commands(config.required_tools)
    preflight.check_gpio(config)
    key = preflight.check_encryption_key()
    register_secret(key)

    with status_indicator(
        config.gpio_enabled, config.led_pin, config.blink_interval
    ) as indicator:
        try:
            preflight.check_source_device(source)
        except InvalidDeviceError:
            log.error(f"Error: {source} is not a valid block device.")
            list_unmounted_disks(log)
            raise
        pipeline = DuplicationPipeline(config, S3ObjectStore.from_config(config), indicator)
        pipeline.run(source, bucket, key)


def main(argv=None):
    args = build_parser().parse_args(argv)
    config = load_config().with_overrides(log_file=args.log_file, gpio_enabled=args.gpio)

    try:
        setup_logging(config.log_file, debug=args.debug, trace=args.trace)
    except OSError as error:
        setup_logging(debug=args.debug, trace=args.trace, file_sink=False)
        get_logger(source="main").warning(f"Cannot write run log {config.log_file}: {error}")

    log = get_logger(source="main", tags=["main"])
    log.info(f"Starting {PROG}")
    positionals = args.positionals

    try:
        if args.list or len(positionals) < 2:
            list_unmounted_disks(log)
            return 0
        if len(positionals) != 2:
            raise UsageError(f"Expected 2 arguments, got {len(positionals)}")
        source, bucket = positionals
        run_duplication(config, source, bucket, log)
    except (UsageError, MissingKeyError) as error:
        log.error(f"Error: {error}")
        print_usage()
        return 1
    except InvalidDeviceError:
        return 1
    except (PreconditionError, DeviceQueryError) as error:
        log.error(f"Error: {error}")
        return 1
    except TransferError as error:
        log.error(f"Error: {error}")
        return 1
    finally:
        clear_encryption_key()
        clear_secrets()

    log.success(f"{PROG} completed successfully")
    return 0


if __name__ == "__main__":
    sys.exit(main())
