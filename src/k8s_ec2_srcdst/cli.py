"""Command line entry point for the source/destination check controller."""

import argparse
import logging
import signal
import sys
import threading
from typing import Optional, Sequence

from pydantic import ValidationError
from rich.logging import RichHandler

from . import __version__
from .auth import create_aws_session, create_core_api
from .client import EC2Client
from .controller import SrcDstController
from .informer import NodeInformer
from .models import ControllerConfig, DisableMode, WriteStrategy
from .nodes import create_node_writer
from .utils.config import load_controller_config
from .utils.display import display_configuration_info, display_error
from .utils.yamler import ConfigNotFoundError

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="k8s-ec2-srcdst",
        description="Disable EC2 source/destination checks on Kubernetes nodes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  k8s-ec2-srcdst
  k8s-ec2-srcdst --kubeconfig ~/.kube/config --region us-west-2
  k8s-ec2-srcdst --config-file controller.yaml --workers 4 --patch-node
        """
    )

    parser.add_argument('--kubeconfig', help='Path to a kubeconfig file (default: in-cluster config)')
    parser.add_argument('--config-file', help='YAML file with a "controller" section')
    parser.add_argument('--region', help='AWS region of the cluster instances')
    parser.add_argument('--profile', dest='profile_name', help='AWS credentials profile')
    parser.add_argument('--workers', type=int, help='Number of concurrent reconcile workers (default: 1)')
    parser.add_argument('--resync-period', type=float, help='Seconds between full cache resyncs (default: 60)')
    parser.add_argument('--max-retries', type=int, help='Requeues allowed after EC2 failures (default: 5)')
    parser.add_argument('--conflict-retries', type=int, help='Attempts to write the node annotation (default: 5)')
    parser.add_argument(
        '--patch-node',
        dest='write_strategy',
        action='store_const',
        const=WriteStrategy.PATCH.value,
        help='Patch node annotations instead of updating the whole node',
    )
    parser.add_argument(
        '--disable-mode',
        choices=[mode.value for mode in DisableMode],
        help='Disable the check on the instance or on each network interface (default: instance)',
    )
    parser.add_argument('--annotation-key', help='Annotation recording that a node was handled')
    parser.add_argument('--log-level', help='Logging level (default: INFO)')
    parser.add_argument('--version', action='store_true', help='Print the version and exit')

    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True)]
    )


def build_controller(settings: ControllerConfig) -> SrcDstController:
    """Wire the cluster and EC2 clients into a controller."""
    core_api = create_core_api(settings)
    session = create_aws_session(settings)

    ec2_client = EC2Client(
        region=settings.region,
        profile_name=settings.profile_name,
        disable_mode=settings.disable_mode,
        session=session,
    )
    informer = NodeInformer(core_api, resync_period=settings.resync_period)
    return SrcDstController(
        ec2_client=ec2_client,
        node_writer=create_node_writer(core_api, settings.write_strategy),
        informer=informer,
        workers=settings.workers,
        annotation_key=settings.annotation_key,
        max_retries=settings.max_retries,
        conflict_retries=settings.conflict_retries,
    )


def install_signal_handlers(stop_event: threading.Event) -> None:
    def _handle(signum, _frame):
        logger.info(f"Received {signal.Signals(signum).name}; stopping")
        stop_event.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)

    if args.version:
        print(__version__)
        return 0

    overrides = {
        key: value for key, value in vars(args).items()
        if key not in ("config_file", "version")
    }
    try:
        settings = load_controller_config(args.config_file, overrides)
    except (ConfigNotFoundError, FileNotFoundError) as e:
        display_error(f"Configuration Error: {e}")
        return 1
    except ValidationError as e:
        display_error(f"Invalid configuration: {e}")
        return 1

    setup_logging(settings.log_level)
    display_configuration_info(settings, __version__)
    logger.info(f"k8s-ec2-srcdst: {__version__}")

    try:
        controller = build_controller(settings)
    except RuntimeError as e:
        logger.error(f"Failed to start controller: {e}")
        return 1

    stop_event = threading.Event()
    install_signal_handlers(stop_event)
    controller.run(stop_event)
    return 0


if __name__ == "__main__":
    sys.exit(main())
