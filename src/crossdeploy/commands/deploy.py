"""Build, verify and deploy one target"""
from concurrent.futures import ThreadPoolExecutor

from crossdeploy.commands.common import add_registry_argument, load_context, make_pipeline
from crossdeploy.core import CancelToken, ConsoleLogger
from crossdeploy.exceptions import CompileError, ConfigurationError, TransferError
from crossdeploy.pipeline import PipelineReport, Stage, STAGE_EXIT_CODES


def setup_parser(parser):
    """Setup argument parser for deploy command"""
    parser.add_argument(
        '--target',
        required=True,
        help='Registered target name (e.g., pi4)'
    )
    parser.add_argument(
        '--release',
        action='store_true',
        help='Build with the release profile'
    )
    parser.add_argument(
        '--source',
        default='.',
        help='Project root containing Cargo.toml (default: current directory)'
    )
    parser.add_argument(
        '--retries',
        type=int,
        help='Upload retries after the first attempt (default: from registry settings, 3)'
    )
    parser.add_argument(
        '--unique-output',
        action='store_true',
        help='Copy the binary to a per-run path so concurrent builds cannot collide'
    )
    parser.add_argument(
        '--backup',
        action='store_true',
        help='Keep the previous deployment as <remote_path>.prev for rollback'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Show commands and debug output'
    )
    add_registry_argument(parser)


def execute(args):
    """Execute deploy command"""
    logger = ConsoleLogger(verbose=args.verbose)
    try:
        registry, settings = load_context(args)
    except ConfigurationError as e:
        logger.error(str(e))
        return STAGE_EXIT_CODES[Stage.RESOLVING]

    print("=" * 80)
    print(f"Deploying {args.target} ({'release' if args.release else 'debug'})")
    print("=" * 80)

    pipeline = make_pipeline(registry, settings, logger)
    token = CancelToken()

    # Run in a worker so Ctrl-C reaches this thread and can request a clean stop.
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix='pipeline') as executor:
        future = executor.submit(
            pipeline.run,
            args.target,
            args.release,
            args.source,
            args.unique_output,
            token
        )
        report = wait_for_report(future, token)

    print_report(report)
    return report.exit_code


def wait_for_report(future, token: CancelToken) -> PipelineReport:
    """Wait for the pipeline, turning Ctrl-C into a cancellation request.

    The worker always finishes its current step, so further Ctrl-C presses
    keep waiting rather than leaving a half-written remote file behind.
    """
    while True:
        try:
            return future.result()
        except KeyboardInterrupt:
            if not token.cancelled:
                token.cancel("interrupted by user")
                print("\nInterrupted, stopping after the current step")
            else:
                print("Still stopping, waiting for the current step to finish")


def print_report(report: PipelineReport):
    print()
    for line in report.progress:
        print(f"  ✓ {line}")

    if report.succeeded:
        result = report.deploy_result
        print(f"\n✓ Deployed to {report.target.host}")
        print(f"  Bytes transferred: {result.bytes_transferred}")
        print(f"  Attempts: {result.attempts}")
        if result.backup_path:
            print(f"  Previous version: {result.backup_path}")
        return

    if report.cancelled:
        print(f"\n✗ Cancelled during {report.failed_stage.value}")
    else:
        print(f"\n✗ Failed during {report.failed_stage.value}: {report.error_kind}")
    print(f"  {report.error}")

    if isinstance(report.error, CompileError) and report.error.diagnostics:
        print("\nCompiler output:")
        print(report.error.diagnostics)
    if isinstance(report.error, TransferError) and report.error.expected_bytes is not None:
        print(f"  Transferred {report.error.transferred_bytes} of {report.error.expected_bytes} bytes")
