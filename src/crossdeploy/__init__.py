"""
crossdeploy CLI - build a Rust project for a registered device and install it there

Resolves a named target, provisions its cross toolchain, runs cargo, checks
the produced binary and atomically installs it on the device over SSH.
"""
import argparse
import logging
import sys

__version__ = "0.1.0"


def init_logger(verbose):
    level = logging.DEBUG if verbose else logging.WARNING
    handler = logging.StreamHandler()
    handler.setLevel(level)
    log_format = "%(asctime)s %(levelname)-8s [%(threadName)s]: %(message)s"
    formatter = logging.Formatter(log_format, "%y.%m.%d %H:%M:%S")
    handler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def main(argv=None):
    """Main CLI entry point"""
    from crossdeploy.commands import deploy, list_targets, rollback

    parser = argparse.ArgumentParser(
        prog='crossdeploy',
        description='crossdeploy: cross-compile and deploy to remote devices',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  crossdeploy list                              # Show registered targets
  crossdeploy deploy --target pi4 --release     # Build and install on pi4
  crossdeploy deploy --target pi4 --retries 5   # More upload retries
  crossdeploy rollback --target pi4             # Restore <remote_path>.prev

Exit codes: 0 ok, 2 resolving, 3 provisioning, 4 building, 5 verifying,
6 deploying, 130 cancelled
        '''
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # Deploy command
    deploy_parser = subparsers.add_parser('deploy', help='Build, verify and deploy a target')
    deploy.setup_parser(deploy_parser)

    # List command
    list_parser = subparsers.add_parser('list', help='List registered targets')
    list_targets.setup_parser(list_parser)

    # Rollback command
    rollback_parser = subparsers.add_parser('rollback', help='Restore the previous deployment')
    rollback.setup_parser(rollback_parser)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    init_logger(getattr(args, 'verbose', False))

    # Dispatch to command handler
    try:
        if args.command == 'deploy':
            sys.exit(deploy.execute(args))
        elif args.command == 'list':
            sys.exit(list_targets.execute(args))
        elif args.command == 'rollback':
            sys.exit(rollback.execute(args))
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(1)
