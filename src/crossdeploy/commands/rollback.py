"""Restore the previous deployment of a target"""
from crossdeploy.commands.common import add_registry_argument, load_context, make_deployer
from crossdeploy.core import ConsoleLogger
from crossdeploy.exceptions import ConfigurationError, DeployError
from crossdeploy.pipeline import Stage, STAGE_EXIT_CODES


def setup_parser(parser):
    """Setup argument parser for rollback command"""
    parser.add_argument(
        '--target',
        required=True,
        help='Registered target name'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Show debug output'
    )
    add_registry_argument(parser)


def execute(args):
    """Execute rollback command"""
    logger = ConsoleLogger(verbose=args.verbose)
    try:
        registry, settings = load_context(args)
        spec = registry.resolve(args.target)
    except ConfigurationError as e:
        logger.error(str(e))
        return STAGE_EXIT_CODES[Stage.RESOLVING]

    deployer = make_deployer(settings, logger)
    try:
        deployer.rollback(spec.host)
    except DeployError as e:
        logger.error(str(e))
        return STAGE_EXIT_CODES[Stage.DEPLOYING]
    return 0
