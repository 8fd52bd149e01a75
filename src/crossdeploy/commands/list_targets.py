"""List registered targets"""
from crossdeploy.commands.common import add_registry_argument, load_context
from crossdeploy.core import ConsoleLogger
from crossdeploy.exceptions import ConfigurationError


def setup_parser(parser):
    """Setup argument parser for list command"""
    add_registry_argument(parser)


def execute(args):
    """Execute list command"""
    logger = ConsoleLogger()
    try:
        registry, _ = load_context(args)
    except ConfigurationError as e:
        logger.error(str(e))
        return 2

    print(f"Registered targets ({len(registry)}):")
    print()
    width = max(len(name) for name in registry.names())
    for spec in registry:
        print(f"  {spec.name:<{width}}  {spec.triple}")
        print(f"  {'':<{width}}  package: {spec.toolchain_package}")
        print(f"  {'':<{width}}  host:    {spec.host}")
    return 0
