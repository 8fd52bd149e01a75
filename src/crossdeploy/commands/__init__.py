"""Command implementations. Each module exposes setup_parser(parser) and execute(args)."""
