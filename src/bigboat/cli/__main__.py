"""Entry point for `python -m bigboat` command."""

import sys


def main(args: list[str] | None = None) -> int:
    """Main entry point for the bigboat CLI."""
    if args is None:
        args = sys.argv[1:]

    if not args or args[0] in ["-h", "--help", "help"]:
        print_help()
        return 0

    command = args[0]

    if command == "version":
        print_version()
        return 0
    elif command == "web":
        return run_web(args[1:])
    elif command == "config":
        return run_config(args[1:])
    else:
        print(f"Unknown command: {command}")
        print_help()
        return 1


def print_help() -> None:
    """Print CLI help message."""
    print(
        """bigboat - Container dashboard control plane

Usage:
    python -m bigboat <command> [options]

Commands:
    version     Show version information
    web         Run the web server (web server --help for options)
    config      Configuration management
    help        Show this help message

Options:
    -h, --help  Show help message
"""
    )


def print_version() -> None:
    """Print version information."""
    from bigboat import __version__

    print(f"bigboat {__version__}")


def run_web(args: list[str]) -> int:
    """Run the web adapter command."""
    from bigboat.adapters.web.cli import cli

    try:
        cli.main(args=args, prog_name="bigboat web", standalone_mode=False)
        return 0
    except SystemExit as e:
        return e.code or 0  # type: ignore
    except Exception as e:
        print(f"Web adapter error: {e}")
        return 1


def run_config(args: list[str]) -> int:
    """Run the config command."""
    from bigboat.cli.config import run_config_command

    return run_config_command(args)


if __name__ == "__main__":
    sys.exit(main())
