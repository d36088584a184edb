"""
=============================================================================
CLI ENTRY POINT
=============================================================================

Serve an application with the development server.

=============================================================================
USAGE
=============================================================================

    # myapp.py defines `app = Application(ROUTES)`
    python -m webkernel myapp:app

    # or a factory returning an Application
    python -m webkernel myapp:create_app --port 3000 --env dev

Environment variables (APP_ENV, APP_PORT, ...) are read first; command-line
flags override them.

=============================================================================
"""

from typing import Any, List, Optional
import argparse
import importlib
import inspect
import sys

from . import __version__
from .application import Application
from .config import ENVIRONMENTS, LOG_LEVELS, AppConfig


def load_application(target: str, config: AppConfig) -> Application:
    """
    Import "module:attribute" and return the Application it names.

    A callable attribute is treated as a factory. Factories that accept an
    argument receive the config.

    Raises:
        ValueError: `target` is not "module:attribute".
        TypeError: The attribute is not (and did not produce) an Application.
    """
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Expected 'module:attribute', got {target!r}")

    module = importlib.import_module(module_name)
    app: Any = getattr(module, attribute)

    if not isinstance(app, Application) and callable(app):
        try:
            wants_config = bool(inspect.signature(app).parameters)
        except (TypeError, ValueError):
            wants_config = False
        app = app(config) if wants_config else app()

    if not isinstance(app, Application):
        raise TypeError(f"{target} is {type(app).__name__}, not an Application")
    return app


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="webkernel",
        description="Serve a webkernel application with the development server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m webkernel myapp:app                     # Run with defaults
  python -m webkernel myapp:create_app --port 3000  # Factory, custom port
  python -m webkernel myapp:app --env dev           # Errors propagate
        """,
    )

    parser.add_argument("app", help="Application to serve, as module:attribute")

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: APP_HOST or 127.0.0.1)",
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: APP_PORT or 8080)",
    )
    parser.add_argument(
        "--env", "-e",
        choices=ENVIRONMENTS,
        default=None,
        help="Application environment (default: APP_ENV or prod)",
    )
    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        default=None,
        help="Logging level (default: APP_LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"webkernel {__version__}",
    )

    args = parser.parse_args(argv)

    config = AppConfig.from_env()
    if args.env:
        config.app_env = args.env
    if args.log_level:
        config.log_level = args.log_level

    # Make the current directory importable, like `python -m` does for scripts
    if "" not in sys.path:
        sys.path.insert(0, "")

    app = load_application(args.app, config)

    # Applications built at import time never saw `config`
    if args.env and app.config.app_env != args.env:
        app.set_environment(args.env)
    if args.log_level:
        app.config.log_level = args.log_level

    app.run(host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
