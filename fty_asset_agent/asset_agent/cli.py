# asset_agent/cli.py
"""
fty-asset entry point: runs the asset agent, auto-update and inventory
actors until SIGINT/SIGTERM.
"""
import argparse
import asyncio
import os
import signal
import sys
from typing import List, Optional

from asset_agent.core.config import get_env_load_state, load_environment, reset_settings
from asset_agent.core.logger import app_logger, reset_app_logger

USAGE = (
    "fty-asset [options] ...\n"
    "  --verbose / -v         verbose test output\n"
    "  --help / -h            this information"
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fty-asset", add_help=False)
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("-h", "--help", action="store_true")
    return parser


def parse_args(argv: List[str]) -> argparse.Namespace:
    """Unknown options are reported and ignored."""
    args, unknown = build_parser().parse_known_args(argv)
    for option in unknown:
        print(f"Unknown option: {option}")
    return args


async def run_agents() -> int:
    from asset_agent.actors.runtime import AssetAgentRuntime, set_runtime

    runtime = AssetAgentRuntime()
    try:
        await runtime.start()
    except Exception as e:
        app_logger.error("Asset agent failed to start", extra={"error": str(e)})
        return 1
    set_runtime(runtime)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass

    waiter = asyncio.create_task(runtime.wait())
    stopper = asyncio.create_task(stop_event.wait())
    await asyncio.wait({waiter, stopper}, return_when=asyncio.FIRST_COMPLETED)
    for task in (waiter, stopper):
        task.cancel()

    if not stop_event.is_set():
        app_logger.error("An actor ended unexpectedly, shutting down")

    await runtime.stop()
    set_runtime(None)
    return 0 if stop_event.is_set() else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    if args.help:
        print(USAGE)
        return 0

    load_environment()
    if args.verbose:
        os.environ["VERBOSE"] = "true"
        reset_settings()
        reset_app_logger()

    env_state = get_env_load_state()
    if env_state["warning"]:
        app_logger.warning("Environment file missing", extra={"warning": env_state["warning"]})

    app_logger.info("fty-asset starting", extra={"verbose": args.verbose})
    try:
        return asyncio.run(run_agents())
    except KeyboardInterrupt:
        return 0
    finally:
        app_logger.info("fty-asset ended")


if __name__ == "__main__":
    sys.exit(main())
