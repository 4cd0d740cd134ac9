"""
APIFlow Main Entry Point

Launches the APIFlow editor with Qt/asyncio integration through qasync,
or executes a graph headlessly.

Usage:
    python -m apiflow                      # Editor with the demo graph
    python -m apiflow --empty              # Editor with an empty graph
    python -m apiflow --file graph.apiflow # Open a graph file
    python -m apiflow --file graph.apiflow --run get-uuid
    python -m apiflow --run-all            # Execute every root node headlessly
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from PyQt6.QtCore import Qt
from PyQt6.QtGui import QFont
from PyQt6.QtWidgets import QApplication

if TYPE_CHECKING:
    from apiflow.core.graph_store import GraphStore

# Configure logging before importing APIFlow modules
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ],
)

logger = logging.getLogger("apiflow")


def get_system_font_family() -> str:
    """Get the appropriate system font family for the current platform."""
    if sys.platform == "darwin":
        return ".AppleSystemUIFont"
    elif sys.platform == "win32":
        return "Segoe UI"
    else:
        return "DejaVu Sans"


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="apiflow",
        description="APIFlow - Visual composition of chained HTTP API calls",
    )
    parser.add_argument(
        "--file",
        "-f",
        type=Path,
        help="Open a graph file on startup",
    )
    parser.add_argument(
        "--empty",
        action="store_true",
        help="Start with an empty graph instead of the demo flow",
    )
    parser.add_argument(
        "--allow-fan-in",
        action="store_true",
        help="Allow several connections into one parameter",
    )
    parser.add_argument(
        "--run",
        metavar="NODE_ID",
        help="Execute a node and its downstream chain without the editor",
    )
    parser.add_argument(
        "--run-all",
        action="store_true",
        help="Execute every root node without the editor",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def setup_logging(debug: bool = False) -> None:
    """Configure logging level."""
    level = logging.DEBUG if debug else logging.INFO
    logging.getLogger("apiflow").setLevel(level)

    if debug:
        for name in ["apiflow.core", "apiflow.canvas", "apiflow.gui"]:
            logging.getLogger(name).setLevel(logging.DEBUG)
    else:
        # httpx logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)


def create_store(args: argparse.Namespace) -> "GraphStore":
    """Build the initial graph from a file, the demo flow, or nothing."""
    from apiflow.core.demo import create_demo_graph
    from apiflow.core.graph_store import GraphStore

    if args.file:
        if args.file.exists():
            return GraphStore.load(str(args.file), allow_fan_in=args.allow_fan_in)
        logger.warning(f"Graph file not found: {args.file}")

    store = GraphStore(allow_fan_in=args.allow_fan_in)
    if not args.empty:
        create_demo_graph(store)
        store.mark_clean()
    return store


async def run_headless(args: argparse.Namespace) -> int:
    """
    Execute the graph without a window and log each node's outcome.

    Returns:
        Exit code: 0 when every executed node succeeded
    """
    from apiflow.core.flow_engine import FlowEngine
    from apiflow.core.types import RequestStatus

    store = create_store(args)
    engine = FlowEngine(store)

    try:
        if args.run:
            if not engine.execute(args.run):
                logger.error(f"Unknown node: {args.run}")
                return 2
        else:
            started = engine.execute_roots()
            logger.info(f"Executing {len(started)} root node(s)")
        await engine.wait_until_idle()
    finally:
        await engine.shutdown()

    failed = 0
    for node in store.get_nodes():
        runtime = node.runtime
        if runtime.status == RequestStatus.IDLE:
            continue
        if runtime.status == RequestStatus.ERROR:
            failed += 1
            logger.error(f"{node.id}: {runtime.error.message if runtime.error else 'failed'}")
        else:
            status = runtime.response.status if runtime.response else "-"
            valid = runtime.validation.is_valid if runtime.validation else None
            logger.info(f"{node.id}: {status} valid={valid} extracted={runtime.extracted!r}")
    return 1 if failed else 0


def main() -> int:
    """
    Main entry point.

    Sets up Qt application with qasync event loop integration.
    """
    args = parse_args()

    setup_logging(args.debug)

    if args.run or args.run_all:
        return asyncio.run(run_headless(args))

    logger.info("Starting APIFlow...")

    import qasync

    from apiflow.core.flow_engine import FlowEngine
    from apiflow.gui.main_window import MainWindow

    # Enable high DPI support
    QApplication.setHighDpiScaleFactorRoundingPolicy(
        Qt.HighDpiScaleFactorRoundingPolicy.PassThrough
    )

    app = QApplication(sys.argv)
    app.setApplicationName("APIFlow")

    # Set default application font to prevent "Point size <= 0" warnings
    default_font = QFont(get_system_font_family(), 10)
    app.setFont(default_font)

    loop = qasync.QEventLoop(app)
    asyncio.set_event_loop(loop)

    async def run_app():
        try:
            store = create_store(args)
            window = MainWindow(FlowEngine(store))
            window.show()
            window.graph_view.center_on_nodes()

            # Keep a reference for the lifetime of the loop
            app._apiflow_window = window

        except Exception as e:
            logger.exception(f"Initialization error: {e}")
            app.quit()

    with loop:
        loop.run_until_complete(run_app())
        loop.run_forever()

    return 0


if __name__ == "__main__":
    sys.exit(main())
