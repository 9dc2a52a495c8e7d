"""
Main entrypoint.

Usage:
    python -m runtrack                 # recover any interrupted run, then serve the API
    python -m runtrack recover         # only recover an interrupted run
    python -m runtrack replay FILE.csv # replay a GPS trace (see runtrack.scripts.replay)

The API can also be started directly:
    uvicorn runtrack.api.main:app --host 0.0.0.0 --port 8000
"""
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _run_recover() -> None:
    from runtrack.db.engine import get_engine
    from runtrack.services import build_tracker

    tracker = build_tracker(get_engine())
    recovered = tracker.recover()
    if recovered:
        logger.info("Recovered run %s: %s", recovered.session_id, recovered.notes)
    else:
        logger.info("No interrupted run to recover.")


def _run_replay() -> None:
    from runtrack.scripts.replay import main as replay_main

    sys.argv = [sys.argv[0]] + sys.argv[2:]
    replay_main()


def _run_server() -> None:
    import uvicorn

    logger.info("Starting API server...")
    uvicorn.run("runtrack.api.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    # Dispatch on first argument
    command = sys.argv[1] if len(sys.argv) > 1 else "serve"
    if command == "recover":
        _run_recover()
    elif command == "replay":
        _run_replay()
    else:
        _run_server()
