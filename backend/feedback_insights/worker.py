"""
Standalone evaluation worker: runs the insight evaluator on its schedule
without the web application.

    feedback-insights-worker           # run until interrupted
    feedback-insights-worker --once    # evaluate one page and exit
"""
import os
import sys
import json
import logging
import argparse

from dotenv import load_dotenv

logger = logging.getLogger("feedback_insights.worker")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Evaluate stored customer insights with an LLM judge.")
    parser.add_argument("--once", action="store_true", help="Run a single tick and exit.")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    load_dotenv(dotenv_path=os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", ".env"))

    from feedback_insights.db.session import engine, Base
    from feedback_insights.models import chunk, insight  # noqa: F401
    from feedback_insights.services.evaluation_service import create_evaluation_scheduler, get_evaluation_worker

    Base.metadata.create_all(bind=engine)
    worker = get_evaluation_worker()

    if args.once:
        report = worker.run_once()
        print(json.dumps(report.to_dict()))
        return 0

    scheduler = create_evaluation_scheduler(worker)
    scheduler.start()
    logger.info("Worker: Evaluation worker running. Press Ctrl+C to stop.")
    try:
        scheduler.wait()
    except KeyboardInterrupt:
        logger.info("Worker: Shutting down.")
        scheduler.stop(timeout=30)
    return 0


if __name__ == "__main__":
    sys.exit(main())
