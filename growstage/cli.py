"""GrowStage CLI — `growstage run` and `growstage schedule`."""

import argparse
import json
import sys
import threading


def _build(settings):
    from growstage.core.batch import build_batch_scheduler
    from growstage.models import Base
    from growstage.models.base import create_session_factory

    engine, SessionFactory = create_session_factory(settings.database_url)
    Base.metadata.create_all(bind=engine)
    return engine, build_batch_scheduler(settings, SessionFactory)


def cmd_run(settings) -> int:
    """Run one batch and print the result as JSON."""
    engine, batch = _build(settings)
    try:
        result = batch.run_all()
    finally:
        engine.dispose()
    print(json.dumps(result.as_dict(), indent=2, ensure_ascii=False))
    return 1 if result.errors else 0


def cmd_schedule(settings) -> int:
    """Run batches on the configured interval until interrupted."""
    from growstage.core.scheduler import GrowStageScheduler

    engine, batch = _build(settings)
    scheduler = GrowStageScheduler(batch, settings)

    print("🌱 GrowStage — growth stage task scheduler")
    print(f"   Database: {settings.database_url}")
    print(f"   Interval: every {settings.scheduler_interval_minutes} minutes")
    print("")

    scheduler.start()
    scheduler.trigger_now()
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()
        engine.dispose()
    return 0


def main(argv: list[str] | None = None) -> int:
    from growstage.core import setup_logging
    from growstage.core.config import get_settings

    parser = argparse.ArgumentParser(prog="growstage", description="Growth stage task scheduling engine")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="run one batch over all active plants")
    sub.add_parser("schedule", help="run batches on an interval")
    args = parser.parse_args(argv)

    settings = get_settings()
    # stdout carries the JSON result of `run`
    setup_logging(settings.log_level, stream=sys.stderr if args.command == "run" else sys.stdout)

    if args.command == "run":
        return cmd_run(settings)
    return cmd_schedule(settings)


if __name__ == "__main__":
    sys.exit(main())
