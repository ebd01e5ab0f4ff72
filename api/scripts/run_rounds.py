import argparse
import logging
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from matchpool.config import LOG_LEVEL, ROUND_WORKERS
from matchpool.database import Base, engine
from matchpool.errors import MatchPoolError
from matchpool.services.rounds import OUTCOME_ERROR, RoundScheduler


def main() -> int:
    parser = argparse.ArgumentParser(description="Run matching pool rounds once")
    parser.add_argument("--pool-id", type=str, default="", help="trigger one pool now instead of running every due pool")
    parser.add_argument("--workers", type=int, default=ROUND_WORKERS)
    parser.add_argument("--create-tables", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    if args.create_tables:
        Base.metadata.create_all(bind=engine)

    scheduler = RoundScheduler(max_workers=args.workers)
    if args.pool_id.strip():
        try:
            outcomes = [scheduler.trigger_round_now(args.pool_id.strip())]
        except MatchPoolError as exc:
            print(f"Round failed: {exc.code}: {exc}")
            return 1
    else:
        outcomes = scheduler.run_due_rounds()

    print(f"Rounds processed: {len(outcomes)}")
    for outcome in outcomes:
        line = f"- {outcome.pool_id}: {outcome.status} round={outcome.round} matches={outcome.match_count} skipped={len(outcome.skipped_members)}"
        if outcome.error:
            line += f" error={outcome.error}"
        print(line)
    return 1 if any(o.status == OUTCOME_ERROR for o in outcomes) else 0


if __name__ == "__main__":
    raise SystemExit(main())
