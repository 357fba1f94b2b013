"""Command line entry point for FightCred result resolution."""

from __future__ import annotations

import argparse
import json
import os
import sys
import time
from typing import List, Optional

from controller.poller import PollerConfig, ResultPoller
from persistence.database import Database
from resolution.engine import ResolutionEngine, ResolutionError
from results_client.client import EspnScoreboardClient
from results_client.notifier import NullNotifier, WebhookNotifier
from scoring.credibility import FinishType, Method


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="fightcred", description="Fight result resolution")
    ap.add_argument("--db", default=os.environ.get("FIGHTCRED_DB", "fightcred.db"))
    ap.add_argument("--webhook-url", default=os.environ.get("FIGHTCRED_WEBHOOK_URL"))
    ap.add_argument(
        "--interval",
        type=int,
        default=int(os.environ.get("FIGHTCRED_POLL_INTERVAL", "600")),
        help="Seconds between poll cycles",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    sub.add_parser("run", help="Poll the results feed until interrupted")
    sub.add_parser("poll", help="Run a single poll cycle")

    p_resolve = sub.add_parser("resolve", help="Resolve a fight manually")
    p_resolve.add_argument("fight_id", type=int)
    p_resolve.add_argument("--winner", required=True)
    p_resolve.add_argument("--finish-type", required=True, choices=[f.value for f in FinishType])
    p_resolve.add_argument("--method", required=True, choices=[m.value for m in Method])
    p_resolve.add_argument("--round", type=int, default=None)
    p_resolve.add_argument("--fight-time", default=None)

    p_lock = sub.add_parser("lock", help="Lock predictions for a fight that has started")
    p_lock.add_argument("fight_id", type=int)
    return ap


def build_poller(db: Database, engine: ResolutionEngine, args: argparse.Namespace) -> ResultPoller:
    notifier = WebhookNotifier(args.webhook_url) if args.webhook_url else NullNotifier()
    return ResultPoller(
        db,
        engine,
        EspnScoreboardClient(),
        notifier=notifier,
        config=PollerConfig(interval_seconds=args.interval),
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    db = Database(args.db)
    engine = ResolutionEngine(db)

    if args.cmd == "resolve":
        try:
            summary = engine.resolve(
                args.fight_id,
                args.winner,
                FinishType(args.finish_type),
                Method(args.method),
                round=args.round,
                fight_time=args.fight_time,
            )
        except ResolutionError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1
        print(json.dumps(summary.to_dict()))
        return 0

    if args.cmd == "lock":
        locked = db.lock_fight(args.fight_id)
        print(json.dumps({"success": locked}))
        return 0 if locked else 1

    poller = build_poller(db, engine, args)
    if args.cmd == "poll":
        summary = poller.poll_once()
        print(json.dumps({"checked": summary.checked, "resolved": summary.resolved, "errors": summary.errors}))
        return 0

    poller.start()
    try:
        while poller.running:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        poller.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
