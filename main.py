# main.py
import argparse
import json

from amod_dispatch.app.build import build
from amod_dispatch.config.models import ScenarioModel


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Run an AMoD dispatch scenario")
    p.add_argument("scenario", help="scenario config (JSON)")
    p.add_argument("--until", type=float, default=None, help="stop at this sim time (s)")
    p.add_argument("--quiet", action="store_true", help="no kernel lifecycle logs")
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    with open(args.scenario) as f:
        cfg = ScenarioModel.model_validate(json.load(f))

    until = args.until if args.until is not None else float(cfg.sim.duration)
    with build(cfg, use_logging=not args.quiet) as app:
        app.run(until=until)

    summary = {
        "run_id": cfg.run_id,
        "t": app.kernel.now,
        "queued": app.driver.num_waiting_customers,
        "completed_trips": app.world.completed,
        **app.driver.stats.summary(),
    }
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
