# amod_dispatch/io/kernel_logging.py
import json
import logging
import sys
from dataclasses import asdict, is_dataclass

from amod_dispatch.sim.hooks import NoopHooks

ROOT_LOGGER = "amod_dispatch"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def default_json_logger(name: str = ROOT_LOGGER, level: str = "INFO") -> logging.Logger:
    """JSON lines on stdout for the package root logger; module loggers inherit it."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(JsonFormatter())
        logger.addHandler(h)
    logger.setLevel(level)
    return logger


class KernelLogging(NoopHooks):
    """
    Structured logs for kernel lifecycle and tick dispatch.
    Tick dispatches are DEBUG-only and sampled; run start/end and errors are always logged.
    """

    def __init__(
        self,
        run_id: str = "local",
        clock=None,
        level: str = "INFO",
        debug: bool = False,
        sample_every: int = 1000,
        logger: logging.Logger | None = None,
    ):
        self.run_id, self.clock, self.debug, self.sample_every = (
            run_id,
            clock,
            debug,
            max(1, sample_every),
        )
        self.log = logger or default_json_logger(level=level)
        self._processed = 0

    # --------------- Helpers -----------------------------

    def _emit(self, level: str, msg: str, **extra):
        t = extra.get("t")
        wall = self.clock.to_wall(t) if (self.clock and t is not None) else None
        payload = {"run_id": self.run_id}
        if wall:
            payload["wall"] = wall.isoformat()
        self.log.log(getattr(logging, level), msg, extra={"extra": {**payload, **extra}})

    def _shape_event(self, ev) -> tuple[str, dict]:
        name = type(ev).__name__
        base = {"t": getattr(ev, "t", None)}
        if is_dataclass(ev):
            evd = asdict(ev)
            evd.pop("t", None)
            if evd:
                base["data"] = evd
        return name, base

    # --------------------------------------------------------

    def run_start(self, *, until, max_events, qsize):
        self._emit("INFO", "run_start", until=until, max_events=max_events, qsize=qsize)

    def run_end(self, *, processed, **extra):
        self._emit("INFO", "run_end", processed=processed, **extra)

    def schedule(self, ev, *, now, qsize):
        if self.debug and (qsize % self.sample_every) == 0:
            name, extra = self._shape_event(ev)
            self._emit("DEBUG", "schedule", event=name, now=now, qsize=qsize, **extra)

    def dispatch_start(self, ev, *, seq, qsize, handlers):
        self._processed += 1
        if self.debug and (self._processed % self.sample_every) == 0:
            name, extra = self._shape_event(ev)
            self._emit("DEBUG", name, seq=seq, qsize=qsize, handlers=handlers, **extra)

    def dispatch_end(self, ev, *, out_events, ms):
        if self.debug and (self._processed % self.sample_every) == 0:
            self._emit("DEBUG", "dispatch_done", t=ev.t, out_events=out_events, ms=round(ms, 3))

    def error(self, ev, *, reason, **extra):
        name, shaped = self._shape_event(ev)
        self._emit("ERROR", "kernel_error", event=name, reason=reason, **{**shaped, **extra})
