# amod_dispatch/io/recorder.py
import json
import logging
import sys
from dataclasses import asdict
from typing import Protocol

log = logging.getLogger(__name__)


class Sink(Protocol):
    def write(self, ev) -> None: ...


class JsonlSink:
    def __init__(self, fp=sys.stdout, *, owns: bool = False):
        self.fp = fp
        self.owns = owns  # close fp on close()

    @classmethod
    def open(cls, path: str) -> "JsonlSink":
        return cls(open(path, "a"), owns=True)

    def write(self, ev) -> None:
        self.fp.write(json.dumps(asdict(ev)) + "\n")

    def close(self) -> None:
        if self.owns:
            self.fp.close()
        else:
            self.fp.flush()


class MemorySink:
    def __init__(self):
        self.events: list = []

    def write(self, ev) -> None:
        self.events.append(ev)

    def named(self, name: str) -> list:
        return [e for e in self.events if e.name == name]


class Recorder:
    def __init__(self, *sinks: Sink):
        self.sinks = sinks or (JsonlSink(),)
        self.failed_writes = 0

    def emit(self, ev) -> None:
        for s in self.sinks:
            try:
                s.write(ev)
            except (OSError, TypeError, ValueError) as exc:
                # a broken sink must not break the simulation
                self.failed_writes += 1
                log.warning(
                    "event sink write failed",
                    extra={
                        "extra": {"sink": type(s).__name__, "event": ev.name, "error": str(exc)}
                    },
                )

    def close(self) -> None:
        for s in self.sinks:
            close = getattr(s, "close", None)
            if close is not None:
                close()
