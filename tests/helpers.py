"""
Test doubles shared by executor and SDK tests.
"""


class FakeProviderError(Exception):
    """Provider failure exposing the structural status/code/message fields."""

    def __init__(self, message="provider failure", status=None, code=None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class FakeTimeline:
    """Deterministic clock whose sleep advances time instead of waiting."""

    def __init__(self):
        self.now = 100.0
        self.sleeps = []

    def clock(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds):
        self.now += seconds


class ListSink:
    """In-memory request log sink."""

    def __init__(self):
        self.entries = []

    def insert(self, entry):
        self.entries.append(entry)


class FailingSink:
    """Log sink whose inserts always fail."""

    def __init__(self):
        self.calls = 0

    def insert(self, entry):
        self.calls += 1
        raise RuntimeError("log store unavailable")


class ScriptedOperation:
    """Async operation that raises or returns scripted outcomes in order.

    The last outcome repeats once the script is exhausted.
    """

    def __init__(self, *outcomes, timeline=None, attempt_duration=0.0):
        self.outcomes = list(outcomes)
        self.calls = 0
        self.timeline = timeline
        self.attempt_duration = attempt_duration

    async def __call__(self):
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if self.timeline is not None:
            self.timeline.advance(self.attempt_duration)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


