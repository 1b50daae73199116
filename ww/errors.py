import pathlib
from dataclasses import dataclass


@dataclass
class SpawnFailed:
    program: str
    exception: Exception

    def describe(self) -> str:
        return f"could not start {self.program}: {self.exception}"


@dataclass
class PipeOpenFailed:
    stream: str
    exception: Exception

    def describe(self) -> str:
        return f"failed opening {self.stream}: {self.exception}"


@dataclass
class WaitFailed:
    program: str
    exception: Exception

    def describe(self) -> str:
        return f"failed waiting for {self.program}: {self.exception!r}"


@dataclass
class InvalidInterval:
    seconds: float

    def describe(self) -> str:
        return f"invalid --interval: {self.seconds}"


@dataclass
class RootUnreadable:
    path: pathlib.Path
    exception: Exception

    def describe(self) -> str:
        return f"cannot watch {self.path}: {self.exception}"


@dataclass
class InvalidConfig:
    detailed_message: str

    def describe(self) -> str:
        return self.detailed_message


@dataclass
class DisplayFailed:
    exception: Exception

    def describe(self) -> str:
        return f"display error: {self.exception}"


ExecutionError = SpawnFailed | PipeOpenFailed | WaitFailed
ConstructionError = InvalidInterval | RootUnreadable | InvalidConfig | DisplayFailed
