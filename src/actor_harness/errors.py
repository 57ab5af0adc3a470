"""Harness error codes, actor exit codes and exceptions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ErrorCode(IntEnum):
    # Fixture setup
    KEY_GENERATION = 0x0100
    GENESIS = 0x0101
    ENGINE_CONSTRUCTION = 0x0102
    INVALID_STAGE = 0x0103
    PRECONDITION = 0x0104
    ACTOR_CREATION = 0x0105

    # Serialization / store
    SERIALIZATION = 0x0200
    INVALID_ADDRESS = 0x0201
    BLOCK_NOT_FOUND = 0x0202
    LOAD_STATE = 0x0203
    FLUSH = 0x0204

    # Engine
    APPLY_FAILED = 0x0300
    INVALID_MESSAGE = 0x0301
    NONCE_MISMATCH = 0x0302
    ACTOR_NOT_FOUND = 0x0303
    CONTEXT_CANCELLED = 0x0304

    # Internal
    INTERNAL_ERROR = 0xFF00


class ExitCode(IntEnum):
    OK = 0
    SYS_ERR_INVALID_RECEIVER = 1
    SYS_ERR_INSUFFICIENT_FUNDS = 2
    SYS_ERR_INVALID_METHOD = 3
    SYS_ERR_ACTOR_PANIC = 4
    ILLEGAL_ARGUMENT = 16
    ILLEGAL_STATE = 17
    FORBIDDEN = 18


@dataclass(frozen=True)
class HarnessError(Exception):
    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.name}({self.code:#06x}): {self.message}"


@dataclass(frozen=True)
class ActorError(Exception):
    """Raised by actor code; surfaced to callers through ApplyRet.actor_err."""
    exit_code: ExitCode
    message: str

    def __str__(self) -> str:
        return f"actor exit {int(self.exit_code)} ({self.exit_code.name}): {self.message}"


# Allow Python's Exception machinery to set __traceback__/__context__/__cause__
# while keeping dataclass fields frozen (`raise ... from` and contextlib compat).
_EXCEPTION_ATTRS = frozenset(
    ("__traceback__", "__context__", "__cause__", "__suppress_context__", "__notes__")
)


def _unfreeze_exception_attrs(cls: type) -> None:
    frozen_setattr = cls.__setattr__

    def _setattr(self: Exception, name: str, value: object) -> None:
        if name in _EXCEPTION_ATTRS:
            object.__setattr__(self, name, value)
        else:
            frozen_setattr(self, name, value)

    cls.__setattr__ = _setattr  # type: ignore[method-assign]


_unfreeze_exception_attrs(HarnessError)
_unfreeze_exception_attrs(ActorError)
