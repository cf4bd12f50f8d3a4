# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Process-wide native engine context.

A native engine is loaded at most once per process: the dynamic linker
state it creates can't be undone. The context records, per engine, the
platform that was detected and where the libraries were loaded from.

One-time semantics: `ndengine.native.library.load_library` fills an entry
under its lock and never overwrites it. `reset_context` exists for test
isolation only; it forgets what was recorded but cannot unload libraries.
"""

import threading
from dataclasses import dataclass, field
from typing import Optional

from ndengine.native.platform import LibraryInfo, Platform


@dataclass
class EngineState:
    platform: Optional[Platform] = None
    library: Optional[LibraryInfo] = None
    bridge_path: Optional[str] = None


@dataclass
class NativeContext:
    """Per-engine state plus the lock that serializes loading."""

    engines: dict[str, EngineState] = field(default_factory=dict)
    lock: threading.RLock = field(default_factory=threading.RLock)

    def state(self, engine: str) -> EngineState:
        return self.engines.setdefault(engine, EngineState())

    def is_loaded(self, engine: str) -> bool:
        state = self.engines.get(engine)
        return state is not None and state.library is not None


_CONTEXT = NativeContext()


def get_context() -> NativeContext:
    """Return the process-wide context."""
    return _CONTEXT


def reset_context() -> None:
    """Forget all recorded engines. Test isolation hook."""
    with _CONTEXT.lock:
        _CONTEXT.engines.clear()
