"""Bounded repair loop: reload, run, and on failure request and apply a fix."""

import asyncio
import inspect
import itertools
import logging
import os
import re
import sys
import traceback
import types
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple, Union

from ..tools.fix_tool import FixTool, describe_error
from .models import FixOutcome, RepairResult, RoundRecord

logger = logging.getLogger(__name__)

DEFAULT_ENTRY_POINT = "run"
# Conventional default entry point of a Python module
DEFAULT_EXPORT = "main"

PHASE_LOAD = "load"
PHASE_ENTRY_POINT = "entry_point"
PHASE_RUNTIME = "runtime"


class ArtifactLoader:
    """Load a module file fresh from disk on every call."""

    def __init__(self, prefix: str = "autofixer_target"):
        self.prefix = prefix
        self._tokens = itertools.count(1)

    def reload(self, path: Path) -> types.ModuleType:
        """Compile and execute the current on-disk source as a new module.

        Each call uses a distinct module name, so no import or bytecode cache
        can serve a previous version.

        Raises:
            Whatever reading, compiling or executing the module raises
        """
        token = next(self._tokens)
        path = Path(path)
        name = f"{self.prefix}_{re.sub(r'[^0-9A-Za-z_]', '_', path.stem)}_{token}"

        source = path.read_text(encoding="utf-8")
        code = compile(source, str(path), "exec")

        module = types.ModuleType(name)
        module.__file__ = str(path)
        # Registered so decorators that look up sys.modules (dataclasses) work
        sys.modules[name] = module
        try:
            exec(code, module.__dict__)
        except BaseException:
            sys.modules.pop(name, None)
            raise
        return module

    def release(self, module: types.ModuleType) -> None:
        """Unregister a module returned by reload once its round is over."""
        if sys.modules.get(module.__name__) is module:
            del sys.modules[module.__name__]


async def call_entry_point(func: Callable[[], Any]) -> Any:
    """Call an entry point without blocking the event loop.

    Coroutine functions are awaited directly; plain callables run in a worker
    thread, so they may start their own event loop with ``asyncio.run``.
    """
    if inspect.iscoroutinefunction(func):
        return await func()
    out = await asyncio.to_thread(func)
    if inspect.isawaitable(out):
        out = await out
    return out


@dataclass(frozen=True)
class Found:
    """An entry point was resolved."""

    name: str
    func: Callable[[], Any]


@dataclass(frozen=True)
class NotFound:
    """No callable entry point could be resolved."""

    tried: Tuple[str, ...]


def resolve_entry_point(module: types.ModuleType, name: str = DEFAULT_ENTRY_POINT) -> Union[Found, NotFound]:
    """Pick the callable that validates the module.

    Order: the attribute called ``name``, then ``main``, then the first public
    callable exported by the module (``__all__`` order when declared,
    otherwise definition order, skipping objects imported from elsewhere).
    """
    for candidate in (name, DEFAULT_EXPORT):
        value = getattr(module, candidate, None)
        if callable(value):
            return Found(candidate, value)

    exported = getattr(module, "__all__", None)
    if exported is not None:
        names = [str(attr) for attr in exported]
        own_only = False
    else:
        names = [attr for attr in vars(module) if not attr.startswith("_")]
        own_only = True

    for attr in names:
        value = getattr(module, attr, None)
        if not callable(value):
            continue
        if own_only and getattr(value, "__module__", None) != module.__name__:
            continue
        return Found(attr, value)

    return NotFound(tried=(name, DEFAULT_EXPORT, "first exported callable"))


class RepairLoop:
    """Run a target module until its entry point succeeds or rounds run out."""

    def __init__(
        self,
        fix_tool: FixTool,
        root_path: Path,
        max_rounds: int = 5,
        entry_point: str = DEFAULT_ENTRY_POINT,
        loader: Optional[ArtifactLoader] = None,
    ):
        """Initialize the loop.

        Args:
            fix_tool: Retrieves context, requests fixes and applies them
            root_path: Project root (relative targets resolve against it)
            max_rounds: Maximum number of rounds
            entry_point: Preferred name of the validating callable
            loader: Module loader (a fresh one by default)
        """
        self.fix_tool = fix_tool
        self.root_path = Path(root_path)
        self.max_rounds = max_rounds
        self.entry_point = entry_point
        self.loader = loader or ArtifactLoader()

    def _relative(self, path: Path) -> str:
        try:
            return os.path.relpath(path, self.root_path)
        except ValueError:
            return str(path)

    async def _ensure_index(self, warnings: List[str]) -> None:
        try:
            await self.fix_tool.search.get_snapshot()
        except Exception as e:
            message = f"Index unavailable: {describe_error(e)}"
            warnings.append(message)
            logger.warning(message)

    async def _request_fix(
        self,
        path: Path,
        phase: str,
        error: str,
        trace: str,
        extra_context: str,
        warnings: List[str],
    ) -> Optional[FixOutcome]:
        """Ask for and apply a fix; service failures become warnings."""
        try:
            file_content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeError):
            file_content = ""

        context_parts = [extra_context] if extra_context else []
        if trace:
            context_parts.append(f"Traceback:\n{trace}")
        if file_content:
            context_parts.append(f"File content:\n{file_content}")

        if phase == PHASE_LOAD:
            message = f"{error}. Fix all syntax issues and make the file importable."
        elif phase == PHASE_RUNTIME:
            message = f"Fix all syntax, runtime, and logic issues related to this error: {error}."
        else:
            message = error

        try:
            return await self.fix_tool.help(
                message, "\n".join(context_parts), [self._relative(path)]
            )
        except Exception as e:
            warning = f"Fix request failed: {describe_error(e)}"
            warnings.append(warning)
            logger.warning(warning)
            return None

    async def run(self, target: Union[str, Path], extra_context: str = "") -> RepairResult:
        """Repair a module file until its entry point runs without raising.

        Args:
            target: Module path, absolute or relative to the project root
            extra_context: Free text forwarded with every fix request

        Returns:
            Success with the entry point's return value, or failure with the
            last error; both carry the full round history. Never raises.
        """
        path = Path(target)
        if not path.is_absolute():
            path = self.root_path / path
        relative = self._relative(path)

        history: List[RoundRecord] = []
        warnings: List[str] = []
        applier_warnings_start = len(self.fix_tool.applier.warnings)
        last_error = "unknown"
        rounds = 0

        await self._ensure_index(warnings)

        for round_number in range(1, self.max_rounds + 1):
            rounds = round_number
            trace = ""

            try:
                module = self.loader.reload(path)
            except (Exception, SystemExit) as e:
                phase, error = PHASE_LOAD, describe_error(e)
                trace = traceback.format_exc()
                logger.info(f"[round {round_number}] Import failed: {error}")
            else:
                resolved = resolve_entry_point(module, self.entry_point)
                if isinstance(resolved, NotFound):
                    self.loader.release(module)
                    phase = PHASE_ENTRY_POINT
                    error = (
                        f"No runnable export found in {relative} "
                        f"(tried {', '.join(repr(name) for name in resolved.tried)})"
                    )
                    logger.info(f"[round {round_number}] {error}")
                else:
                    try:
                        out = await call_entry_point(resolved.func)
                    except (Exception, SystemExit) as e:
                        phase, error = PHASE_RUNTIME, describe_error(e)
                        trace = traceback.format_exc()
                        logger.info(f"[round {round_number}] Runtime error: {error}")
                    else:
                        logger.info(f"[round {round_number}] {relative}:{resolved.name}() succeeded")
                        warnings.extend(self.fix_tool.applier.warnings[applier_warnings_start:])
                        return RepairResult(
                            ok=True,
                            rounds=round_number,
                            out=out,
                            history=history,
                            warnings=warnings,
                        )
                    finally:
                        self.loader.release(module)

            last_error = error
            fix = await self._request_fix(path, phase, error, trace, extra_context, warnings)
            history.append(RoundRecord(round=round_number, phase=phase, error=error, fix=fix))

            if fix is None or fix.applied == 0:
                logger.warning(f"[round {round_number}] No edits applied, stopping early")
                break

        warnings.extend(self.fix_tool.applier.warnings[applier_warnings_start:])
        return RepairResult(
            ok=False,
            rounds=rounds,
            error=last_error,
            history=history,
            warnings=warnings,
        )
