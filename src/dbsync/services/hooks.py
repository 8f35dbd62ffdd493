"""Post-dump and post-import hooks.

A hook identifier names a Python object as ``package.module:attribute``
(or ``package.module.attribute``). Classes are instantiated and the
instance is called; functions are called directly. Post-dump hooks get
the local dump path, post-import hooks get no arguments.
"""

import importlib
from typing import Any, Callable, Optional

from dbsync.core.config import HookSetConfig
from dbsync.core.exceptions import HookError, SyncError
from dbsync.core.output import Console, console


def resolve_hook(identifier: str) -> Optional[Any]:
    """Import the object a hook identifier points to, or None."""
    if ":" in identifier:
        module_name, _, attr_path = identifier.partition(":")
    else:
        module_name, _, attr_path = identifier.rpartition(".")
    if not module_name or not attr_path:
        return None

    try:
        target: Any = importlib.import_module(module_name)
    except ImportError:
        return None

    for attr in attr_path.split("."):
        target = getattr(target, attr, None)
        if target is None:
            return None

    return target if callable(target) else None


class HookRunner:
    """Resolve and invoke configured hooks.

    Unknown identifiers are warned about and skipped. An exception raised
    by a hook stops the run as HookError.
    """

    def __init__(
        self,
        output: Optional[Console] = None,
        resolver: Callable[[str], Optional[Any]] = resolve_hook,
    ) -> None:
        self._console = output or console
        self._resolve = resolver

    def run(self, hooks: HookSetConfig, label: str, *args: Any) -> list[str]:
        """Run every resolvable hook of an enabled hook set.

        Args:
            hooks: Hook set configuration
            label: Name used in messages ("post dump script")
            *args: Arguments passed to each hook

        Returns:
            Identifiers that were executed
        """
        if not hooks.enabled:
            return []

        executed = []
        for identifier in hooks.scripts:
            hook = self._resolve(identifier)
            if hook is None:
                self._console.warn(f"{label.capitalize()} {identifier} not found.")
                continue

            self._console.step(f"Executing {label} {identifier}...")
            try:
                if isinstance(hook, type):
                    hook = hook()
                hook(*args)
            except SyncError:
                raise
            except Exception as e:
                raise HookError(
                    f"{label.capitalize()} {identifier} failed: {e}",
                    details=[f"{type(e).__name__}: {e}"],
                ) from e
            executed.append(identifier)

        return executed

    def run_post_dump(self, hooks: HookSetConfig, dump_path: Any) -> list[str]:
        return self.run(hooks, "post dump script", dump_path)

    def run_post_import(self, hooks: HookSetConfig) -> list[str]:
        return self.run(hooks, "post script")
