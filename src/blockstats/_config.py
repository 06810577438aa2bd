"""Process-wide defaults for the blockstats package.

Four settings govern every blockwise computation:

* ``ncores_max`` — upper bound accepted for ``ncores`` arguments.
* ``check_args`` — whether the O(n) value checks run (binary response,
  finite covariates, ``ncores <= ncores_max``).  Index and dimension
  checks always run.
* ``block_size_gb`` — memory budget (in GiB) from which block widths
  are derived.
* ``typecast_warning`` — whether lossy casts when writing a
  file-backed matrix emit a ``UserWarning``.

Resolution order (first match wins, per field):
    1. The ``options=`` argument of the call.
    2. Programmatic override via :func:`set_options`.
    3. ``BLOCKSTATS_NCORES_MAX``, ``BLOCKSTATS_CHECK_ARGS``,
       ``BLOCKSTATS_BLOCK_SIZE_GB`` and ``BLOCKSTATS_TYPECAST_WARNING``.
    4. Built-in defaults (``ncores_max`` is the detected core count).

Public functions never read this module's state mid-computation: they
call :func:`resolve_options` once on entry and thread the resulting
frozen :class:`Options` value through the pipeline.

Examples:
    Lower the block budget from the shell::

        export BLOCKSTATS_BLOCK_SIZE_GB=0.25

    Temporarily silence typecast warnings::

        with blockstats.options_context(typecast_warning=False):
            FileBackedMatrix.from_array(arr, "X.npy", dtype="float32")
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, fields, replace
from typing import Any

from joblib import cpu_count


@dataclass(frozen=True)
class Options:
    """Immutable snapshot of the process-wide defaults."""

    ncores_max: int
    check_args: bool = True
    block_size_gb: float = 1.0
    typecast_warning: bool = True

    def __post_init__(self) -> None:
        if int(self.ncores_max) < 1:
            raise ValueError(
                f"Option 'ncores_max' must be at least 1, got {self.ncores_max!r}."
            )
        if not float(self.block_size_gb) > 0:
            raise ValueError(
                f"Option 'block_size_gb' must be positive, got {self.block_size_gb!r}."
            )


_FIELD_NAMES = frozenset(f.name for f in fields(Options))

_ENV_VARS = {
    "ncores_max": "BLOCKSTATS_NCORES_MAX",
    "check_args": "BLOCKSTATS_CHECK_ARGS",
    "block_size_gb": "BLOCKSTATS_BLOCK_SIZE_GB",
    "typecast_warning": "BLOCKSTATS_TYPECAST_WARNING",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}

# Programmatic overrides set through set_options(); empty means none.
_overrides: dict[str, Any] = {}


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(
        f"Cannot interpret {raw!r} as a boolean for option '{name}'. "
        f"Use one of {sorted(_TRUE | _FALSE)}."
    )


def _coerce(name: str, value: Any) -> Any:
    """Convert *value* to the type of option *name*."""
    if name == "ncores_max":
        return int(value)
    if name == "block_size_gb":
        return float(value)
    if isinstance(value, str):
        return _parse_bool(name, value)
    return bool(value)


def _from_env() -> dict[str, Any]:
    found: dict[str, Any] = {}
    for name, var in _ENV_VARS.items():
        raw = os.environ.get(var, "").strip()
        if not raw:
            continue
        try:
            found[name] = _coerce(name, raw)
        except ValueError as exc:
            raise ValueError(f"Invalid value for {var}: {exc}") from None
    return found


def _check_names(kwargs: dict[str, Any]) -> None:
    unknown = set(kwargs) - _FIELD_NAMES
    if unknown:
        raise ValueError(
            f"Unknown option(s) {sorted(unknown)}. Choose from: {sorted(_FIELD_NAMES)}"
        )


def get_options() -> Options:
    """Return the current process-wide :class:`Options`.

    Returns:
        Defaults, updated by environment variables, updated by any
        :func:`set_options` override.
    """
    values: dict[str, Any] = {"ncores_max": cpu_count()}
    values.update(_from_env())
    values.update(_overrides)
    return Options(**values)


def set_options(**kwargs: Any) -> None:
    """Override one or more process-wide defaults.

    Args:
        **kwargs: Any of ``ncores_max``, ``check_args``,
            ``block_size_gb``, ``typecast_warning``.

    Raises:
        ValueError: If a name is unknown or a value is invalid.
    """
    _check_names(kwargs)
    coerced = {k: _coerce(k, v) for k, v in kwargs.items()}
    # Validate the combination before committing.
    replace(get_options(), **coerced)
    _overrides.update(coerced)


def reset_options() -> None:
    """Drop every programmatic override."""
    _overrides.clear()


@contextmanager
def options_context(**kwargs: Any) -> Iterator[Options]:
    """Temporarily override defaults; the previous overrides are restored."""
    saved = dict(_overrides)
    try:
        set_options(**kwargs)
        yield get_options()
    finally:
        _overrides.clear()
        _overrides.update(saved)


def resolve_options(options: Options | None = None, **overrides: Any) -> Options:
    """Return the options a call should run with.

    Args:
        options: Explicit per-call options; ``None`` uses
            :func:`get_options`.
        **overrides: Field values that take precedence over *options*.
            ``None`` values are ignored.

    Returns:
        A frozen :class:`Options` value.
    """
    base = options if options is not None else get_options()
    given = {k: v for k, v in overrides.items() if v is not None}
    if not given:
        return base
    _check_names(given)
    return replace(base, **{k: _coerce(k, v) for k, v in given.items()})


__all__ = [
    "Options",
    "get_options",
    "options_context",
    "reset_options",
    "resolve_options",
    "set_options",
]
