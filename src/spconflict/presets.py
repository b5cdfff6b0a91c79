"""Named option presets.

Presets only set option values; they carry no behaviour of their own.

* ``silent`` -- log conflicts, never notify or block.
* ``notify`` -- inform the user but never block a save.
* ``strict`` -- block the save until the conflict is resolved.
* ``realtime`` -- notify and poll every 30 seconds.
* ``form_customizer`` -- notify with inline positioning.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from spconflict.options import DEFAULT_POLLING_INTERVAL_MS, ConflictDetectionOptions

PRESETS: Mapping[str, ConflictDetectionOptions] = MappingProxyType(
    {
        "silent": ConflictDetectionOptions(
            show_notification=False,
            block_save=False,
            log_conflicts=True,
        ),
        "notify": ConflictDetectionOptions(
            show_notification=True,
            block_save=False,
        ),
        "strict": ConflictDetectionOptions(
            show_notification=True,
            block_save=True,
        ),
        "realtime": ConflictDetectionOptions(
            check_interval_ms=DEFAULT_POLLING_INTERVAL_MS,
            show_notification=True,
            block_save=False,
        ),
        "form_customizer": ConflictDetectionOptions(
            show_notification=True,
            block_save=False,
            notification_position="inline",
        ),
    }
)

_ALIASES: dict[str, str] = {"formCustomizer": "form_customizer"}


def get_preset(name: str, **overrides: Any) -> ConflictDetectionOptions:
    """Return the preset called *name*, optionally with *overrides* applied.

    Raises
    ------
    KeyError
        If *name* is not a known preset.
    """
    key = _ALIASES.get(name, name)
    try:
        preset = PRESETS[key]
    except KeyError:
        raise KeyError(
            f"Unknown preset {name!r}; expected one of {sorted(PRESETS)}"
        ) from None
    return preset.merged(**overrides) if overrides else preset


def resolve_options(
    options: ConflictDetectionOptions | Mapping[str, Any] | str | None,
) -> ConflictDetectionOptions:
    """Turn any accepted options argument into a :class:`ConflictDetectionOptions`.

    * ``None`` -- the defaults.
    * a :class:`ConflictDetectionOptions` -- used as is.
    * a preset name -- see :func:`get_preset`.
    * a mapping -- overrides applied on top of the defaults.
    """
    if options is None:
        return ConflictDetectionOptions()
    if isinstance(options, ConflictDetectionOptions):
        return options
    if isinstance(options, str):
        return get_preset(options)
    if isinstance(options, Mapping):
        return ConflictDetectionOptions(**options)
    raise TypeError(
        f"options must be ConflictDetectionOptions, a mapping, a preset name or None, "
        f"got {type(options).__name__}"
    )
