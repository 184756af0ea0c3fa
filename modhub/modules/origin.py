"""
Module origin flags.

An origin says where a module may legitimately be sourced from. Flags
combine: a module bundled on disk and also sold on the marketplace is
``Origin.DISK | Origin.ADDONS_SERVICE``.
"""

from enum import IntFlag


class Origin(IntFlag):
    DISK = 1
    ADDONS_MUST_HAVE = 2
    ADDONS_SERVICE = 4
    ADDONS_NATIVE = 8
    ADDONS_NATIVE_ALL = 16
    ADDONS_CUSTOMER = 32
    ADDONS_ALL = 62
    ALL = 63

    @classmethod
    def parse(cls, names: list[str] | str | None) -> "Origin":
        """
        Build an Origin from manifest names such as ["disk", "addons_service"].

        Raises:
            ValueError: On an unknown origin name
        """
        if names is None:
            return cls.DISK
        if isinstance(names, str):
            names = [names]

        flags = cls(0)
        for name in names:
            key = name.strip().upper().replace("-", "_")
            if key not in cls.__members__:
                raise ValueError(f"Unknown module origin: {name}")
            flags |= cls[key]
        return flags or cls.DISK

    def allows_marketplace(self) -> bool:
        """True if any marketplace tier is part of this origin."""
        return bool(self & Origin.ADDONS_ALL)

    def is_disk_only(self) -> bool:
        return self == Origin.DISK
