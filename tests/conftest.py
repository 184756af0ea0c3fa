"""
Shared fixtures.

Every test starts with an empty global event bus and no cached module
instances, and ``write_module`` lays out a module directory on disk.
"""

import json
import textwrap
from pathlib import Path

import pytest

from modhub.core.event_bus import get_event_bus
from modhub.modules import loader


@pytest.fixture(autouse=True)
def clean_global_state():
    get_event_bus().clear()
    loader.clear_cache()
    yield
    get_event_bus().clear()
    loader.clear_cache()


DEFAULT_BODY = """
from modhub.modules.base import BaseModule


class {class_name}(BaseModule):
    pass
"""


def make_module(
    root: Path,
    name: str,
    version: str = "1.0.0",
    body: str | None = None,
    **manifest_fields,
) -> Path:
    """Create ``root/name`` with a module.json and a main.py."""
    module_dir = root / name
    module_dir.mkdir(parents=True, exist_ok=True)

    manifest = {"name": name, "version": version, "main": "main.py", **manifest_fields}
    (module_dir / "module.json").write_text(json.dumps(manifest), encoding="utf-8")

    class_name = "".join(part.capitalize() for part in name.replace("-", "_").split("_")) or "Module"
    source = body if body is not None else DEFAULT_BODY.format(class_name=class_name)
    (module_dir / "main.py").write_text(textwrap.dedent(source), encoding="utf-8")
    return module_dir


@pytest.fixture
def write_module():
    return make_module
