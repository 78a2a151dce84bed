from pathlib import Path
from typing import Dict, Union

import pytest

from codesnapshot import SnapshotConfig

Layout = Dict[str, Union[str, bytes, "Layout"]]


def make_tree(root: Path, layout: Layout) -> None:
    """Create files and directories from a nested dict."""
    for name, value in layout.items():
        path = root / name
        if isinstance(value, dict):
            path.mkdir()
            make_tree(path, value)
        elif isinstance(value, bytes):
            path.write_bytes(value)
        else:
            path.write_text(value, encoding="utf-8")


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def config(project: Path) -> SnapshotConfig:
    return SnapshotConfig.default(project)
