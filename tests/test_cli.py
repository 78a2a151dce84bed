import os
from pathlib import Path

import pyperclip
import pytest

import codesnapshot
from codesnapshot import ConfigBuilder, TARGET_EXTENSIONS, create_parser, main

from conftest import make_tree


def test_main_writes_output_in_root(project: Path):
    make_tree(project, {"a.txt": "hello", "sub": {"b.txt": "world"}})

    assert main([str(project)]) == 0

    output = (project / "output.txt").read_text(encoding="utf-8")
    assert output.startswith("Directory Structure:\n")
    assert "File: b.txt\nPath: sub/b.txt\n\nworld\n\n" in output


def test_main_defaults_to_working_directory(project: Path, monkeypatch):
    make_tree(project, {"a.txt": "hello"})
    monkeypatch.chdir(project)

    assert main([]) == 0
    assert (project / "output.txt").is_file()


def test_rerun_does_not_snapshot_previous_output(project: Path):
    make_tree(project, {"a.txt": "hello"})
    assert main([str(project)]) == 0
    first = (project / "output.txt").read_text(encoding="utf-8")

    assert main([str(project)]) == 0
    assert (project / "output.txt").read_text(encoding="utf-8") == first


def test_custom_output_and_flags(project: Path, tmp_path: Path):
    make_tree(project, {"a.js": "go(); // c\n", "b.md": "# doc"})
    target = tmp_path / "out" / "snap.txt"

    rc = main([str(project), "-o", str(target), "--strip-comments", "--strip-whitespace", "--ext", "JS"])

    assert rc == 0
    text = target.read_text(encoding="utf-8")
    assert "File: a.js\nPath: a.js\n\ngo(); \n\n" in text
    assert "b.md" not in text
    assert not (project / "output.txt").exists()


def test_missing_root_fails(tmp_path: Path):
    assert main([str(tmp_path / "missing")]) == 1


def test_fatal_error_writes_nothing(project: Path, monkeypatch, caplog):
    make_tree(project, {"a.txt": "a"})

    def boom(path):
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr(codesnapshot, "is_binary_file", boom)

    assert main([str(project)]) == 1
    assert not (project / "output.txt").exists()
    assert any("Error processing directory" in r.getMessage() for r in caplog.records)


def test_copy_to_clipboard(project: Path, monkeypatch):
    make_tree(project, {"a.txt": "hello"})
    copied = []
    monkeypatch.setattr(pyperclip, "copy", copied.append)

    assert main([str(project), "--copy"]) == 0
    assert copied == [(project / "output.txt").read_text(encoding="utf-8")]


def test_clipboard_failure_keeps_file(project: Path, monkeypatch):
    make_tree(project, {"a.txt": "hello"})

    def fail(_text):
        raise pyperclip.PyperclipException("no clipboard")

    monkeypatch.setattr(pyperclip, "copy", fail)

    assert main([str(project), "--copy"]) == 1
    assert (project / "output.txt").is_file()


def test_config_from_args(project: Path):
    args = create_parser().parse_args([str(project), "--ext", "py", "--ext", ".TS", "--ext", ""])
    config = ConfigBuilder.from_args(args)

    assert config.root_dir == project.resolve()
    assert config.output_file == project.resolve() / "output.txt"
    assert config.process_all_files is False
    assert config.target_extensions == frozenset({".py", ".ts"})
    assert config.extra_patterns == ("/output.txt",)
    assert not config.strip_comments and not config.strip_whitespace


def test_config_without_ext_processes_everything(project: Path, tmp_path: Path):
    args = create_parser().parse_args([str(project), "-o", str(tmp_path / "elsewhere.txt")])
    config = ConfigBuilder.from_args(args)

    assert config.process_all_files is True
    assert config.target_extensions == TARGET_EXTENSIONS
    assert config.extra_patterns == ()


def test_version_flag(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--version"])
    assert exc.value.code == 0
    assert "codesnapshot" in capsys.readouterr().out


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_dangling_symlink_aborts_run(project: Path):
    make_tree(project, {"a.txt": "a"})
    os.symlink(project / "vanished.txt", project / "link.txt")

    assert main([str(project)]) == 1
    assert not (project / "output.txt").exists()
