#!/usr/bin/env python3
"""
Code Snapshot - Directory Snapshot Builder for LLMs

Walks a project directory, drops ignored, sensitive and binary files, and
writes one text file holding a directory listing followed by the contents
of every kept file.

Architecture:
    CLI Args → Configuration → Ignore Rules → Tree Walk (structure pass,
    content pass) → Formatting → Output
"""

from __future__ import annotations

import argparse
import logging
import os
import posixpath
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import (
    Dict,
    FrozenSet,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import pathspec
import pyperclip

# =============================================================================
# VERSION MANAGEMENT
# =============================================================================

__version__ = "1.0.0"


def get_version() -> str:
    """Get version from package metadata or fallback to hardcoded."""
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("codesnapshot")
    except PackageNotFoundError:
        return __version__


# =============================================================================
# CONSTANTS
# =============================================================================

class Defaults:
    """Default configuration values."""
    OUTPUT_NAME = "output.txt"
    BINARY_SNIFF_BYTES = 8000
    BINARY_RATIO = 0.30
    INDENT_STEP = 2


class ExcludedDirs:
    """Directories to exclude by default."""
    DIRS: Tuple[str, ...] = (
        # Version control
        ".git", ".hg", ".svn", ".bzr",
        # Dependencies
        "node_modules", "vendor", "bower_components",
        # Build outputs and caches
        "__pycache__", "dist", "build", ".cache", "out", "target",
        ".next", ".nuxt",
        # Editors
        ".idea", ".vscode", ".history",
        ".sass-cache", ".pytest_cache",
    )


class SensitiveFiles:
    """Credential, database, key and certificate files never emitted."""
    PATTERNS: Tuple[str, ...] = (
        ".env", ".npmrc", ".yarnrc", ".credentials", ".aws", ".gcp", ".azure",
        "*.sqlite", "*.sqlite3", "*.db", "*.db-journal", "*.sql", "*.bak",
        "*.pem", "*.key", "*.crt", "*.csr", "secrets.json",
    )


class ExcludedFiles:
    """OS junk, logs, backups and temp files."""
    PATTERNS: Tuple[str, ...] = (
        ".DS_Store", "Thumbs.db", "*.log", "*.log.*",
        "*.bak", "*.swp", "*.tmp", "*~",
        "package-lock.json", "package.json",
    )


# Files of the primary scripting language get comment stripping
SCRIPT_EXTENSIONS: FrozenSet[str] = frozenset({".js", ".mjs", ".cjs", ".jsx"})

# Used only when the extension filter is active and no --ext was given
TARGET_EXTENSIONS: FrozenSet[str] = frozenset({".html", ".js"})


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class SnapshotConfig:
    """Immutable snapshot configuration."""
    root_dir: Path
    output_file: Path

    # Content processing
    strip_whitespace: bool = False
    strip_comments: bool = False

    # Extension filter
    process_all_files: bool = True
    target_extensions: FrozenSet[str] = TARGET_EXTENSIONS
    script_extensions: FrozenSet[str] = SCRIPT_EXTENSIONS

    # Built-in rule lists, applied after .gitignore
    excluded_dirs: Tuple[str, ...] = ExcludedDirs.DIRS
    sensitive_files: Tuple[str, ...] = SensitiveFiles.PATTERNS
    excluded_files: Tuple[str, ...] = ExcludedFiles.PATTERNS
    extra_patterns: Tuple[str, ...] = ()

    copy_to_clipboard: bool = False

    @classmethod
    def default(cls, root_dir: Path) -> SnapshotConfig:
        """Reference configuration: every file, no stripping, output.txt in root."""
        root = Path(root_dir).resolve()
        output = root / Defaults.OUTPUT_NAME
        return cls(
            root_dir=root,
            output_file=output,
            extra_patterns=output_exclusion(root, output),
        )

    def builtin_patterns(self) -> List[str]:
        """Built-in exclusions in precedence order."""
        return [
            *self.excluded_dirs,
            *self.sensitive_files,
            *self.excluded_files,
            *self.extra_patterns,
        ]


def output_exclusion(root: Path, output_file: Path) -> Tuple[str, ...]:
    """Anchored pattern keeping the snapshot out of its own next run."""
    try:
        rel = output_file.relative_to(root)
    except ValueError:
        return ()
    return ("/" + rel.as_posix(),)


class ConfigBuilder:
    """Builds SnapshotConfig from CLI arguments."""

    @staticmethod
    def from_args(args: argparse.Namespace) -> SnapshotConfig:
        """Create config from parsed arguments."""
        root = Path(args.root_dir).resolve()
        output = Path(args.output).resolve() if args.output else root / Defaults.OUTPUT_NAME

        extensions = ConfigBuilder._normalize_extensions(args.ext or [])

        return SnapshotConfig(
            root_dir=root,
            output_file=output,
            strip_whitespace=args.strip_whitespace,
            strip_comments=args.strip_comments,
            process_all_files=not extensions,
            target_extensions=extensions or TARGET_EXTENSIONS,
            extra_patterns=output_exclusion(root, output),
            copy_to_clipboard=args.copy,
        )

    @staticmethod
    def _normalize_extensions(raw: Sequence[str]) -> FrozenSet[str]:
        """Lower-case extensions and ensure a leading dot."""
        return frozenset(
            (ext if ext.startswith(".") else f".{ext}").lower()
            for ext in raw
            if ext
        )


# =============================================================================
# IGNORE RULES
# =============================================================================

class IgnoreRules:
    """Ordered gitignore-style rule set anchored at a base directory.

    Evaluation follows gitignore precedence: the last matching pattern wins,
    ``!`` re-includes and a trailing ``/`` restricts a pattern to directories.
    The set is built once and never mutated.
    """

    def __init__(self, base_dir: Path, patterns: Sequence[str]):
        self.base_dir = Path(base_dir)
        self.patterns: Tuple[str, ...] = tuple(patterns)
        self._spec = pathspec.GitIgnoreSpec.from_lines(self.patterns)

    def ignores(self, relative_path: Union[str, Path], is_dir: bool = False) -> bool:
        """Check a path relative to the base directory."""
        rel = str(relative_path).replace(os.sep, "/")
        if rel in ("", "."):
            return False
        if is_dir and not rel.endswith("/"):
            rel += "/"
        return self._spec.match_file(rel)

    def relative(self, path: Path) -> str:
        """Forward-slash path of ``path`` relative to the base directory."""
        return Path(os.path.relpath(path, self.base_dir)).as_posix()


def load_ignore_rules(
    root: Path, config: Optional[SnapshotConfig] = None
) -> IgnoreRules:
    """Combine .gitignore with the built-in exclusion lists."""
    root = Path(root).resolve()
    config = config or SnapshotConfig.default(root)

    patterns: List[str] = []
    gitignore = root / ".gitignore"
    try:
        patterns.extend(gitignore.read_text(encoding="utf-8").splitlines())
    except FileNotFoundError:
        pass
    except (OSError, UnicodeDecodeError) as e:
        logging.debug(f"Could not read .gitignore, treating as empty: {e}")

    patterns.extend(config.builtin_patterns())
    return IgnoreRules(root, patterns)


# =============================================================================
# BINARY DETECTION
# =============================================================================

def looks_binary(sample: bytes) -> bool:
    """Classify a leading chunk of a file as binary."""
    if b"\x00" in sample:
        return True
    if not sample:
        return False
    # Bytes 7-14 (bell, backspace, tab, newlines, form feed...) count as text
    non_text = sum(1 for b in sample if b < 7 or 14 < b < 32)
    return non_text / len(sample) > Defaults.BINARY_RATIO


def is_binary_file(path: Path) -> bool:
    """Read the first bytes of ``path`` and classify them."""
    with open(path, "rb") as f:
        return looks_binary(f.read(Defaults.BINARY_SNIFF_BYTES))


# =============================================================================
# TEXT NORMALIZATION
# =============================================================================

# Script-language "any char but a line terminator" and whitespace classes;
# Python's `.` and `\s` cover a different set.
LINE_CHAR = r"[^\n\r\u2028\u2029]"
SCRIPT_WHITESPACE = (
    "\t\n\v\f\r \u00a0\u1680\u2000\u2001\u2002\u2003\u2004\u2005"
    "\u2006\u2007\u2008\u2009\u200a\u2028\u2029\u202f\u205f\u3000\ufeff"
)

STRING_LITERAL_RE = re.compile(
    r"""(['"`])(?:(?!\1|\\)""" + LINE_CHAR + r"|\\" + LINE_CHAR + r")*\1"
)
REGEX_LITERAL_RE = re.compile(r"/(?!\*)[^/\\\n]+/[gimsuy]*")
LINE_COMMENT_RE = re.compile(r"//" + LINE_CHAR + "*")
BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)

PLACEHOLDER = "\x00PRESERVED_{}\x00"
PLACEHOLDER_RE = re.compile(r"\x00PRESERVED_(\d+)\x00")

WHITESPACE_RE = re.compile("[" + re.escape(SCRIPT_WHITESPACE) + "]+")


def strip_comments(text: str) -> str:
    """
    Remove ``//`` and ``/* */`` comments from script source.

    String and regex literals are swapped for placeholders first so that
    comment markers inside them survive. Regex literals are recognised by a
    pattern, not a lexer, so a division such as ``a / b / c`` is protected as
    if it were a regex.
    """
    preserved: List[str] = []

    def preserve(match: re.Match[str]) -> str:
        preserved.append(match.group(0))
        return PLACEHOLDER.format(len(preserved) - 1)

    protected = STRING_LITERAL_RE.sub(preserve, text)
    protected = REGEX_LITERAL_RE.sub(preserve, protected)

    protected = LINE_COMMENT_RE.sub("", protected)
    protected = BLOCK_COMMENT_RE.sub("", protected)

    # A regex literal may have swallowed a string placeholder
    def restore(match: re.Match[str]) -> str:
        return PLACEHOLDER_RE.sub(restore, preserved[int(match.group(1))])

    return PLACEHOLDER_RE.sub(restore, protected)


def collapse_whitespace(text: str) -> str:
    """Collapse every whitespace run to one space and trim."""
    return WHITESPACE_RE.sub(" ", text).strip(SCRIPT_WHITESPACE)


# =============================================================================
# DATA MODELS
# =============================================================================

@dataclass(frozen=True)
class FileEntry:
    """A kept text file."""
    name: str
    absolute_path: Path
    relative_path: str
    size_bytes: int
    last_modified: float


@dataclass
class DirectoryNode:
    """A directory; children keep traversal order."""
    name: str
    relative_path: str
    children: Dict[str, Node] = field(default_factory=dict)

    def files(self) -> Iterator[FileEntry]:
        """All file entries below this node, depth first."""
        for child in self.children.values():
            if isinstance(child, FileEntry):
                yield child
            else:
                yield from child.files()


Node = Union[FileEntry, DirectoryNode]


# =============================================================================
# TREE WALKER
# =============================================================================

class TreeWalker:
    """
    Recursive depth-first walk producing either the structure tree or the
    concatenated file contents.

    Both passes go through ``_iter_kept`` so they always agree on which
    entries survive. I/O errors are not caught here.
    """

    def __init__(self, config: SnapshotConfig, rules: IgnoreRules):
        self.config = config
        self.rules = rules

    def build_tree(self, directory: Optional[Path] = None) -> DirectoryNode:
        """Structure pass."""
        start = Path(directory) if directory is not None else self.config.root_dir
        return self._build_node(start, "", frozenset({os.path.realpath(start)}))

    def build_text(self, directory: Optional[Path] = None) -> str:
        """Content pass."""
        start = Path(directory) if directory is not None else self.config.root_dir
        return "".join(self._iter_blocks(start, "", frozenset({os.path.realpath(start)})))

    def _build_node(
        self, directory: Path, relative: str, ancestors: FrozenSet[str]
    ) -> DirectoryNode:
        node = DirectoryNode(name=directory.name, relative_path=relative)
        for path, is_dir in self._iter_kept(directory, ancestors):
            child_rel = posixpath.join(relative, path.name)
            if is_dir:
                node.children[path.name] = self._build_node(
                    path, child_rel, ancestors | {os.path.realpath(path)}
                )
                continue

            stats = path.stat()
            node.children[path.name] = FileEntry(
                name=path.name,
                absolute_path=path,
                relative_path=child_rel,
                size_bytes=stats.st_size,
                last_modified=stats.st_mtime,
            )
        return node

    def _iter_blocks(
        self, directory: Path, relative: str, ancestors: FrozenSet[str]
    ) -> Iterator[str]:
        for path, is_dir in self._iter_kept(directory, ancestors):
            child_rel = posixpath.join(relative, path.name)
            if is_dir:
                yield from self._iter_blocks(
                    path, child_rel, ancestors | {os.path.realpath(path)}
                )
                continue

            content = self._read_content(path)
            yield f"File: {path.name}\nPath: {child_rel}\n\n{content}\n\n"

    def _iter_kept(
        self, directory: Path, ancestors: FrozenSet[str]
    ) -> Iterator[Tuple[Path, bool]]:
        """Yield (path, is_dir) for every entry that passes all filters.

        ``ancestors`` holds the real paths of the directories above, so a
        symlink pointing back up the tree is not descended again.
        """
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)

        for entry in entries:
            path = Path(entry.path)
            is_dir = entry.is_dir()
            rel = self.rules.relative(path)

            if self.rules.ignores(rel, is_dir=is_dir):
                logging.debug(f"Ignored {rel}")
                continue

            if is_dir:
                if entry.is_symlink() and os.path.realpath(path) in ancestors:
                    logging.debug(f"Not following symlink cycle {rel}")
                    continue
                yield path, True
                continue

            if not entry.is_file():
                if entry.is_symlink():
                    # Dangling link: raises FileNotFoundError
                    path.stat()
                logging.debug(f"Skipping special file {rel}")
                continue

            if not self._wants_file(entry.name):
                continue

            if is_binary_file(path):
                logging.warning(f"Skipping binary file: {rel}")
                continue

            yield path, False

    def _wants_file(self, name: str) -> bool:
        """Apply the extension filter."""
        if self.config.process_all_files:
            return True
        return Path(name).suffix.lower() in self.config.target_extensions

    def _read_content(self, path: Path) -> str:
        """Read a file and apply the configured normalization."""
        with open(path, encoding="utf-8", errors="replace", newline="") as f:
            content = f.read()

        # Collapsing first means the first // swallows the rest of the file
        if self.config.strip_whitespace:
            content = collapse_whitespace(content)

        if self.config.strip_comments and path.suffix.lower() in self.config.script_extensions:
            content = strip_comments(content)

        return content


# =============================================================================
# FORMATTER
# =============================================================================

def format_timestamp(timestamp: float) -> str:
    """Local ISO-8601 time with offset, second precision."""
    return datetime.fromtimestamp(timestamp).astimezone().isoformat(timespec="seconds")


def format_structure(node: DirectoryNode, indent: int = 0) -> str:
    """Render a directory node as an indented listing, in insertion order."""
    pad = " " * indent
    lines: List[str] = []

    for name, child in node.children.items():
        if isinstance(child, FileEntry):
            lines.append(
                f"{pad}{name} (Path: {child.relative_path}, "
                f"Size: {child.size_bytes} bytes, "
                f"Last Modified: {format_timestamp(child.last_modified)})\n"
            )
        else:
            lines.append(f"{pad}{name}/\n")
            lines.append(format_structure(child, indent + Defaults.INDENT_STEP))

    return "".join(lines)


# =============================================================================
# SNAPSHOT
# =============================================================================

def build_snapshot(
    config: SnapshotConfig, rules: Optional[IgnoreRules] = None
) -> str:
    """Run both passes and assemble the full snapshot text."""
    rules = rules or load_ignore_rules(config.root_dir, config)
    walker = TreeWalker(config, rules)

    structure = format_structure(walker.build_tree())
    contents = walker.build_text()

    return f"Directory Structure:\n{structure}\nFile Contents:\n{contents}"


# =============================================================================
# OUTPUT WRITER
# =============================================================================

class OutputWriter:
    """Handles output to the snapshot file and the clipboard."""

    @staticmethod
    def write_file(content: str, path: Path) -> None:
        """Write the snapshot; errors propagate."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    @staticmethod
    def copy_to_clipboard(content: str) -> bool:
        """Copy to clipboard."""
        try:
            pyperclip.copy(content)
        except pyperclip.PyperclipException as e:
            print(f"❌ Clipboard error: {e}", file=sys.stderr)
            return False
        print(f"✅ {len(content):,} chars copied to clipboard", file=sys.stderr)
        return True


def write_snapshot(config: SnapshotConfig) -> str:
    """Build the snapshot and persist it. Nothing is written on failure."""
    content = build_snapshot(config)
    OutputWriter.write_file(content, config.output_file)
    return content


# =============================================================================
# CLI PARSER
# =============================================================================

def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="codesnapshot",
        description="Snapshot a directory tree and its text files into one file for LLMs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  codesnapshot                       # Snapshot current dir into ./output.txt
  codesnapshot ./project             # Snapshot a specific directory
  codesnapshot -o context.txt        # Write somewhere else
  codesnapshot --ext js --ext html   # Only .js and .html files
  codesnapshot --strip-comments      # Drop comments from script files
        """,
    )

    parser.add_argument(
        "root_dir",
        nargs="?",
        type=Path,
        default=Path("."),
        help="Directory to snapshot (default: current)",
    )

    out = parser.add_argument_group("Output Options")
    out.add_argument("-o", "--output", metavar="FILE", help="Output file (default: <root>/output.txt)")
    out.add_argument("--copy", action="store_true", help="Also copy the snapshot to the clipboard")

    proc = parser.add_argument_group("Content Processing")
    proc.add_argument("--strip-whitespace", action="store_true", help="Collapse whitespace runs to single spaces")
    proc.add_argument("--strip-comments", action="store_true", help="Remove comments from script files")

    filt = parser.add_argument_group("Filtering")
    filt.add_argument("--ext", action="append", metavar="EXT", help="Only include files with this extension (repeatable)")

    meta = parser.add_argument_group("Information")
    meta.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    meta.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")

    return parser


# =============================================================================
# MAIN
# =============================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    if not args.root_dir.is_dir():
        print(f"❌ Directory not found: {args.root_dir}", file=sys.stderr)
        return 1

    try:
        config = ConfigBuilder.from_args(args)
        content = write_snapshot(config)
        print(f"✅ Folder structure and file contents have been saved to {config.output_file}", file=sys.stderr)

        if config.copy_to_clipboard:
            return 0 if OutputWriter.copy_to_clipboard(content) else 1
        return 0

    except KeyboardInterrupt:
        print("\n⚠️ Interrupted", file=sys.stderr)
        return 130
    except Exception as e:
        logging.error(f"Error processing directory: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
