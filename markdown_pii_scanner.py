#!/usr/bin/env python3
"""
===================================================================
MARKDOWN PII SCANNER
===================================================================

PURPOSE:
    Scan a tree of text files (markdown by default) for personally
    identifiable information and other sensitive values before they
    are committed to git. Patterns are plain regular expressions,
    known false positives can be allowlisted, and whole paths can be
    pruned or ignored.

FEATURES:
    ✓ Ordered, user-defined regex patterns (.pii-patterns.yaml)
    ✓ Built-in patterns for phone numbers, user paths, AWS keys, API secrets
    ✓ Allowlist of known false positives (regex or literal text)
    ✓ Directory pruning and .pii-ignore glob rules (*, **, ?)
    ✓ Four report modes: listing, per-pattern counts, baseline delta, summary
    ✓ Baseline snapshots with atomic writes for ratcheting legacy repos
    ✓ Async I/O with a bounded worker pool and deterministic output
    ✓ Git pre-commit hook installation
    ✓ Structured JSON logging for CI pipelines

DETECTION SEMANTICS:
    1. Listing mode reports the FIRST occurrence of each pattern per line
    2. Count, summary and baseline modes count ALL non-overlapping
       occurrences of each pattern in the whole file
    3. An occurrence whose text matches any allowlist regex (anywhere in
       the text) is dropped in every mode

REQUIREMENTS:
    Install dependencies:
        python3 -m pip install -e .
    or
        pip install aiofiles tqdm PyYAML

USAGE:
    # List every match
    markdown-pii-scanner docs/

    # Per-pattern totals
    markdown-pii-scanner --count-only docs/

    # Ratchet against a stored baseline (seeds it on first run)
    markdown-pii-scanner --baseline .pii-baseline.json docs/

    # Directory rollup and top files
    markdown-pii-scanner --summary --exclude node_modules,archive .

    # Install as a git pre-commit hook
    markdown-pii-scanner --install-hook .

CONFIGURATION:
    Set via environment variables:
    - PII_SCANNER_MAX_CONCURRENT_FILES: Files scanned in parallel (default: 50)
    - PII_SCANNER_LOG_FORMAT: text|json (default: text)
    - PII_SCANNER_LOG_LEVEL: Initial log level (default: WARNING)
    - PII_SCANNER_PROGRESS: Show progress bars on stderr (default: false)
    - PII_SCANNER_CONTINUE_ON_ERROR: Skip unreadable directories instead of
      failing the run (default: false)

EXIT CODES:
    0   No PII found (or no new matches against the baseline)
    1   PII found (or new matches against the baseline)
    2   Usage or configuration error
    130 Interrupted by user (Ctrl+C)

===================================================================
"""
import argparse
import asyncio
import json
import logging
import os
import re
import shlex
import sys
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import aiofiles
import yaml
from tqdm import tqdm

# ===================================================================
# CONFIGURATION & CONSTANTS
# ===================================================================

VERSION = "2.1.0"

# Environment-driven configuration
MAX_CONCURRENT_FILES = int(os.environ.get("PII_SCANNER_MAX_CONCURRENT_FILES", "50"))
LOG_FORMAT = os.environ.get("PII_SCANNER_LOG_FORMAT", "text")  # text|json
LOG_LEVEL = os.environ.get("PII_SCANNER_LOG_LEVEL", "WARNING").upper()
SHOW_PROGRESS = os.environ.get("PII_SCANNER_PROGRESS", "false").lower() == "true"
CONTINUE_ON_ERROR = os.environ.get("PII_SCANNER_CONTINUE_ON_ERROR", "false").lower() == "true"

# File names looked up in the target directory and the repo root
CONFIG_FILE_NAME = ".pii-patterns.yaml"
IGNORE_FILE_NAME = ".pii-ignore"

# Suffix for the temporary file a baseline is written to before rename
BASELINE_TEMP_SUFFIX = ".tmp"

# Corpus selection defaults
DEFAULT_EXTENSIONS = ["md"]
ALWAYS_EXCLUDED_DIRS = frozenset({".git"})

# Summary report
SUMMARY_TOP_FILES = 10
ROOT_GROUP = "."

# Git integration
GIT_TIMEOUT_SECONDS = 10
HOOK_MARKER = "pii-scanner"

# Exit status
EXIT_CLEAN = 0
EXIT_FINDINGS = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130

# Built-in patterns, used when no configuration supplies any
BUILTIN_PATTERNS: List[Tuple[str, str, str]] = [
    ("GMAIL_ID", r"gmail:[0-9a-fA-F]+", "gmail:<hex> thread/message IDs"),
    ("PHONE", r"\+1[- ]?[0-9]{3}[- ]?[0-9]{3}[- ]?[0-9]{4}", "+1 North American phone numbers"),
    ("USER_PATH", r"/(Users|home)/[A-Za-z0-9._-]+", "/Users/<name> or /home/<name> paths"),
    ("CREDENTIALS_REF", r"\.credentials/", ".credentials/ directory references"),
    ("CHAT_USER_ID", r"(chat_id|user_id|userId|telegram.*id)[\"': ]+[0-9]{8,}",
     "Telegram/Discord numeric user IDs"),
    ("AWS_KEY", r"AKIA[0-9A-Z]{16}", "AWS access key IDs (AKIA...)"),
    ("API_SECRET", r"(api_key|api_secret|apikey|token|secret)[\"': =]+[A-Za-z0-9_\-]{20,}",
     "Generic API key/token/secret values"),
]


# ===================================================================
# LOGGING SETUP
# ===================================================================

class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add custom fields
        if hasattr(record, 'root'):
            log_data["root"] = record.root
        if hasattr(record, 'mode'):
            log_data["mode"] = record.mode
        if hasattr(record, 'match_count'):
            log_data["match_count"] = record.match_count

        return json.dumps(log_data)


def setup_logging(log_format: str = "text", level: str = "WARNING") -> logging.Logger:
    """
    Setup logging with either text or JSON format.

    Log records go to stderr; stdout is reserved for the scan report so
    that it can be piped or diffed.
    """
    logger = logging.getLogger(__name__)
    logger.setLevel(getattr(logging, level, logging.WARNING))

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)

    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    logger.addHandler(handler)
    return logger


logger = setup_logging(LOG_FORMAT, LOG_LEVEL)


# ===================================================================
# ERRORS
# ===================================================================

class PIIScannerError(Exception):
    """Base class for all scanner errors."""


class ConfigError(PIIScannerError):
    """
    A configuration-level failure: unreadable required file, malformed
    baseline or configuration, unreadable directory during a strict walk.

    Fatal for the run (exit status 2).
    """


class PatternCompileError(ConfigError):
    """A supplied pattern does not compile as a regular expression."""

    def __init__(self, pattern_name: str, regex: str, error: re.error):
        self.pattern_name = pattern_name
        self.regex = regex
        super().__init__(f"Invalid regex for pattern {pattern_name}: {error}")


class FileReadError(PIIScannerError):
    """A candidate file could not be opened or read. The engine skips it."""

    def __init__(self, path: Path, error: OSError):
        self.path = path
        super().__init__(f"Cannot read {path}: {error}")


class UsageError(PIIScannerError):
    """Invalid command-line usage."""


# ===================================================================
# PATTERNS
# ===================================================================

@dataclass(frozen=True)
class PatternDefinition:
    """A named, compiled detection pattern."""
    name: str
    pattern: "re.Pattern[str]"


class PatternSet:
    """
    Ordered, immutable collection of compiled patterns.

    Evaluation and output order follow definition order. Names need not
    be unique; duplicates are evaluated and reported independently.
    """

    def __init__(self, definitions: Iterable[PatternDefinition] = ()):
        self._definitions: Tuple[PatternDefinition, ...] = tuple(definitions)

    @classmethod
    def compile(cls, pairs: Iterable[Tuple[str, str]]) -> "PatternSet":
        """
        Compile (name, regex) pairs into a pattern set.

        Args:
            pairs: Ordered (name, regex string) pairs

        Returns:
            PatternSet in the given order

        Raises:
            PatternCompileError: if any regex fails to compile; no pattern
                set is produced in that case
        """
        definitions = []
        for name, regex in pairs:
            try:
                compiled = re.compile(regex)
            except re.error as e:
                raise PatternCompileError(name, regex, e) from e
            definitions.append(PatternDefinition(name=name, pattern=compiled))

        logger.debug(f"Compiled {len(definitions)} patterns")
        return cls(definitions)

    @classmethod
    def builtin(cls) -> "PatternSet":
        return cls.compile((name, regex) for name, regex, _ in BUILTIN_PATTERNS)

    @property
    def names(self) -> List[str]:
        return [definition.name for definition in self._definitions]

    def __iter__(self) -> Iterator[PatternDefinition]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def __getitem__(self, index: int) -> PatternDefinition:
        return self._definitions[index]


# ===================================================================
# ALLOWLIST
# ===================================================================

@dataclass(frozen=True)
class AllowlistRule:
    raw: str
    matcher: "re.Pattern[str]"

    @classmethod
    def parse(cls, raw: str) -> "AllowlistRule":
        """Compile as a regex, falling back to the escaped literal text."""
        try:
            matcher = re.compile(raw)
        except re.error as e:
            logger.debug(f"Allowlist entry {raw!r} is not a valid regex ({e}), matching it literally")
            matcher = re.compile(re.escape(raw))
        return cls(raw=raw, matcher=matcher)


class AllowlistFilter:
    """
    Suppresses known false positives.

    A matched fragment is suppressed when any rule matches anywhere in it.
    The same filter is applied in every scan mode.
    """

    def __init__(self, rules: Iterable[AllowlistRule] = ()):
        self.rules: Tuple[AllowlistRule, ...] = tuple(rules)

    @classmethod
    def from_strings(cls, entries: Iterable[str]) -> "AllowlistFilter":
        return cls(AllowlistRule.parse(entry) for entry in entries)

    def is_suppressed(self, fragment: str) -> bool:
        return any(rule.matcher.search(fragment) for rule in self.rules)


# ===================================================================
# PATH SELECTION
# ===================================================================

# Glob token -> regex fragment, longest token first. Every other
# character is matched literally.
GLOB_TOKENS: Tuple[Tuple[str, str], ...] = (
    ("**", ".*"),
    ("*", "[^/]*"),
    ("?", "[^/]"),
)


def glob_to_regex(glob: str) -> "re.Pattern[str]":
    """
    Translate an ignore glob into an anchored regex.

    `**` crosses directory separators, `*` and `?` do not. A single
    leading `/` is dropped; the result must match the whole string.

    Args:
        glob: Raw glob from an ignore rule

    Returns:
        Compiled regex anchored at both ends
    """
    if glob.startswith("/"):
        glob = glob[1:]

    fragments = []
    position = 0
    while position < len(glob):
        for token, fragment in GLOB_TOKENS:
            if glob.startswith(token, position):
                fragments.append(fragment)
                position += len(token)
                break
        else:
            fragments.append(re.escape(glob[position]))
            position += 1

    return re.compile(r"\A" + "".join(fragments) + r"\Z", re.DOTALL)


@dataclass(frozen=True)
class IgnoreRule:
    raw: str
    has_path_separator: bool
    matcher: "re.Pattern[str]"

    @classmethod
    def parse(cls, raw: str) -> "IgnoreRule":
        return cls(raw=raw, has_path_separator="/" in raw, matcher=glob_to_regex(raw))

    def matches(self, relative_path: str) -> bool:
        """Test a `/`-separated path relative to the scan root."""
        if self.has_path_separator:
            target = relative_path
        else:
            target = relative_path.rsplit("/", 1)[-1]
        return self.matcher.match(target) is not None


def normalize_extension(extension: str) -> str:
    return extension.strip().lstrip(".").lower()


def file_extension(name: str) -> str:
    """Lower-cased extension without the dot ('' for none or dotfiles)."""
    return os.path.splitext(name)[1][1:].lower()


def relative_posix(root: Path, path: Path) -> str:
    """Path relative to the scan root in canonical `/`-separated form."""
    try:
        return Path(path).relative_to(root).as_posix()
    except ValueError:
        return Path(os.path.relpath(path, root)).as_posix()


def display_path(path: Path) -> str:
    """Normalized path as shown in listing output (`./a.md` -> `a.md`)."""
    return os.path.normpath(str(path))


class PathFilter:
    """
    Selects the files to scan under a root directory.

    Directories named in the exclusion set (plus `.git`) are pruned during
    the walk. Regular files are kept when their extension is in the
    extension set and no ignore rule matches their relative path.
    Symbolic links are not followed.
    """

    def __init__(
        self,
        extensions: Iterable[str] = DEFAULT_EXTENSIONS,
        excluded_dirs: Iterable[str] = (),
        ignore_globs: Iterable[str] = (),
        continue_on_error: bool = CONTINUE_ON_ERROR
    ):
        self.extensions = frozenset(
            normalize_extension(ext) for ext in extensions if normalize_extension(ext)
        )
        self.excluded_dirs = frozenset(excluded_dirs) | ALWAYS_EXCLUDED_DIRS
        self.ignore_rules: Tuple[IgnoreRule, ...] = tuple(IgnoreRule.parse(glob) for glob in ignore_globs)
        self.continue_on_error = continue_on_error

    def walk(self, root: Path) -> List[Path]:
        """
        Collect candidate files in discovery order.

        Entries of each directory are visited sorted by name, depth first.

        Args:
            root: Directory to walk

        Returns:
            Candidate file paths (joined onto root)

        Raises:
            ConfigError: if a directory cannot be listed and
                continue_on_error is off
        """
        files: List[Path] = []

        def _collect(directory: Path) -> None:
            try:
                with os.scandir(directory) as iterator:
                    entries = sorted(iterator, key=lambda entry: entry.name)
            except OSError as e:
                if not self.continue_on_error:
                    raise ConfigError(f"Cannot read directory {directory}: {e}") from e
                logger.warning(f"Skipping unreadable directory {directory}: {e}")
                return

            for entry in entries:
                if entry.is_dir(follow_symlinks=False):
                    if entry.name in self.excluded_dirs:
                        logger.debug(f"Pruning excluded directory: {entry.path}")
                        continue
                    _collect(Path(entry.path))
                elif entry.is_file(follow_symlinks=False):
                    if file_extension(entry.name) in self.extensions:
                        files.append(Path(entry.path))

        _collect(Path(root))
        return files

    def is_ignored(self, relative_path: str) -> bool:
        return any(rule.matches(relative_path) for rule in self.ignore_rules)

    def filter(self, root: Path, files: Iterable[Path]) -> List[Path]:
        """Drop files matched by any ignore rule, preserving order."""
        kept = []
        for path in files:
            rel = relative_posix(root, path)
            if self.is_ignored(rel):
                logger.debug(f"Ignoring {rel}")
                continue
            kept.append(path)
        return kept

    def select(self, root: Path) -> List[Path]:
        root = Path(root)
        candidates = self.walk(root)
        selected = self.filter(root, candidates)
        logger.info(f"Selected {len(selected)} of {len(candidates)} candidate files under {root}")
        return selected

    async def select_async(self, root: Path) -> List[Path]:
        # Run in thread pool to avoid blocking event loop
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.select, Path(root))


# ===================================================================
# FILE READING
# ===================================================================

@dataclass(frozen=True)
class FileLines:
    """
    Lazy, finite line sequence of one file.

    Each iteration reopens the file, so iterating twice yields the same
    lines. Lines are split on `\\n`, `\\r\\n` or `\\r` and returned without
    their terminator; a trailing newline does not produce an empty line.
    """
    path: Path

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        try:
            async with aiofiles.open(self.path, 'r', encoding='utf-8', errors='replace', newline='') as f:
                async for raw in f:
                    yield raw.rstrip("\r\n")
        except OSError as e:
            raise FileReadError(self.path, e) from e


async def read_file_async(path: Path) -> str:
    """
    Read a whole file as text, line endings untouched.

    Raises:
        FileReadError: if the file cannot be opened or read
    """
    try:
        async with aiofiles.open(path, 'r', encoding='utf-8', errors='replace', newline='') as f:
            return await f.read()
    except OSError as e:
        raise FileReadError(path, e) from e


# ===================================================================
# SCAN RESULTS
# ===================================================================

class ScanMode(Enum):
    LISTING = "listing"
    COUNT = "count"
    SUMMARY = "summary"
    BASELINE = "baseline"


@dataclass(frozen=True)
class Match:
    pattern_name: str
    file_path: str
    line_number: Optional[int]
    text: str


@dataclass(frozen=True)
class ListingResult:
    matches: Tuple[Match, ...]

    @property
    def exit_code(self) -> int:
        return EXIT_FINDINGS if self.matches else EXIT_CLEAN


@dataclass(frozen=True)
class PatternCount:
    name: str
    count: int


@dataclass(frozen=True)
class CountResult:
    counts: Tuple[PatternCount, ...]

    @property
    def total(self) -> int:
        return sum(entry.count for entry in self.counts)

    @property
    def exit_code(self) -> int:
        return EXIT_FINDINGS if self.total > 0 else EXIT_CLEAN


def directory_group(relative_path: str) -> str:
    """
    Rollup key for a file: its first two directory segments.

    `a.md` -> `.`, `docs/a.md` -> `docs`, `docs/x/y/a.md` -> `docs/x`.
    """
    parts = relative_path.split("/")[:-1]
    if not parts:
        return ROOT_GROUP
    return "/".join(parts[:2])


def rank_counts(counts: Dict[str, int]) -> List[Tuple[str, int]]:
    """Sort by descending count, then ascending name."""
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))


@dataclass(frozen=True)
class SummaryResult:
    file_counts: Dict[str, int]
    directories: Tuple[Tuple[str, int], ...]
    top_files: Tuple[Tuple[str, int], ...]

    @classmethod
    def from_file_counts(cls, file_counts: Dict[str, int]) -> "SummaryResult":
        """
        Build the directory rollup and top-file ranking.

        Args:
            file_counts: Relative path -> match count (nonzero entries only)

        Returns:
            SummaryResult with ranked directories and top files
        """
        groups: Dict[str, int] = {}
        for rel, count in file_counts.items():
            key = directory_group(rel)
            groups[key] = groups.get(key, 0) + count

        return cls(
            file_counts=dict(file_counts),
            directories=tuple(rank_counts(groups)),
            top_files=tuple(rank_counts(file_counts)[:SUMMARY_TOP_FILES]),
        )

    @property
    def total(self) -> int:
        return sum(self.file_counts.values())

    @property
    def exit_code(self) -> int:
        return EXIT_FINDINGS if self.total > 0 else EXIT_CLEAN


class DeltaStatus(Enum):
    NO_CHANGE = "no change"
    NEW = "new"
    FEWER = "fewer"


@dataclass(frozen=True)
class BaselineDelta:
    name: str
    current: int
    baseline: int

    @property
    def delta(self) -> int:
        return self.current - self.baseline

    @property
    def status(self) -> DeltaStatus:
        if self.delta > 0:
            return DeltaStatus.NEW
        if self.delta < 0:
            return DeltaStatus.FEWER
        return DeltaStatus.NO_CHANGE

    @property
    def delta_text(self) -> str:
        if self.status is DeltaStatus.NEW:
            return f"+{self.delta} new"
        if self.status is DeltaStatus.FEWER:
            return f"-{abs(self.delta)} fewer"
        return DeltaStatus.NO_CHANGE.value


@dataclass(frozen=True)
class BaselineResult:
    counts: CountResult
    deltas: Tuple[BaselineDelta, ...]
    seeded: bool

    @property
    def failing(self) -> bool:
        # Absolute totals do not matter, only growth.
        return any(entry.delta > 0 for entry in self.deltas)

    @property
    def exit_code(self) -> int:
        return EXIT_FINDINGS if self.failing else EXIT_CLEAN


# ===================================================================
# BASELINE STORE
# ===================================================================

class BaselineStore:
    """Persisted per-pattern counts used for delta reporting."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[Dict[str, int]]:
        """
        Load the stored baseline.

        Returns:
            Pattern name -> count, or None if no baseline file exists yet

        Raises:
            ConfigError: if the file is unreadable, not JSON, or not a
                mapping of names to non-negative integers
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"baseline file is not valid JSON: {self.path} ({e})") from e
        except OSError as e:
            raise ConfigError(f"Cannot read baseline file {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"baseline file must contain a JSON object: {self.path}")

        record: Dict[str, int] = {}
        for name, value in data.items():
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigError(
                    f"baseline entry {name!r} in {self.path} is not a non-negative integer: {value!r}"
                )
            record[name] = value

        logger.info(f"Loaded baseline with {len(record)} patterns from {self.path}")
        return record

    def save(self, counts: CountResult) -> None:
        """
        Write current counts as the new baseline.

        The file is written to a temporary sibling and renamed into place,
        so an interrupted run never leaves a truncated baseline.

        Raises:
            ConfigError: if the baseline cannot be written
        """
        record = {entry.name: entry.count for entry in counts.counts}
        payload = json.dumps(record, indent=2)

        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=BASELINE_TEMP_SUFFIX, dir=self.path.parent
            )
        except OSError as e:
            raise ConfigError(f"Cannot write baseline file {self.path}: {e}") from e

        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(payload)
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, self.path)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise ConfigError(f"Cannot write baseline file {self.path}: {e}") from e

        logger.info(f"Baseline written to {self.path}")

    @staticmethod
    def compare(counts: CountResult, baseline: Dict[str, int]) -> Tuple[BaselineDelta, ...]:
        """Per-pattern deltas; patterns missing from the baseline count as 0."""
        return tuple(
            BaselineDelta(name=entry.name, current=entry.count, baseline=baseline.get(entry.name, 0))
            for entry in counts.counts
        )


# ===================================================================
# SCAN ENGINE
# ===================================================================

class ScanEngine:
    """
    Applies a PatternSet to an ordered file list.

    Files are processed by a bounded pool of asyncio workers. Results are
    merged in file-list order, never in completion order, so output is
    identical for any concurrency limit. Unreadable files are skipped.
    """

    def __init__(
        self,
        patterns: PatternSet,
        allowlist: Optional[AllowlistFilter] = None,
        max_concurrency: int = MAX_CONCURRENT_FILES
    ):
        if max_concurrency < 1:
            raise UsageError(f"max_concurrency must be at least 1, got {max_concurrency}")
        self.patterns = patterns
        self.allowlist = allowlist if allowlist is not None else AllowlistFilter()
        self.max_concurrency = max_concurrency

    # ---------------------------------------------------------------
    # Matching primitives
    # ---------------------------------------------------------------

    def match_line(self, line: str) -> List[Tuple[str, str]]:
        """First unsuppressed occurrence of each pattern on one line."""
        found = []
        for definition in self.patterns:
            match = definition.pattern.search(line)
            if match is None:
                continue
            text = match.group(0)
            if self.allowlist.is_suppressed(text):
                continue
            found.append((definition.name, text))
        return found

    def count_occurrences(self, content: str) -> List[int]:
        """Unsuppressed non-overlapping occurrences per pattern, in pattern order."""
        counts = []
        for definition in self.patterns:
            counts.append(sum(
                1 for match in definition.pattern.finditer(content)
                if not self.allowlist.is_suppressed(match.group(0))
            ))
        return counts

    # ---------------------------------------------------------------
    # Per-file workers
    # ---------------------------------------------------------------

    async def _list_file(self, path: Path) -> List[Match]:
        shown = display_path(path)
        matches = []
        line_number = 0
        async for line in FileLines(path):
            line_number += 1
            for name, text in self.match_line(line):
                matches.append(Match(pattern_name=name, file_path=shown, line_number=line_number, text=text))
        return matches

    async def _count_file(self, path: Path) -> List[int]:
        content = await read_file_async(path)
        return self.count_occurrences(content)

    async def _run_per_file(
        self,
        files: Sequence[Path],
        worker: Callable[[Path], Awaitable[Any]],
        desc: str
    ) -> List[Optional[Any]]:
        """
        Run worker on every file with bounded concurrency.

        Args:
            files: Files in discovery order
            worker: Coroutine function applied to each file
            desc: Progress bar label

        Returns:
            One entry per file in the same order; None for skipped files
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        with tqdm(total=len(files), desc=desc, unit="file", disable=not SHOW_PROGRESS) as pbar:

            async def _guarded(path: Path) -> Optional[Any]:
                async with semaphore:
                    try:
                        return await worker(path)
                    except FileReadError as e:
                        logger.debug(f"Skipping file: {e}")
                        return None
                    finally:
                        pbar.update(1)

            return await asyncio.gather(*(_guarded(path) for path in files))

    # ---------------------------------------------------------------
    # Modes
    # ---------------------------------------------------------------

    async def scan_listing(self, files: Sequence[Path]) -> ListingResult:
        """
        Listing mode: one Match per (line, pattern) first occurrence.

        Order is file discovery order, then line order, then pattern
        definition order.
        """
        per_file = await self._run_per_file(files, self._list_file, "Scanning files")
        matches: List[Match] = []
        for file_matches in per_file:
            if file_matches:
                matches.extend(file_matches)
        return ListingResult(matches=tuple(matches))

    async def scan_counts(self, files: Sequence[Path]) -> CountResult:
        """Count mode: all occurrences per pattern, summed across files."""
        totals = [0] * len(self.patterns)
        for per_pattern in await self._run_per_file(files, self._count_file, "Counting matches"):
            if per_pattern is None:
                continue
            for index, count in enumerate(per_pattern):
                totals[index] += count

        return CountResult(counts=tuple(
            PatternCount(name=definition.name, count=total)
            for definition, total in zip(self.patterns, totals)
        ))

    async def scan_summary(self, root: Path, files: Sequence[Path]) -> SummaryResult:
        """Summary mode: count-mode totals kept per file, then rolled up."""
        results = await self._run_per_file(files, self._count_file, "Summarizing files")

        file_counts: Dict[str, int] = {}
        for path, per_pattern in zip(files, results):
            if per_pattern is None:
                continue
            total = sum(per_pattern)
            if total > 0:
                file_counts[relative_posix(root, path)] = total

        return SummaryResult.from_file_counts(file_counts)

    async def scan_baseline(self, files: Sequence[Path], store: BaselineStore) -> BaselineResult:
        """
        Baseline-delta mode.

        The baseline is read before scanning. When none exists yet, the
        current counts are persisted and the run succeeds (seeding run).
        Otherwise each pattern's delta against the baseline is reported.
        """
        baseline = store.load()
        counts = await self.scan_counts(files)

        if baseline is None:
            store.save(counts)
            logger.info(f"Seeded baseline {store.path} with {len(counts.counts)} patterns")
            return BaselineResult(counts=counts, deltas=(), seeded=True)

        return BaselineResult(counts=counts, deltas=store.compare(counts, baseline), seeded=False)


# ===================================================================
# REPORT FORMATTING
# ===================================================================

def format_listing(result: ListingResult) -> List[str]:
    return [
        f"{match.file_path}:{match.line_number}:{match.pattern_name}:{match.text}"
        for match in result.matches
    ]


def format_counts(result: CountResult) -> List[str]:
    return [f"{entry.name}:{entry.count}" for entry in result.counts]


def format_baseline(result: BaselineResult) -> List[str]:
    # A seeding run prints nothing.
    return [
        f"{entry.name}: {entry.current} (baseline: {entry.baseline}, {entry.delta_text})"
        for entry in result.deltas
    ]


def _ranked_rows(rows: Sequence[Tuple[str, int]]) -> List[str]:
    width = len(str(max(count for _, count in rows)))
    return [f"{str(count).rjust(width)}  {name}" for name, count in rows]


def format_summary(result: SummaryResult) -> List[str]:
    """
    Render the summary block.

    Counts are right-aligned to the widest count of their own section.
    Nothing is printed when no file matched.
    """
    if not result.directories:
        return []

    lines = ["=== By Directory ==="]
    lines.extend(_ranked_rows(result.directories))
    lines.append("=== Top Files ===")
    lines.extend(_ranked_rows(result.top_files))
    return lines


def format_result(result: Any) -> List[str]:
    """Render any scan result into report lines."""
    if isinstance(result, ListingResult):
        return format_listing(result)
    if isinstance(result, CountResult):
        return format_counts(result)
    if isinstance(result, BaselineResult):
        return format_baseline(result)
    if isinstance(result, SummaryResult):
        return format_summary(result)
    raise TypeError(f"Unsupported result type: {type(result).__name__}")


# ===================================================================
# MAIN ORCHESTRATION
# ===================================================================

@dataclass
class ScanRequest:
    """Everything one scan needs, already parsed."""
    root: Path
    mode: ScanMode = ScanMode.LISTING
    patterns: Optional[PatternSet] = None
    extensions: Sequence[str] = tuple(DEFAULT_EXTENSIONS)
    excluded_dirs: Sequence[str] = ()
    ignore_globs: Sequence[str] = ()
    allowlist: Sequence[str] = ()
    baseline_path: Optional[Path] = None
    max_concurrency: int = MAX_CONCURRENT_FILES
    continue_on_error: bool = CONTINUE_ON_ERROR


@dataclass(frozen=True)
class ScanOutcome:
    lines: List[str]
    exit_code: int
    result: Optional[Any] = None


async def run_scan(request: ScanRequest) -> ScanOutcome:
    """
    Select files, scan them in the requested mode and render the report.

    When no candidate file remains after filtering, nothing is printed,
    the exit status is 0 and no baseline is seeded.

    Args:
        request: Parsed scan parameters

    Returns:
        ScanOutcome with report lines, exit status and the raw result

    Raises:
        ConfigError: baseline or traversal failures
        UsageError: baseline mode without a baseline path
    """
    if request.mode is ScanMode.BASELINE and request.baseline_path is None:
        raise UsageError("baseline mode requires a baseline file path")

    root = Path(request.root)
    patterns = request.patterns if request.patterns is not None else PatternSet.builtin()
    allowlist = AllowlistFilter.from_strings(request.allowlist)
    path_filter = PathFilter(
        extensions=request.extensions,
        excluded_dirs=request.excluded_dirs,
        ignore_globs=request.ignore_globs,
        continue_on_error=request.continue_on_error,
    )

    logger.info(
        f"Scanning {root} in {request.mode.value} mode with {len(patterns)} patterns, "
        f"{len(allowlist.rules)} allowlist rules, {len(path_filter.ignore_rules)} ignore rules",
        extra={"root": str(root), "mode": request.mode.value}
    )

    files = await path_filter.select_async(root)
    if not files:
        logger.info("No files to scan")
        return ScanOutcome(lines=[], exit_code=EXIT_CLEAN)

    engine = ScanEngine(patterns, allowlist, max_concurrency=request.max_concurrency)

    if request.mode is ScanMode.LISTING:
        result: Any = await engine.scan_listing(files)
        match_count = len(result.matches)
    elif request.mode is ScanMode.COUNT:
        result = await engine.scan_counts(files)
        match_count = result.total
    elif request.mode is ScanMode.SUMMARY:
        result = await engine.scan_summary(root, files)
        match_count = result.total
    else:
        result = await engine.scan_baseline(files, BaselineStore(request.baseline_path))
        match_count = result.counts.total

    logger.info(
        f"Scan complete. {match_count} matches in {len(files)} files",
        extra={"root": str(root), "mode": request.mode.value, "match_count": match_count}
    )
    return ScanOutcome(lines=format_result(result), exit_code=result.exit_code, result=result)


# ===================================================================
# CONFIGURATION FILES
# ===================================================================

# A whole scalar value in double quotes: `key: "..."`, `- "..."` or `- key: "..."`
DOUBLE_QUOTED_VALUE = re.compile(r'^(?P<lead>\s*(?:-\s+)?(?:[^"\'#:]+:\s+)?)"(?P<body>.*)"\s*$')


def literal_double_quotes(text: str) -> str:
    """Rewrite `"..."` values as single-quoted YAML so backslashes stay as written."""
    lines = []
    for line in text.splitlines():
        match = DOUBLE_QUOTED_VALUE.match(line)
        if match:
            body = match.group("body").replace("'", "''")
            line = f"{match.group('lead')}'{body}'"
        lines.append(line)
    return "\n".join(lines) + "\n"


@dataclass
class ScannerConfig:
    """Contents of a .pii-patterns.yaml file."""
    patterns: List[Tuple[str, str]] = field(default_factory=list)
    allowlist: List[str] = field(default_factory=list)
    extensions: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    source: Optional[Path] = None

    @classmethod
    def load(cls, path: Path) -> "ScannerConfig":
        """
        Load and validate a pattern configuration file.

        Expected format:
            patterns:
              - PHONE: '\\+1[- ]?[0-9]{3}[- ]?[0-9]{3}[- ]?[0-9]{4}'
            allowlist:
              - '\\+1 555-'
            extensions:
              - md
            exclude:
              - node_modules

        Args:
            path: Path to the YAML file

        Raises:
            ConfigError: if the file is missing, unreadable or malformed

        Returns:
            ScannerConfig
        """
        path = Path(path)
        if not path.is_file():
            raise ConfigError(f"config file not found: {path}")

        try:
            text = path.read_text(encoding='utf-8')
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e

        raw = cls._parse_yaml(text, path) or {}

        if not isinstance(raw, dict):
            raise ConfigError(f"Config file {path} must contain a mapping at the top level")

        config = cls._from_dict(raw, path)
        logger.info(f"Loaded config {path}: {len(config.patterns)} patterns, {len(config.allowlist)} allowlist rules")
        return config

    @staticmethod
    def _parse_yaml(text: str, source: Path) -> Any:
        """
        Parse the YAML document.

        Regexes written in double quotes (`"\\+1 555-"`) are not valid YAML
        escapes. When the document fails to parse, it is read once more with
        every double-quoted value taken literally, backslashes included.
        """
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            error = e

        try:
            raw = yaml.safe_load(literal_double_quotes(text))
        except yaml.YAMLError:
            raise ConfigError(
                f"Invalid YAML in config file {source}: {error} "
                f"(write regexes in single quotes, e.g. '\\+1 555-')"
            ) from error

        logger.info(f"Read double-quoted values in {source} literally; single quotes are preferred")
        return raw

    @classmethod
    def _from_dict(cls, data: Dict[str, Any], source: Path) -> "ScannerConfig":
        return cls(
            patterns=cls._parse_patterns(data.get("patterns"), source),
            allowlist=cls._parse_list(data.get("allowlist"), "allowlist", source),
            extensions=cls._parse_list(data.get("extensions"), "extensions", source),
            exclude=cls._parse_list(data.get("exclude"), "exclude", source),
            source=source,
        )

    @staticmethod
    def _parse_patterns(raw: Any, source: Path) -> List[Tuple[str, str]]:
        if raw is None:
            return []

        if isinstance(raw, dict):
            entries = [raw]
        elif isinstance(raw, list):
            entries = raw
        else:
            raise ConfigError(f"'patterns' in {source} must be a list of NAME: regex entries")

        patterns: List[Tuple[str, str]] = []
        for entry in entries:
            if not isinstance(entry, dict):
                raise ConfigError(f"Pattern entry {entry!r} in {source} must be NAME: regex")
            for name, regex in entry.items():
                if regex is None or regex == "":
                    logger.warning(f"Skipping pattern {name}: no regex provided")
                    continue
                patterns.append((str(name), str(regex)))
        return patterns

    @staticmethod
    def _parse_list(raw: Any, key: str, source: Path) -> List[str]:
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise ConfigError(f"'{key}' in {source} must be a list")
        values = []
        for item in raw:
            if isinstance(item, (dict, list)):
                raise ConfigError(f"Entry {item!r} under '{key}' in {source} must be a plain value")
            if item is not None and str(item) != "":
                values.append(str(item))
        return values


def discover_config(target: Path, repo_root: Optional[Path]) -> Optional[Path]:
    """
    Find a configuration file when none was given explicitly.

    Looks in the target directory, then the git repo root, then $HOME.
    """
    candidates = [Path(target) / CONFIG_FILE_NAME]
    if repo_root:
        candidates.append(Path(repo_root) / CONFIG_FILE_NAME)
    home = os.environ.get("HOME")
    if home:
        candidates.append(Path(home) / CONFIG_FILE_NAME)

    for candidate in candidates:
        if candidate.is_file():
            logger.debug(f"Using config file {candidate}")
            return candidate
    return None


def load_ignore_globs(target: Path, repo_root: Optional[Path]) -> List[str]:
    """
    Read .pii-ignore globs from the target directory and the repo root.

    Blank lines and `#` comments are skipped; target rules come first.

    Raises:
        ConfigError: if an existing ignore file cannot be read
    """
    candidates = [Path(target) / IGNORE_FILE_NAME]
    if repo_root and Path(repo_root).resolve() != Path(target).resolve():
        candidates.append(Path(repo_root) / IGNORE_FILE_NAME)

    globs: List[str] = []
    for candidate in candidates:
        if not candidate.is_file():
            continue
        try:
            lines = candidate.read_text(encoding='utf-8').splitlines()
        except OSError as e:
            raise ConfigError(f"Cannot read ignore file {candidate}: {e}") from e
        for raw in lines:
            stripped = raw.strip()
            if not stripped or stripped.startswith("#"):
                continue
            globs.append(stripped)

    if globs:
        logger.debug(f"Loaded {len(globs)} ignore rules")
    return globs


def split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


# ===================================================================
# GIT INTEGRATION
# ===================================================================

async def find_repo_root(path: Path) -> Optional[Path]:
    """
    Locate the top level of the git repository containing path.

    Returns:
        Repository root, or None if git is unavailable or path is not
        inside a repository
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            "git", "-C", str(path), "rev-parse", "--show-toplevel",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL
        )
    except OSError as e:
        logger.debug(f"git not available: {e}")
        return None

    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=GIT_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.debug(f"git rev-parse timed out for {path}")
        proc.kill()
        await proc.wait()
        return None

    if proc.returncode != 0:
        return None

    top = stdout.decode('utf-8', errors='replace').strip()
    return Path(top) if top else None


HOOK_TEMPLATE = r"""#!/usr/bin/env bash
# PII Scanner pre-commit hook (installed by markdown-pii-scanner)
# Scans staged .md files for PII patterns before commit.

SCANNER=({scanner})
REPO_ROOT="$(git rev-parse --show-toplevel)"
CONFIG="$REPO_ROOT/.pii-patterns.yaml"

if [[ -f "$CONFIG" ]]; then
  CONFIG_FLAG=(--config "$CONFIG")
else
  CONFIG_FLAG=()
fi

# Only scan if there are staged .md files
STAGED=$(git diff --cached --name-only --diff-filter=ACM | grep -E '\.(md|markdown|txt)$' || true)
if [[ -z "$STAGED" ]]; then
  exit 0
fi

# Create temp dir with staged files
TMPDIR=$(mktemp -d)
trap 'rm -rf "$TMPDIR"' EXIT

while IFS= read -r f; do
  mkdir -p "$TMPDIR/$(dirname "$f")"
  git show ":$f" > "$TMPDIR/$f" 2>/dev/null || true
done <<< "$STAGED"

# Run scanner
"${{SCANNER[@]}}" "${{CONFIG_FLAG[@]}}" --count-only "$TMPDIR"
RESULT=$?

if [[ $RESULT -ne 0 ]]; then
  echo ""
  echo "PII detected in staged files. Review matches:"
  "${{SCANNER[@]}}" "${{CONFIG_FLAG[@]}}" "$TMPDIR"
  echo ""
  echo "To commit anyway: git commit --no-verify"
  exit 1
fi
"""


class HookStatus(Enum):
    INSTALLED = "installed"
    ALREADY_INSTALLED = "already_installed"


@dataclass(frozen=True)
class HookInstallResult:
    hook_path: Path
    status: HookStatus
    backup_path: Optional[Path] = None


def render_hook(python_executable: str = sys.executable) -> str:
    scanner = f"{shlex.quote(python_executable)} -m markdown_pii_scanner"
    return HOOK_TEMPLATE.format(scanner=scanner)


def install_hook(repo_path: Path) -> HookInstallResult:
    """
    Install the scanner as the repository's pre-commit hook.

    An existing scanner hook is left alone; any other existing hook is
    copied to pre-commit.backup before being replaced.

    Args:
        repo_path: Repository working tree (must contain .git/)

    Raises:
        ConfigError: if repo_path is not a git repository,
            or the hook cannot be read, backed up or written

    Returns:
        HookInstallResult
    """
    repo_path = Path(repo_path)
    git_dir = repo_path / ".git"
    if not git_dir.is_dir():
        raise ConfigError(f"{repo_path} is not a git repository")

    hook_dir = git_dir / "hooks"
    hook_file = hook_dir / "pre-commit"
    backup_path = None

    try:
        if hook_file.exists():
            existing = hook_file.read_text(encoding='utf-8', errors='replace')
            if HOOK_MARKER in existing:
                logger.info(f"Hook already present at {hook_file}")
                return HookInstallResult(hook_path=hook_file, status=HookStatus.ALREADY_INSTALLED)
            backup_path = hook_file.with_name(hook_file.name + ".backup")
            backup_path.write_text(existing, encoding='utf-8')
            logger.warning(f"Existing pre-commit hook backed up to {backup_path}")

        hook_dir.mkdir(parents=True, exist_ok=True)
        hook_file.write_text(render_hook(), encoding='utf-8')
        hook_file.chmod(0o755)
    except OSError as e:
        raise ConfigError(f"Cannot install pre-commit hook at {hook_file}: {e}") from e

    return HookInstallResult(hook_path=hook_file, status=HookStatus.INSTALLED, backup_path=backup_path)


# ===================================================================
# COMMAND LINE INTERFACE
# ===================================================================

HELP_EPILOG = '''
EXIT CODES:
  0   No PII found (clean)
  1   PII matches found (or new matches against the baseline)
  2   Usage or configuration error
  130 Interrupted by user (Ctrl+C)

OUTPUT FORMAT (default mode):
  file:line:PATTERN_NAME:matched_text
OUTPUT FORMAT (--summary):
  === By Directory ===
  1061  docs/03-client-projects
   891  docs/04-professional
  === Top Files ===
  159  docs/03-client-projects/acme/notes.md
   91  docs/04-professional/review.md

IGNORE FILES:
  .pii-ignore in target dir or repo root, one glob per line
  Supports *, **, ?; # comments and blanks ignored

BASELINE MODE:
  --baseline <file> stores/compares per-pattern counts in JSON
  Exit code is 1 only when new matches appear vs baseline

CONFIG FILE FORMAT (.pii-patterns.yaml):
  patterns:
    - GMAIL_ID: 'gmail:[0-9a-fA-F]+'
    - PHONE: '\\+1[- ]?[0-9]{3}[- ]?[0-9]{3}[- ]?[0-9]{4}'
    - COMPANY_EMAIL: '[A-Za-z0-9._%+-]+@(mycompany|otherdomain)\\b'
  allowlist:
    - '/Users/(username|yourname|realname)'
    - '\\+1 555-'
  extensions:
    - md
    - txt
  exclude:
    - node_modules

  Regexes belong in single quotes. Double-quoted values that are not valid
  YAML (e.g. "\\+1 555-") are read literally, backslashes included.

BUILT-IN PATTERNS (when no config):
'''


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments and display help information."""
    builtin_help = "\n".join(f"  {name:<16} {description}" for name, _, description in BUILTIN_PATTERNS)

    parser = argparse.ArgumentParser(
        prog='markdown-pii-scanner',
        description='Scan markdown and text files for PII patterns before they hit git',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=HELP_EPILOG + builtin_help
    )

    parser.add_argument(
        'directory',
        nargs='?',
        help='Directory to scan (or repository path with --install-hook)'
    )

    parser.add_argument(
        '--count-only',
        action='store_true',
        help='Report totals per pattern type only'
    )

    parser.add_argument(
        '--summary',
        action='store_true',
        help='Summary by directory and top files (mutually exclusive with --count-only)'
    )

    parser.add_argument(
        '--config',
        type=str,
        metavar='FILE',
        help='Load patterns from YAML config (see format below)'
    )

    parser.add_argument(
        '--exclude',
        type=str,
        metavar='DIRS',
        help='Comma-separated directory basenames to skip'
    )

    parser.add_argument(
        '--extensions',
        type=str,
        metavar='EXTS',
        help='Comma-separated extensions to scan (default: md)'
    )

    parser.add_argument(
        '--baseline',
        type=str,
        metavar='FILE',
        help='JSON baseline file for per-pattern delta reporting'
    )

    parser.add_argument(
        '--install-hook',
        action='store_true',
        help='Install as git pre-commit hook in repo'
    )

    parser.add_argument(
        '--concurrency',
        type=int,
        default=MAX_CONCURRENT_FILES,
        help=f'Number of files to scan in parallel (default: {MAX_CONCURRENT_FILES})'
    )

    parser.add_argument(
        '--continue-on-error',
        action='store_true',
        default=CONTINUE_ON_ERROR,
        help='Skip unreadable directories instead of failing'
    )

    parser.add_argument(
        '--log-format',
        type=str,
        choices=['text', 'json'],
        default=LOG_FORMAT,
        help=f'Logging format (default: {LOG_FORMAT})'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose debug logging'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {VERSION}'
    )

    args = parser.parse_args(argv)

    if args.summary and args.count_only:
        parser.error('--summary is mutually exclusive with --count-only')
    if args.baseline and args.summary:
        parser.error('--baseline cannot be used with --summary')
    if args.concurrency < 1:
        parser.error('--concurrency must be at least 1')
    if not args.install_hook:
        if not args.directory:
            parser.error('directory argument required')
        if not Path(args.directory).is_dir():
            parser.error(f'directory not found: {args.directory}')

    return args


def select_mode(args: argparse.Namespace) -> ScanMode:
    if args.baseline:
        return ScanMode.BASELINE
    if args.count_only:
        return ScanMode.COUNT
    if args.summary:
        return ScanMode.SUMMARY
    return ScanMode.LISTING


async def build_request(args: argparse.Namespace) -> ScanRequest:
    """
    Resolve configuration, ignore files and patterns into a ScanRequest.

    Extension precedence: --extensions, then the config file, then md.
    Excluded directories are the union of --exclude and the config file.
    """
    target = Path(args.directory)
    repo_root = await find_repo_root(target)

    config_path = Path(args.config) if args.config else discover_config(target, repo_root)
    config = ScannerConfig.load(config_path) if config_path else ScannerConfig()

    if config.patterns:
        patterns = PatternSet.compile(config.patterns)
    else:
        patterns = PatternSet.builtin()

    extensions = split_csv(args.extensions) or config.extensions or DEFAULT_EXTENSIONS

    return ScanRequest(
        root=target,
        mode=select_mode(args),
        patterns=patterns,
        extensions=extensions,
        excluded_dirs=split_csv(args.exclude) + config.exclude,
        ignore_globs=load_ignore_globs(target, repo_root),
        allowlist=config.allowlist,
        baseline_path=Path(args.baseline) if args.baseline else None,
        max_concurrency=args.concurrency,
        continue_on_error=args.continue_on_error,
    )


def preserve_undecodable_names(stream: Any) -> None:
    """
    File names that are not valid UTF-8 arrive as surrogate escapes; write
    them back out as their original bytes instead of failing mid-report.
    """
    reconfigure = getattr(stream, "reconfigure", None)
    if reconfigure is not None:
        reconfigure(errors="surrogateescape")


async def scan_command(args: argparse.Namespace) -> int:
    request = await build_request(args)
    outcome = await run_scan(request)
    for line in outcome.lines:
        print(line)
    return outcome.exit_code


def install_hook_command(repo_path: str) -> int:
    result = install_hook(Path(repo_path))

    if result.status is HookStatus.ALREADY_INSTALLED:
        print(f"PII scanner hook already installed at {result.hook_path}")
        return EXIT_CLEAN

    if result.backup_path:
        print(f"Warning: pre-commit hook already exists at {result.hook_path}")
        print(f"Backing up to {result.backup_path}")

    print(f"PII scanner pre-commit hook installed at {result.hook_path}")
    print("")
    print(f"Optional: create {CONFIG_FILE_NAME} in repo root to customize patterns.")
    print("Run 'markdown-pii-scanner --help' for config file format.")
    return EXIT_CLEAN


# ===================================================================
# MAIN ENTRY POINT
# ===================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point with validation and error handling."""

    # Parse arguments
    args = parse_arguments(argv)

    setup_logging(args.log_format, LOG_LEVEL)
    if args.verbose:
        logger.setLevel(logging.DEBUG)

    preserve_undecodable_names(sys.stdout)

    try:
        if args.install_hook:
            return install_hook_command(args.directory or ".")
        return asyncio.run(scan_command(args))

    except (ConfigError, UsageError) as e:
        logger.error(f"Error: {e}")
        return EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        logger.warning("Scan interrupted by user")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
