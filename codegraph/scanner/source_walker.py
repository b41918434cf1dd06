import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Set, Optional, Iterator, Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed

from ..config import settings
from ..exceptions import ExtractionError
from ..utils.logger import app_logger


@dataclass
class SourceFile:
    """A file found under the project root."""
    path: str
    absolute_path: str
    size: int = 0
    content: Optional[str] = None

    @property
    def name(self) -> str:
        return Path(self.path).name

    @property
    def suffix(self) -> str:
        return Path(self.path).suffix.lower()


class SourceWalker:
    """Read-only tree walk over a project root.

    All paths handed out are relative to ``root_path`` and use forward
    slashes, so ids derived from them do not depend on the caller's cwd
    or platform.
    """

    def __init__(self, root_path: str, ignored_dirs: Optional[Set[str]] = None,
                 max_file_size: Optional[int] = None):
        self.root_path = Path(root_path).resolve()
        self.ignored_dirs = ignored_dirs if ignored_dirs is not None else settings.ignored_dirs_set
        self.max_file_size = max_file_size or settings.max_file_size
        self.logger = app_logger.bind(component="source_walker")

    def relative(self, path: Path) -> str:
        return path.relative_to(self.root_path).as_posix()

    def resolve_dirs(self, patterns: Iterable[str]) -> List[Path]:
        """Expand directory patterns such as ``packages/*/src`` under the root."""
        found = []
        seen = set()
        for pattern in patterns:
            for candidate in sorted(self.root_path.glob(pattern)):
                if not candidate.is_dir():
                    continue
                if any(part in self.ignored_dirs for part in candidate.relative_to(self.root_path).parts):
                    continue
                if candidate not in seen:
                    seen.add(candidate)
                    found.append(candidate)
            if not any(self.root_path.glob(pattern)):
                self.logger.debug(f"No directory matches {pattern} under {self.root_path}")
        return found

    def walk(self, start: Optional[Path] = None, extensions: Optional[Set[str]] = None,
             path_filter: Optional[Callable[[str], bool]] = None,
             max_depth: Optional[int] = None) -> Iterator[SourceFile]:
        """Yield files under ``start`` matching ``extensions`` and ``path_filter``."""
        start = Path(start).resolve() if start else self.root_path
        if not start.exists():
            self.logger.debug(f"Skipping missing directory: {start}")
            return

        base_depth = len(start.parts)
        for root, dirs, files in os.walk(start, onerror=self._on_walk_error):
            # Remove ignored directories
            dirs[:] = sorted(d for d in dirs if d not in self.ignored_dirs and not d.startswith("."))
            if max_depth is not None and len(Path(root).parts) - base_depth >= max_depth:
                dirs[:] = []

            for file_name in sorted(files):
                file_path = Path(root) / file_name
                if extensions and file_path.suffix.lower() not in extensions:
                    continue

                relative_path = self.relative(file_path)
                if path_filter and not path_filter(relative_path):
                    continue

                source_file = self._create_source_file(file_path, relative_path)
                if source_file:
                    yield source_file

    def _on_walk_error(self, error: OSError):
        self.logger.debug(f"Skipping unreadable directory: {error}")

    def _create_source_file(self, file_path: Path, relative_path: str) -> Optional[SourceFile]:
        try:
            size = file_path.stat().st_size
        except OSError as e:
            self.logger.debug(f"Cannot stat {file_path}: {e}")
            return None

        if size > self.max_file_size:
            self.logger.warning(f"Skipping large file: {relative_path}")
            return None

        return SourceFile(path=relative_path, absolute_path=str(file_path), size=size)

    def read(self, source_file: SourceFile) -> str:
        """Load content of a source file, raising ExtractionError on failure."""
        if source_file.content is not None:
            return source_file.content
        try:
            with open(source_file.absolute_path, "r", encoding="utf-8") as f:
                source_file.content = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ExtractionError(source_file.path, str(e)) from e
        return source_file.content

    def read_many(self, source_files: List[SourceFile], max_workers: Optional[int] = None) -> List[SourceFile]:
        """Load content for multiple files in parallel, dropping unreadable ones."""
        max_workers = max_workers or settings.extractor_max_workers

        def load_content(source_file: SourceFile) -> SourceFile:
            self.read(source_file)
            return source_file

        loaded = []
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {executor.submit(load_content, f): f for f in source_files}
            for future in as_completed(futures):
                try:
                    loaded.append(future.result())
                except ExtractionError as e:
                    self.logger.debug(str(e))

        # keep walk order so downstream output is stable
        order = {f.path: i for i, f in enumerate(source_files)}
        loaded.sort(key=lambda f: order[f.path])
        return loaded
