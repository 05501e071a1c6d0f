"""In-memory sources. These only exist in memory and cannot be resolved."""

from abc import abstractmethod
from pathlib import Path
from typing import List, Sequence

from file_access.sources.base import DEFAULT_ENCODING, DEFAULT_MAX_READ_SIZE, ReadableFileSource


class VirtualFileNode(ReadableFileSource):
    """Base for nodes whose contents are held in a string."""

    def __init__(self, name: str, encoding: str = DEFAULT_ENCODING):
        super().__init__(name, encoding, DEFAULT_MAX_READ_SIZE)
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def exists(self) -> bool:
        return True

    @abstractmethod
    def read_string(self) -> str:
        """Returns the full contents of the node."""

    def read_text(self) -> str:
        return self.read_string()

    def _read_bytes(self) -> bytes:
        return self.read_string().encode(self.encoding)

    def _get_size(self) -> int:
        return len(self._read_bytes())

    def _localize_to(self, path: Path) -> None:
        path.write_text(self.read_string(), encoding=self.encoding)


class StringFileNode(VirtualFileNode):
    def __init__(self, contents: str, name: str = "<string>", encoding: str = DEFAULT_ENCODING):
        super().__init__(name, encoding)
        self.contents = contents

    @classmethod
    def with_name(cls, name: str, contents: str) -> "StringFileNode":
        return cls(contents, name)

    def read_string(self) -> str:
        return self.contents


class LinesFileNode(VirtualFileNode):
    """Contents given as lines, joined with ``line_separator``."""

    def __init__(self, lines: Sequence[str], name: str = "<lines>", encoding: str = DEFAULT_ENCODING,
                 line_separator: str = "\n", trailing_newline: bool = True):
        super().__init__(name, encoding)
        self.lines = list(lines)
        self.line_separator = line_separator
        self.trailing_newline = trailing_newline

    @classmethod
    def with_name(cls, name: str, lines: Sequence[str]) -> "LinesFileNode":
        return cls(lines, name)

    def read_string(self) -> str:
        text = self.line_separator.join(self.lines)
        if self.trailing_newline and self.lines:
            text += self.line_separator
        return text

    def read_lines(self) -> List[str]:
        return list(self.lines)
