"""
Diff parser module.

Turns unified diff text into ordered hunks:
- Hunk header parsing (old/new line ranges, trailing context)
- Per-hunk change type classification
- Multi-file ``diff --git`` splitting
- Placeholder diffs for files whose real diff is unavailable
"""

import re
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    """Type of change a hunk represents."""
    ADD = "add"
    EDIT = "edit"
    DELETE = "delete"
    RENAME = "rename"


@dataclass(frozen=True)
class Hunk:
    """A contiguous region of change within one file."""
    file_path: str
    change_type: ChangeType
    old_line_start: int
    old_line_count: int
    new_line_start: int
    new_line_count: int
    content: str
    context: str = ""

    @property
    def lines(self) -> List[str]:
        return self.content.split('\n') if self.content else []


# Language detection by file extension
LANGUAGE_MAP = {
    'py': 'python',
    'js': 'javascript',
    'ts': 'typescript',
    'jsx': 'javascript',
    'tsx': 'typescript',
    'java': 'java',
    'go': 'go',
    'rs': 'rust',
    'cpp': 'cpp',
    'c': 'c',
    'h': 'c',
    'hpp': 'cpp',
    'cs': 'csharp',
    'rb': 'ruby',
    'php': 'php',
    'swift': 'swift',
    'kt': 'kotlin',
    'scala': 'scala',
    'sql': 'sql',
    'sh': 'shell',
    'bash': 'shell',
    'yaml': 'yaml',
    'yml': 'yaml',
    'json': 'json',
    'xml': 'xml',
    'html': 'html',
    'css': 'css',
    'md': 'markdown',
    'txt': 'text',
}

PLACEHOLDER_DIFFS = {
    ChangeType.ADD: (
        "--- /dev/null\n"
        "+++ b/{path}\n"
        "@@ -0,0 +1,1 @@\n"
        "+[File added - content not available]\n"
    ),
    ChangeType.DELETE: (
        "--- a/{path}\n"
        "+++ /dev/null\n"
        "@@ -1,1 +0,0 @@\n"
        "-[File deleted - content not available]\n"
    ),
    ChangeType.EDIT: (
        "--- a/{path}\n"
        "+++ b/{path}\n"
        "@@ -1,1 +1,1 @@\n"
        "-[Original content not available]\n"
        "+[Modified content not available]\n"
    ),
}


def detect_language(file_path: str) -> Optional[str]:
    """
    Detect programming language from a file path.

    Args:
        file_path: File name or path

    Returns:
        Optional[str]: Detected language, or None
    """
    name = file_path.rsplit('/', 1)[-1]
    if '.' not in name:
        return None
    return LANGUAGE_MAP.get(name.rsplit('.', 1)[-1].lower())


def classify_change(lines: List[str]) -> ChangeType:
    """Classify a hunk body by which kinds of changed lines it carries."""
    has_added = any(line.startswith('+') for line in lines)
    has_removed = any(line.startswith('-') for line in lines)

    if has_added and not has_removed:
        return ChangeType.ADD
    if has_removed and not has_added:
        return ChangeType.DELETE
    return ChangeType.EDIT


class HunkParser:
    """
    Parses the hunks of a single file's unified diff.

    Lines before the first hunk header and lines that are neither
    additions, removals nor context are skipped silently. Parsing
    never raises; input without hunk headers yields no hunks.
    """

    HUNK_HEADER_PATTERN = re.compile(r'^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@(.*)$')

    def parse(self, diff_text: str, file_path: str) -> List[Hunk]:
        """
        Parse diff text into hunks.

        Args:
            diff_text: Unified diff text for one file
            file_path: Path the hunks belong to

        Returns:
            List[Hunk]: Hunks in order of appearance
        """
        if not diff_text:
            return []

        hunks: List[Hunk] = []
        header: Optional[Tuple[int, int, int, int, str]] = None
        body: List[str] = []

        for line in diff_text.split('\n'):
            match = self.HUNK_HEADER_PATTERN.match(line)
            if match:
                if header is not None and body:
                    hunks.append(self._build(file_path, header, body))
                header = (
                    int(match.group(1)),
                    int(match.group(2)) if match.group(2) is not None else 1,
                    int(match.group(3)),
                    int(match.group(4)) if match.group(4) is not None else 1,
                    match.group(5).strip(),
                )
                body = []
            elif header is not None and line[:1] in ('+', '-', ' '):
                body.append(line)

        if header is not None and body:
            hunks.append(self._build(file_path, header, body))

        return hunks

    @staticmethod
    def _build(file_path: str, header: Tuple[int, int, int, int, str], body: List[str]) -> Hunk:
        old_start, old_count, new_start, new_count, context = header
        return Hunk(
            file_path=file_path,
            change_type=classify_change(body),
            old_line_start=old_start,
            old_line_count=old_count,
            new_line_start=new_start,
            new_line_count=new_count,
            content='\n'.join(body),
            context=context,
        )


_default_parser = HunkParser()


def parse_hunks(diff_text: str, file_path: str) -> List[Hunk]:
    """Parse one file's diff text with the shared parser."""
    return _default_parser.parse(diff_text, file_path)


class _FileSection:
    def __init__(self, path: str):
        self.path = path
        self.renamed = False
        self.lines: List[str] = []


FILE_HEADER_PATTERN = re.compile(r'^diff --git a/(.*?) b/(.*?)$')
NEW_FILE_PATTERN = re.compile(r'^\+\+\+ b/(.*)$')
RENAME_TO_PATTERN = re.compile(r'^rename to (.*)$')


def parse_file_diffs(unified_diff: str) -> Dict[str, List[Hunk]]:
    """
    Split a multi-file unified diff and parse each file's hunks.

    Files are keyed by their new path. A renamed file whose hunks carry
    no added or removed lines keeps those hunks marked as renames.

    Args:
        unified_diff: ``git diff`` style output covering any number of files

    Returns:
        Dict[str, List[Hunk]]: Path -> hunks, in diff order
    """
    if not unified_diff or not unified_diff.strip():
        logger.warning("Empty diff provided")
        return {}

    sections: List[_FileSection] = []
    current: Optional[_FileSection] = None
    in_header = False

    for line in unified_diff.split('\n'):
        file_match = FILE_HEADER_PATTERN.match(line)
        if file_match:
            current = _FileSection(file_match.group(2))
            sections.append(current)
            in_header = True
            continue
        if current is None:
            continue
        if line.startswith('@@'):
            in_header = False
        if in_header:
            rename_match = RENAME_TO_PATTERN.match(line)
            new_match = NEW_FILE_PATTERN.match(line)
            if rename_match:
                current.renamed = True
                current.path = rename_match.group(1)
            elif new_match:
                current.path = new_match.group(1)
            continue
        current.lines.append(line)

    result: Dict[str, List[Hunk]] = {}
    for section in sections:
        hunks = parse_hunks('\n'.join(section.lines), section.path)
        if section.renamed:
            hunks = [
                replace(h, change_type=ChangeType.RENAME)
                if not any(l.startswith(('+', '-')) for l in h.lines) else h
                for h in hunks
            ]
        result.setdefault(section.path, []).extend(hunks)

    logger.info(
        "Parsed diff",
        extra={
            "files_changed": len(result),
            "total_hunks": sum(len(h) for h in result.values()),
        }
    )

    return result


def placeholder_diff(file_path: str, change_type: ChangeType = ChangeType.EDIT) -> str:
    """
    Build the minimal single-hunk diff used when no real diff is available.

    Renames and unknown change types use the edit form.
    """
    template = PLACEHOLDER_DIFFS.get(change_type, PLACEHOLDER_DIFFS[ChangeType.EDIT])
    return f"diff --git a/{file_path} b/{file_path}\n" + template.format(path=file_path)
