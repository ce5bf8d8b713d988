"""
File pattern classification.

Glob pattern lists used to spot critical, test and configuration
files, and the category a file path falls into for batch grouping.
"""

import fnmatch
from typing import Iterable

CRITICAL_PATTERNS = [
    '**/*.config.*',
    '**/package.json',
    '**/package-lock.json',
    '**/yarn.lock',
    '**/tsconfig.json',
    '**/Dockerfile',
    '**/docker-compose*.yml',
    '**/*.yml',
    '**/*.yaml',
    '**/README.md',
    '**/index.ts',
    '**/index.js',
    '**/main.ts',
    '**/main.js',
    '**/app.ts',
    '**/app.js',
    '**/schema.sql',
    '**/migration*.sql',
    # Python manifests and entry points
    '**/pyproject.toml',
    '**/setup.py',
    '**/requirements*.txt',
    '**/poetry.lock',
    '**/main.py',
    '**/__main__.py',
    # CI descriptors
    '**/.github/workflows/*',
    '**/.gitlab-ci.yml',
    '**/Jenkinsfile',
]

TEST_PATTERNS = [
    '**/*.test.*',
    '**/*.spec.*',
    '**/test/**',
    '**/tests/**',
    '**/__tests__/**',
    '**/test_*.py',
    '**/*_test.py',
    '**/*_test.go',
]

CONFIG_PATTERNS = [
    '**/.env*',
    '**/webpack.config.*',
    '**/vite.config.*',
    '**/rollup.config.*',
    '**/.eslintrc*',
    '**/.prettierrc*',
    '**/babel.config.*',
    '**/jest.config.*',
    '**/setup.cfg',
    '**/tox.ini',
]

# Extension fallback used when no pattern list claims a file
EXTENSION_CATEGORIES = {
    'ts': 'typescript',
    'tsx': 'typescript',
    'js': 'javascript',
    'jsx': 'javascript',
    'py': 'python',
    'java': 'java',
    'css': 'styles',
    'scss': 'styles',
    'less': 'styles',
    'md': 'documentation',
    'json': 'data',
    'yaml': 'data',
    'yml': 'data',
}


def normalize_path(file_path: str) -> str:
    return file_path.replace('\\', '/').lstrip('/')


def file_extension(file_path: str) -> str:
    """
    Lower-case extension of a path without the dot.

    Returns an empty string for paths whose last segment has no dot.
    """
    name = normalize_path(file_path).rsplit('/', 1)[-1]
    if '.' not in name:
        return ''
    return name.rsplit('.', 1)[-1].lower()


def normalize_extension(extension: str) -> str:
    return extension.strip().lstrip('.').lower()


def matches_any(file_path: str, patterns: Iterable[str]) -> bool:
    """
    Check whether a path matches any glob in ``patterns``.

    A ``**/`` prefix also matches files at the repository root.
    """
    path = normalize_path(file_path)
    for pattern in patterns:
        if fnmatch.fnmatchcase(path, pattern):
            return True
        if pattern.startswith('**/') and fnmatch.fnmatchcase(path, pattern[3:]):
            return True
    return False


def get_file_category(
    file_path: str,
    test_patterns: Iterable[str] = TEST_PATTERNS,
    config_patterns: Iterable[str] = CONFIG_PATTERNS,
    critical_patterns: Iterable[str] = CRITICAL_PATTERNS,
) -> str:
    """
    Category used to group a file's hunks in file-based batching.

    Precedence: tests, config, critical, then the extension map,
    falling back to ``other``.
    """
    if matches_any(file_path, test_patterns):
        return 'tests'
    if matches_any(file_path, config_patterns):
        return 'config'
    if matches_any(file_path, critical_patterns):
        return 'critical'
    return EXTENSION_CATEGORIES.get(file_extension(file_path), 'other')
