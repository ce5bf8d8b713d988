import pytest

from batch_review.analysis.file_patterns import (
    CRITICAL_PATTERNS,
    file_extension,
    get_file_category,
    matches_any,
    normalize_extension,
)


@pytest.mark.parametrize("path", ["package.json", "src/package.json", "config/app.yml", "Dockerfile"])
def test_critical_files_match_at_any_depth(path):
    assert matches_any(path, CRITICAL_PATTERNS)


def test_non_critical_source_file():
    assert not matches_any("src/components/button.ts", CRITICAL_PATTERNS)


@pytest.mark.parametrize("path,category", [
    ("tests/test_x.py", "tests"),
    ("src/button.test.ts", "tests"),
    # test directories win over the config and critical lists
    ("tests/app.config.js", "tests"),
    ("jest.config.js", "config"),
    (".env.local", "config"),
    ("package.json", "critical"),
    ("src/a.ts", "typescript"),
    ("styles/site.scss", "styles"),
    ("Makefile", "other"),
    ("/package.json", "critical"),
])
def test_get_file_category(path, category):
    assert get_file_category(path) == category


def test_get_file_category_with_custom_patterns():
    assert get_file_category("spec/models/user_spec.rb", test_patterns=["spec/**"]) == "tests"
    assert get_file_category("spec/models/user_spec.rb") == "other"


def test_file_extension():
    assert file_extension("src/Main.PY") == "py"
    assert file_extension("archive.tar.gz") == "gz"
    assert file_extension("Makefile") == ""
    assert file_extension("dir.d/README") == ""
    assert file_extension("src\\win\\path.ts") == "ts"


def test_normalize_extension():
    assert normalize_extension(".LOCK") == "lock"
    assert normalize_extension(" ts ") == "ts"
