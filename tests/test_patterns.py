import pytest

from pathfilter_ci.patterns import compile_glob, expand_braces


def _matches(pattern: str, path: str) -> bool:
    return compile_glob(pattern).matches(path)


def test_single_star_does_not_cross_directories():
    assert _matches("*.md", "README.md")
    assert not _matches("*.md", "docs/README.md")
    assert _matches("src/*", "src/app.py")
    assert not _matches("src/*", "src/pkg/app.py")


def test_globstar_crosses_directories():
    assert _matches("**/*.ts", "index.ts")
    assert _matches("**/*.ts", "src/deep/index.ts")
    assert _matches("src/**", "src/a/b/c.txt")
    assert _matches("src/**/test_*.py", "src/test_a.py")
    assert _matches("src/**/test_*.py", "src/x/y/test_a.py")
    assert not _matches("src/**", "lib/src/a.txt")
    assert _matches("**", ".github/workflows/ci.yml")


def test_question_mark_and_classes():
    assert _matches("v?.txt", "v1.txt")
    assert not _matches("v?.txt", "v/.txt")
    assert _matches("file[0-9].py", "file7.py")
    assert not _matches("file[!0-9].py", "file7.py")
    assert _matches("file[!0-9].py", "fileA.py")


def test_bracket_as_first_class_member():
    assert _matches("file[!]].py", "filea.py")
    assert not _matches("file[!]].py", "file].py")
    assert _matches("file[]].py", "file].py")
    assert not _matches("file[]].py", "filea.py")


def test_brace_alternation():
    assert expand_braces("{src,lib}/**/*.{js,ts}") == [
        "src/**/*.js",
        "src/**/*.ts",
        "lib/**/*.js",
        "lib/**/*.ts",
    ]
    assert _matches("{src,lib}/*.py", "lib/a.py")
    assert not _matches("{src,lib}/*.py", "test/a.py")
    assert _matches("a{b,c{d,e}}", "ace")


def test_braces_without_alternatives_are_literal():
    assert _matches("{a}.txt", "{a}.txt")
    assert _matches("x{y", "x{y")


def test_dot_files_and_case_sensitivity():
    assert _matches("*", ".env")
    assert _matches("**/*", ".github/CODEOWNERS")
    assert not _matches("*.MD", "readme.md")


def test_regex_metacharacters_are_literal():
    assert _matches("a+b(1).txt", "a+b(1).txt")
    assert not _matches("a.txt", "abtxt")


def test_negation_prefix():
    glob = compile_glob("!generated/**")
    assert glob.negated
    assert glob.matches("generated/x.ts")
    assert not compile_glob("!!src/**").negated


def test_empty_pattern_rejected():
    with pytest.raises(ValueError):
        compile_glob("!")
