"""
Tests for the project metadata in pyproject.toml.
"""

from pathlib import Path

import pytest
import gasex_py

PYPROJECT = Path(__file__).resolve().parents[2] / 'pyproject.toml'


@pytest.fixture
def pyproject_text():
    if not PYPROJECT.exists():
        pytest.skip("pyproject.toml not available in an installed package")
    return PYPROJECT.read_text(encoding='utf-8')


class TestProjectMetadata:

    def test_version_matches_package(self, pyproject_text):
        assert f'version = "{gasex_py.__version__}"' in pyproject_text

    def test_design_notes_not_published_as_readme(self, pyproject_text):
        assert 'DESIGN.md' not in pyproject_text

    def test_runtime_dependencies(self, pyproject_text):
        for name in ('numpy', 'pandas', 'scipy', 'lmfit', 'tqdm'):
            assert f'"{name}' in pyproject_text


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
