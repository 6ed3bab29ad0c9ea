"""Tests that package discovery picks up the code tree."""
from pathlib import Path

from setuptools import find_namespace_packages

ROOT = Path(__file__).resolve().parents[2]


def test_discovery_includes_top_level_and_rag_packages():
    packages = find_namespace_packages(where=str(ROOT), include=["ragcore*"])

    assert "ragcore" in packages
    assert "ragcore.rag" in packages
