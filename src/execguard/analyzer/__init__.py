"""
Command Analyzer - Classifiers that turn command text into findings

Provides:
- Classifier protocol and the default CommandAnalyzer
- CommandPattern and the built-in DEFAULT_PATTERNS table
- PatternRegistry for YAML-defined custom patterns
"""

from .pattern import CommandPattern
from .patterns import DEFAULT_PATTERNS, SYSTEM_DIRECTORIES
from .command import Classifier, CommandAnalyzer, analyze_command
from .registry import PatternRegistry, build_analyzer

__all__ = [
    "CommandPattern",
    "DEFAULT_PATTERNS",
    "SYSTEM_DIRECTORIES",
    "Classifier",
    "CommandAnalyzer",
    "analyze_command",
    "PatternRegistry",
    "build_analyzer",
]
