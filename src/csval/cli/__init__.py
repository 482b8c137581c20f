"""
csval Command-Line Interface
============================

- **csval**: validate a C# source file or standard input

The tool is a Click application; its exit code is the verdict.
"""

__all__ = ["csval"]
