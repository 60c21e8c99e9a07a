"""
judgelink - Case-to-Judge Entity Resolution

A batch pipeline that links unstructured judge names on case records
to canonical judge entities, then reconciles and validates the result.
"""

__version__ = "0.1.0"
