"""Data models for judgelink."""

from .records import CaseRecord, CaseUpdate, JudgeRecord

__all__ = [
    "CaseRecord",
    "CaseUpdate",
    "JudgeRecord",
]
