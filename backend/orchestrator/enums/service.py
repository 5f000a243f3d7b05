"""
Service enumeration for the external streaming services a call depends on.

Rules:
- This enum identifies external services only.
- It must NOT encode behavior or lifecycle rules.
"""

from __future__ import annotations

from enum import Enum


class Service(str, Enum):
    """
    External services bridged by the session controller.

    Each service is opaque: the controller only sees the events its
    adapter emits.
    """

    ASR = "ASR"
    LLM = "LLM"
    TTS = "TTS"
