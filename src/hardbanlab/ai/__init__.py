"""Thin generative-AI helpers: the provider client and per-module actions."""

from .actions import AIActionRunner, MusicAssistant, PublishingAssistant
from .client import ClientSettings, GenerationClient

__all__ = [
    "AIActionRunner",
    "ClientSettings",
    "GenerationClient",
    "MusicAssistant",
    "PublishingAssistant",
]
