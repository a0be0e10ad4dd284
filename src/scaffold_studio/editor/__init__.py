"""Editing-session state and save coordination."""

from .language import DEFAULT_LANGUAGE, LANGUAGE_EXTENSIONS, language_for_path
from .preferences import EditorPreferences
from .saving import SaveCoordinator, SaveReport
from .session import EditorSession, OpenFile, SessionChange

__all__ = [
    "DEFAULT_LANGUAGE",
    "EditorPreferences",
    "EditorSession",
    "LANGUAGE_EXTENSIONS",
    "OpenFile",
    "SaveCoordinator",
    "SaveReport",
    "SessionChange",
    "language_for_path",
]
