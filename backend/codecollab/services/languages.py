"""
CodeCollab - Language Strategy Table

One entry per supported language: where its artifacts go, how to compile
them, and what command runs the result.
"""

import os
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from codecollab.core.config import settings
from codecollab.core.errors import UnsupportedLanguage
from codecollab.schemas.execution import Language


@dataclass(frozen=True)
class RunArtifacts:
    """Filesystem layout of one run."""
    run_dir: str
    source_path: str
    executable_path: Optional[str] = None
    entry_name: Optional[str] = None
    extra_paths: List[str] = field(default_factory=list)

    @property
    def paths(self) -> List[str]:
        """Every file this run may leave behind."""
        found = [self.source_path]
        if self.executable_path:
            found.append(self.executable_path)
        return found + list(self.extra_paths)


@dataclass(frozen=True)
class LanguageSpec:
    """How one language is laid out, compiled and started."""
    language: Language
    extension: str
    run_command: Callable[[RunArtifacts], List[str]]
    compile_command: Optional[Callable[[RunArtifacts], List[str]]] = None
    produces_executable: bool = False
    source_named_after_entry: bool = False

    @property
    def is_compiled(self) -> bool:
        return self.compile_command is not None

    def layout(self, run_dir: str, stamp: str, entry_name: Optional[str] = None) -> RunArtifacts:
        """Artifact paths for a run inside run_dir."""
        if self.source_named_after_entry and entry_name:
            source_path = os.path.join(run_dir, f"{entry_name}.{self.extension}")
            extra = [os.path.join(run_dir, f"{entry_name}.class")]
        else:
            source_path = os.path.join(run_dir, f"main_{stamp}.{self.extension}")
            extra = []

        executable_path = None
        if self.produces_executable:
            executable_path = os.path.join(run_dir, f"main_{stamp}.out")

        return RunArtifacts(
            run_dir=run_dir,
            source_path=source_path,
            executable_path=executable_path,
            entry_name=entry_name,
            extra_paths=extra,
        )


LANGUAGES: Dict[Language, LanguageSpec] = {
    Language.PYTHON: LanguageSpec(
        language=Language.PYTHON,
        extension="py",
        run_command=lambda a: [settings.PYTHON_BIN, "-u", a.source_path],
    ),
    Language.JAVASCRIPT: LanguageSpec(
        language=Language.JAVASCRIPT,
        extension="js",
        run_command=lambda a: [settings.NODE_BIN, a.source_path],
    ),
    Language.C: LanguageSpec(
        language=Language.C,
        extension="c",
        compile_command=lambda a: [settings.GCC_BIN, a.source_path, "-o", a.executable_path],
        run_command=lambda a: [a.executable_path],
        produces_executable=True,
    ),
    Language.CPP: LanguageSpec(
        language=Language.CPP,
        extension="cpp",
        compile_command=lambda a: [settings.GXX_BIN, a.source_path, "-o", a.executable_path],
        run_command=lambda a: [a.executable_path],
        produces_executable=True,
    ),
    Language.JAVA: LanguageSpec(
        language=Language.JAVA,
        extension="java",
        compile_command=lambda a: [settings.JAVAC_BIN, a.source_path],
        run_command=lambda a: [settings.JAVA_BIN, "-cp", a.run_dir, a.entry_name],
        source_named_after_entry=True,
    ),
}


def resolve_language(tag) -> LanguageSpec:
    """
    Look up the strategy for a language tag.

    Raises:
        UnsupportedLanguage: Tag is not one of the supported languages
    """
    try:
        language = Language(tag)
    except ValueError:
        raise UnsupportedLanguage(tag)
    return LANGUAGES[language]
