"""Language detection from extensions, file headers and paradigm evidence."""

import logging
import re
from typing import Dict, List

from ..context import SharedAnalysisContext
from ..grammars import LanguageRegistry
from ..models import FileNode, LanguageDetails, PatternDefinition
from .base import Analyzer

logger = logging.getLogger(__name__)

HEADER_PATTERNS = [
    PatternDefinition(
        id="header-shebang",
        type="file_header",
        name="Shebang Pattern",
        regex=r"\A#!\S*/(?:env\s+)?(\w+)",
        description="Script interpreter indicator",
        confidence=0.8,
    ),
    PatternDefinition(
        id="header-xml",
        type="file_header",
        name="XML Declaration",
        regex=r"\A<\?xml\s+version=",
        description="XML declaration header",
        confidence=0.9,
    ),
    PatternDefinition(
        id="header-html",
        type="file_header",
        name="HTML Doctype",
        regex=r"<!DOCTYPE\s+html",
        description="HTML doctype declaration",
        confidence=0.9,
    ),
    PatternDefinition(
        id="header-php",
        type="file_header",
        name="PHP Opening Tag",
        regex=r"<\?php",
        description="PHP opening tag",
        confidence=0.9,
    ),
]

# Interpreter named by a shebang -> language
INTERPRETER_LANGUAGES = {
    "python": "python",
    "python3": "python",
    "node": "javascript",
    "bash": "shell",
    "sh": "shell",
    "zsh": "shell",
    "php": "php",
    "ruby": "ruby",
}

HEADER_LANGUAGES = {
    "header-xml": "xml",
    "header-html": "html",
    "header-php": "php",
}

PARADIGM_EVIDENCE = [
    ("object-oriented", re.compile(r"\b(class|interface|extends|implements|prototype)\b", re.IGNORECASE)),
    ("functional", re.compile(r"\b(function|lambda|map|filter|reduce)\b|=>", re.IGNORECASE)),
    ("modular", re.compile(r"\b(import|require|include|using)\b", re.IGNORECASE)),
]

IMPORT_LINE = re.compile(r"\b(import|require|include|using|from)\b", re.IGNORECASE)

MAX_EVIDENCE_CONTENT = 500_000
MAX_IMPORT_EXAMPLES = 5
MAX_PARADIGMS = 3


class LanguageDetectorAnalyzer(Analyzer):
    """Tags every file with its language and builds the language structure."""

    id = "language-detector"
    name = "Language Detector"
    priority = 10
    dependencies: List[str] = []

    def __init__(self, registry: LanguageRegistry):
        self.registry = registry
        self._paradigm_counts: Dict[str, Dict[str, int]] = {}

    def initialize(self, context: SharedAnalysisContext) -> None:
        self._paradigm_counts = {}
        for definition in HEADER_PATTERNS:
            context.register_pattern(definition)

    def analyze_file(self, file: FileNode, content: str, context: SharedAnalysisContext) -> None:
        header_matches = context.find_matching_patterns(content, "file_header")
        file.metadata.header_patterns = [match.pattern_id for match in header_matches]

        language = self.registry.detect_language(file.path)
        if language is not None:
            file.metadata.detection_method = "extension"
        else:
            for match in header_matches:
                if match.pattern_id == "header-shebang" and match.groups:
                    language = INTERPRETER_LANGUAGES.get((match.groups[0] or "").lower())
                else:
                    language = HEADER_LANGUAGES.get(match.pattern_id)
                if language:
                    file.metadata.detection_method = "header"
                    break
        file.language = language

        if language is None:
            logger.debug(f"No language detected for {file.path}")
            return

        self._collect_evidence(file, content)
        self._record_language(file, context)

    def _collect_evidence(self, file: FileNode, content: str) -> None:
        if len(content) > MAX_EVIDENCE_CONTENT:
            return

        evidence = [paradigm for paradigm, pattern in PARADIGM_EVIDENCE if pattern.search(content)]
        file.metadata.paradigm_evidence = evidence

        if "modular" in evidence:
            examples = []
            for line in content.splitlines():
                if IMPORT_LINE.search(line):
                    examples.append(line.strip())
                    if len(examples) >= MAX_IMPORT_EXAMPLES:
                        break
            file.metadata.import_examples = examples

        counts = self._paradigm_counts.setdefault(file.language, {})
        for paradigm in evidence:
            counts[paradigm] = counts.get(paradigm, 0) + 1

    def _record_language(self, file: FileNode, context: SharedAnalysisContext) -> None:
        details = context.languages.languages.get(file.language)
        if details is None:
            details = LanguageDetails(name=file.language)
            context.languages.languages[file.language] = details

        if file.extension and file.extension not in details.extensions:
            details.extensions.append(file.extension)
        details.paths.append(file.path)
        details.file_count += 1
        details.total_size += file.size

        counts = context.file_system.language_counts
        counts[file.language] = counts.get(file.language, 0) + 1

    def integrate(self, context: SharedAnalysisContext) -> None:
        structure = context.languages
        overall: Dict[str, int] = {}

        for language, details in structure.languages.items():
            counts = self._paradigm_counts.get(language, {})
            ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
            details.paradigms = [name for name, _ in ranked[:MAX_PARADIGMS]] or ["general-purpose"]
            details.extensions.sort()
            details.paths.sort()
            for name, count in counts.items():
                overall[name] = overall.get(name, 0) + count

        structure.paradigms = dict(sorted(overall.items()))
        if structure.languages:
            structure.dominant = min(
                structure.languages.values(), key=lambda d: (-d.file_count, d.name)
            ).name

        context.record_metric("language_count", len(structure.languages))
        dominant = structure.languages.get(structure.dominant) if structure.dominant else None
        context.record_metric("dominant_language_file_count", dominant.file_count if dominant else 0)
        logger.info(
            f"Detected {len(structure.languages)} languages (dominant: {structure.dominant or 'none'})"
        )

    def cleanup(self) -> None:
        self._paradigm_counts = {}
