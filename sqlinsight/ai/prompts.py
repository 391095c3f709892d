"""
Analysis prompts - built-in templates, YAML template store and prompt assembly

A template body is the instruction text for one analysis type. The assembler
never edits it; it only appends clearly delimited context sections:

    === BEGIN SQL SCRIPT ===
    ...
    === END SQL SCRIPT ===
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

from sqlinsight.core.constants import (
    AnalysisType,
    REVIEW_BLOCK_HEADER,
    TUNING_BLOCK_HEADER,
)
from sqlinsight.core.exceptions import ConfigurationError, EmptyContextError
from sqlinsight.core.logger import get_logger
from sqlinsight.models.analysis_models import AnalysisContext, PromptTemplate

logger = get_logger('ai.prompts')


# ═══════════════════════════════════════════════════════════════════════════════
# SYSTEM PROMPTS
# ═══════════════════════════════════════════════════════════════════════════════

SYSTEM_PROMPTS = {
    AnalysisType.TUNING: """You are a senior Microsoft SQL Server performance tuning specialist with 15+ years of experience.

## EXPERTISE:
- Reading estimated and actual execution plans
- Index strategy (clustered, nonclustered, filtered, covering, columnstore)
- Cardinality estimation, parameter sniffing and plan cache problems
- Rewriting T-SQL into set-based, sargable forms

## RULES:
1. Every recommendation must be concrete and directly applicable
2. Base every finding on the supplied plan and schema, never on guesses
3. Give complete, runnable T-SQL for every index or rewrite you propose
4. Mention version-specific features only if the engine version supports them""",

    AnalysisType.CODE_REVIEW: """You are a senior T-SQL code reviewer.

## EXPERTISE:
- T-SQL best practices and anti-pattern detection
- Set-based vs cursor-based processing
- Temp table and table variable usage
- Transaction scope, isolation levels and TRY/CATCH error handling
- Dynamic SQL safety

## RULES:
1. Review only the code you are given; no execution plan or schema is available
2. Every finding must point at a specific statement
3. Propose corrected T-SQL for every finding""",
}


_ANNOTATION_RULES = """## OUTPUT FORMAT:
Return the COMPLETE original script, unchanged, with your findings inserted as
comment blocks directly above the statements they concern. Do not wrap the
answer in markdown. Every comment block must look exactly like this:

/* {header}
1. Problem: <one line problem statement>
   Recommendation: <what to change>
   Example: <T-SQL>
2. Problem: ...
*/

Number the items inside each block starting from 1."""


DEFAULT_TEMPLATES = {
    "default_tuning": PromptTemplate(
        name="default_tuning",
        analysis_type=AnalysisType.TUNING,
        system_prompt=SYSTEM_PROMPTS[AnalysisType.TUNING],
        body=(
            "Analyze the SQL script below for performance problems. Use the engine "
            "version, the schema of every referenced table and the execution plan to "
            "find expensive operators, missing or unused indexes, implicit conversions, "
            "non-sargable predicates and cardinality estimation issues.\n\n"
            + _ANNOTATION_RULES.format(header=TUNING_BLOCK_HEADER)
        ),
    ),
    "default_code_review": PromptTemplate(
        name="default_code_review",
        analysis_type=AnalysisType.CODE_REVIEW,
        system_prompt=SYSTEM_PROMPTS[AnalysisType.CODE_REVIEW],
        body=(
            "Review the SQL script below for correctness, maintainability and "
            "T-SQL anti-patterns: SELECT *, cursors and loops, missing SET NOCOUNT ON, "
            "missing error handling, unsafe dynamic SQL and non-deterministic logic.\n\n"
            + _ANNOTATION_RULES.format(header=REVIEW_BLOCK_HEADER)
        ),
    ),
}


class PromptTemplateStore:
    """
    Named prompt templates: built-ins plus optional YAML files

    Each *.yaml / *.yml file in the templates directory holds one template:

        name: strict_tuning
        type: Tuning
        system: |
          You are ...
        body: |
          Analyze ...

    A file template with the same name as a built-in replaces it.
    """

    def __init__(self, templates_dir: Optional[Path] = None):
        self.templates_dir = Path(templates_dir) if templates_dir else None
        self._templates: Dict[str, PromptTemplate] = dict(DEFAULT_TEMPLATES)
        if self.templates_dir is not None:
            self._load_directory(self.templates_dir)

    def _load_directory(self, directory: Path) -> None:
        if not directory.is_dir():
            raise ConfigurationError(f"Prompt templates directory not found: {directory}")

        files = sorted(list(directory.glob("*.yaml")) + list(directory.glob("*.yml")))
        for path in files:
            template = self.load_file(path)
            self._templates[template.name] = template
        logger.info(f"Loaded {len(files)} prompt template(s) from {directory}")

    @staticmethod
    def load_file(path: Path) -> PromptTemplate:
        """
        Raises:
            ConfigurationError: If the file is not valid YAML or misses a field
        """
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid prompt template {path.name}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Prompt template {path.name} must be a mapping")

        missing = [key for key in ("type", "body") if not data.get(key)]
        if missing:
            raise ConfigurationError(
                f"Prompt template {path.name} is missing: {', '.join(missing)}"
            )

        try:
            analysis_type = AnalysisType.parse(str(data["type"]))
        except ValueError as e:
            raise ConfigurationError(f"Prompt template {path.name}: {e}") from e

        return PromptTemplate(
            name=str(data.get("name") or path.stem),
            analysis_type=analysis_type,
            body=str(data["body"]),
            system_prompt=str(data.get("system") or SYSTEM_PROMPTS[analysis_type]),
        )

    @property
    def names(self) -> List[str]:
        return sorted(self._templates)

    def get(self, name: str, analysis_type: AnalysisType) -> PromptTemplate:
        """
        Raises:
            ConfigurationError: If the template is unknown or belongs to another
                analysis type
        """
        template = self._templates.get(name)
        if template is None:
            raise ConfigurationError(
                f"Unknown prompt template '{name}'. Available: {', '.join(self.names)}"
            )
        if template.analysis_type != analysis_type:
            raise ConfigurationError(
                f"Prompt template '{name}' is a {template.analysis_type.value} template, "
                f"not {AnalysisType(analysis_type).value}"
            )
        return template


def delimited_section(title: str, content: str) -> str:
    return f"=== BEGIN {title} ===\n{content}\n=== END {title} ==="


class PromptAssembler:
    """Builds the (system_prompt, user_prompt) pair for one analysis"""

    SECTION_ENGINE_VERSION = "ENGINE VERSION"
    SECTION_SCRIPT = "SQL SCRIPT"
    SECTION_SCHEMA = "SCHEMA"
    SECTION_PLAN = "EXECUTION PLAN"

    def build(self, context: AnalysisContext) -> Tuple[str, str]:
        """
        Returns:
            (system_prompt, user_prompt) tuple

        Raises:
            EmptyContextError: If a Tuning context has no plan or no schema
        """
        template = context.template
        sections = self._sections(context)
        user_prompt = template.body + "\n\n" + "\n\n".join(
            delimited_section(title, content) for title, content in sections
        ) + "\n"

        logger.debug(
            f"Assembled {template.analysis_type.value} prompt for {context.script.base_name} "
            f"({len(user_prompt):,} chars, sections: {', '.join(t for t, _ in sections)})"
        )
        return template.system_prompt, user_prompt

    def _sections(self, context: AnalysisContext) -> List[Tuple[str, str]]:
        if context.template.analysis_type == AnalysisType.CODE_REVIEW:
            return [(self.SECTION_SCRIPT, context.script.sql_text)]

        name = context.script.base_name
        if context.plan is None:
            raise EmptyContextError("Tuning prompt requires an execution plan", object_name=name)
        if context.schema is None or not context.schema.resolved_count:
            raise EmptyContextError("Tuning prompt requires schema metadata", object_name=name)

        return [
            (self.SECTION_ENGINE_VERSION, context.engine_version or "Unknown"),
            (self.SECTION_SCRIPT, context.script.sql_text),
            (self.SECTION_SCHEMA, context.schema.to_text()),
            (self.SECTION_PLAN, context.plan.merged_xml),
        ]
