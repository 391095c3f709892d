"""
Recommendation parser and summary digest

The AI returns the original script annotated with comment blocks such as:

    /* ==== AI TUNING RECOMMENDATION ====
    1. Problem: Clustered index scan on Sales.Orders
       Recommendation: ...
    2. Problem: ...
    */

Parsing is tolerant: malformed output never raises, it only yields fewer
blocks or findings.
"""

import re
from typing import List, Optional

from sqlinsight.core.constants import AnalysisType
from sqlinsight.core.logger import get_logger
from sqlinsight.models.analysis_models import AnalysisResult, RecommendationBlock

logger = get_logger('analysis.summary')

BLOCK_KINDS = {
    "TUNING RECOMMENDATION": "tuning",
    "CODE REVIEW": "review",
}

_BLOCK_START = r"/\*+[ \t]*=+[ \t]*AI[ \t]+(TUNING[ \t]+RECOMMENDATION|CODE[ \t]+REVIEW)[ \t]*=*"
_BLOCK = re.compile(
    _BLOCK_START + r"(.*?)(?=\*/|" + _BLOCK_START + r"|\Z)",
    re.IGNORECASE | re.DOTALL,
)
_ITEM_START = re.compile(r"^[ \t]*(?:--[ \t]*)?(\d+)[ \t]*[.)][ \t]*", re.MULTILINE)
_STATEMENT = re.compile(
    r"(?:\*\*)?\b(?:Problem|Finding|Issue)\b(?:\*\*)?[ \t]*:(?:\*\*)?[ \t]*(\S[^\r\n]*)",
    re.IGNORECASE,
)


class RecommendationParser:
    """Extracts recommendation blocks and their findings from annotated SQL"""

    def parse(self, annotated_script: Optional[str]) -> AnalysisResult:
        text = annotated_script or ""
        blocks: List[RecommendationBlock] = []

        for match in _BLOCK.finditer(text):
            header = " ".join(match.group(1).upper().split())
            blocks.append(RecommendationBlock(
                kind=BLOCK_KINDS.get(header, "tuning"),
                header=f"AI {header}",
                findings=tuple(self._parse_findings(match.group(2))),
            ))

        logger.debug(f"Parsed {len(blocks)} recommendation block(s)")
        return AnalysisResult(annotated_script=text, blocks=tuple(blocks))

    @staticmethod
    def _parse_findings(body: str) -> List[str]:
        """Problem statement of every numbered sub-item that has one"""
        starts = list(_ITEM_START.finditer(body))
        findings: List[str] = []
        for i, start in enumerate(starts):
            end = starts[i + 1].start() if i + 1 < len(starts) else len(body)
            item = body[start.end():end]
            statement = _STATEMENT.search(item)
            if statement:
                findings.append(statement.group(1).strip().rstrip('*').strip())
        return findings


class SummaryBuilder:
    """Renders the plain-text digest written next to the annotated script"""

    def build(
        self,
        base_name: str,
        result: AnalysisResult,
        analysis_type: AnalysisType = AnalysisType.TUNING,
    ) -> str:
        lines = [
            "AI Analysis Summary",
            "===================",
            f"Script: {base_name}",
            f"Analysis type: {AnalysisType(analysis_type).value}",
            f"Recommendation blocks: {result.block_count}",
            f"Findings: {result.finding_count}",
            "",
        ]

        problems = result.problems
        if problems:
            lines.append("Problems:")
            width = len(str(len(problems)))
            for number, problem in enumerate(problems, start=1):
                lines.append(f"  {number:>{width}}. {problem}")
        elif result.block_count:
            lines.append("Recommendation blocks contained no numbered findings.")
        else:
            lines.append("No recommendation blocks found in the annotated script.")

        return "\n".join(lines) + "\n"
