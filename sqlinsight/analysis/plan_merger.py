"""
Execution plan merger

SQL Server returns one Showplan document per statement. The merger combines
them into a single document using one of two strategies:

- structural: every fragment's statement nodes are imported, in order, into a
  single BatchSequence/Batch/Statements of the first fragment's ShowPlanXML
  root. The result is a valid standalone .sqlplan file.
- wrap: fragments are concatenated under a synthetic root. Good enough for
  querying, but not a plan file SSMS can open.
"""

import xml.etree.ElementTree as ET
from typing import Iterable, List, Optional

from sqlinsight.analysis.plan_parser import (
    PlanDocument,
    local_name,
    namespace_of,
    strip_xml_declaration,
)
from sqlinsight.core.constants import (
    SHOWPLAN_NAMESPACE,
    SHOWPLAN_ROOT_MARKER,
    WRAP_ROOT_TAG,
)
from sqlinsight.core.exceptions import NoPlanFoundError, PlanMergeError
from sqlinsight.core.logger import get_logger
from sqlinsight.models.analysis_models import ExecutionPlanDocument

logger = get_logger('analysis.plan_merger')

# Serialize Showplan elements without an ns0: prefix
ET.register_namespace('', SHOWPLAN_NAMESPACE)

XML_HEADER = '<?xml version="1.0" encoding="utf-8"?>\n'

STRATEGY_STRUCTURAL = "structural"
STRATEGY_WRAP = "wrap"


class PlanMerger:
    """
    Combines per-statement plan fragments into one document

    Usage:
        merger = PlanMerger()
        plan = merger.merge(fragments, is_actual=False, object_name="Script01")
        plan.merged_xml  # standalone Showplan XML
    """

    def __init__(self, strict: bool = False):
        """
        Args:
            strict: raise PlanMergeError instead of falling back to the
                wrapped document when the structural merge fails
        """
        self.strict = strict

    @staticmethod
    def select_fragments(fragments: Iterable[Optional[str]]) -> List[str]:
        """Keep only Showplan fragments, with XML declarations removed"""
        selected = []
        for fragment in fragments:
            if not fragment:
                continue
            body = strip_xml_declaration(fragment).strip()
            if body.startswith(SHOWPLAN_ROOT_MARKER):
                selected.append(body)
        return selected

    @staticmethod
    def wrap(fragments: List[str]) -> str:
        """Lightweight strategy: fragments side by side under a synthetic root"""
        body = "\n".join(strip_xml_declaration(f).strip() for f in fragments)
        return f"{XML_HEADER}<{WRAP_ROOT_TAG}>\n{body}\n</{WRAP_ROOT_TAG}>\n"

    @staticmethod
    def merge_structural(fragments: List[str]) -> str:
        """
        Structural strategy: one canonical batch holding every statement

        Raises:
            PlanMergeError: If any fragment cannot be parsed or has no
                Batch/Statements node
        """
        if not fragments:
            raise PlanMergeError("No fragments to merge")

        statements: List[ET.Element] = []
        base: Optional[ET.Element] = None

        for number, fragment in enumerate(fragments, start=1):
            try:
                root = ET.fromstring(strip_xml_declaration(fragment))
            except ET.ParseError as e:
                raise PlanMergeError(f"Fragment {number} is not well-formed: {e}") from e

            if local_name(root.tag) != 'ShowPlanXML':
                raise PlanMergeError(
                    f"Fragment {number} root is <{local_name(root.tag)}>, expected <ShowPlanXML>"
                )

            fragment_statements = PlanDocument(root=root).statement_elements()
            if not fragment_statements:
                raise PlanMergeError(f"Fragment {number} has no Batch/Statements content")

            if base is None:
                base = root
            statements.extend(fragment_statements)

        ns = namespace_of(base.tag)

        def qualify(name: str) -> str:
            return f"{{{ns}}}{name}" if ns else name

        merged = ET.Element(base.tag, dict(base.attrib))
        batch_sequence = ET.SubElement(merged, qualify('BatchSequence'))
        batch = ET.SubElement(batch_sequence, qualify('Batch'))
        statements_node = ET.SubElement(batch, qualify('Statements'))
        statements_node.extend(statements)

        return XML_HEADER + ET.tostring(merged, encoding='unicode') + "\n"

    def merge(
        self,
        fragments: Iterable[Optional[str]],
        is_actual: bool = False,
        object_name: Optional[str] = None,
    ) -> ExecutionPlanDocument:
        """
        Merge raw engine output into one plan document

        Raises:
            NoPlanFoundError: If no fragment carries the Showplan root
            PlanMergeError: In strict mode, when the structural merge fails
            PlanGenerationError: If the merged document is not well-formed
        """
        selected = self.select_fragments(fragments)
        if not selected:
            raise NoPlanFoundError(object_name=object_name)

        strategy = STRATEGY_STRUCTURAL
        degraded = False
        try:
            merged_xml = self.merge_structural(selected)
        except PlanMergeError as e:
            if self.strict:
                raise PlanMergeError(e.message, object_name=object_name) from e
            logger.warning(
                f"Structural plan merge failed for {object_name or 'script'} ({e.message}); "
                f"falling back to wrapped plan document. The exported plan file is degraded "
                f"and cannot be opened as a standalone .sqlplan."
            )
            merged_xml = self.wrap(selected)
            strategy = STRATEGY_WRAP
            degraded = True

        # Well-formedness is required for every downstream stage
        document = PlanDocument.parse(merged_xml, object_name=object_name)
        logger.info(
            f"Merged {len(selected)} plan fragment(s) into {document.statement_count} "
            f"statement(s) using {strategy} strategy"
        )

        return ExecutionPlanDocument(
            fragments=tuple(selected),
            merged_xml=merged_xml,
            is_actual=is_actual,
            merge_strategy=strategy,
            degraded=degraded,
        )
