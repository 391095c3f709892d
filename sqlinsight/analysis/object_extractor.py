"""
Object reference extraction from merged execution plans
"""

from typing import Dict, List, Tuple, Union

from sqlinsight.analysis.plan_parser import PlanDocument
from sqlinsight.core.constants import TEMP_OBJECT_SIGILS
from sqlinsight.core.logger import get_logger
from sqlinsight.models.analysis_models import ExecutionPlanDocument, ObjectReference

logger = get_logger('analysis.object_extractor')


class ObjectReferenceExtractor:
    """
    Collects the unique schema-qualified objects a plan touches.

    Temp tables, table variables and references without a database or
    schema are skipped. Duplicates are matched case-insensitively and the
    first spelling seen wins. Output is sorted so repeated runs on the same
    plan yield the same list.
    """

    @staticmethod
    def is_temp_object(name: str) -> bool:
        return name.startswith(TEMP_OBJECT_SIGILS)

    def extract(
        self,
        plan: Union[ExecutionPlanDocument, PlanDocument, str],
    ) -> List[ObjectReference]:
        if isinstance(plan, ExecutionPlanDocument):
            document = PlanDocument.parse(plan.merged_xml)
        elif isinstance(plan, PlanDocument):
            document = plan
        else:
            document = PlanDocument.parse(plan)

        unique: Dict[Tuple[str, str, str], ObjectReference] = {}
        skipped = 0
        for node in document.object_nodes():
            if not node.table or not node.database or not node.schema:
                skipped += 1
                continue
            if self.is_temp_object(node.table):
                skipped += 1
                continue
            ref = ObjectReference(database=node.database, schema=node.schema, name=node.table)
            unique.setdefault(ref.key, ref)

        references = [unique[key] for key in sorted(unique)]
        logger.info(
            f"Extracted {len(references)} referenced object(s)"
            + (f", skipped {skipped} temp/unqualified node(s)" if skipped else "")
        )
        return references
