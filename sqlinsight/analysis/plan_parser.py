"""
Execution Plan XML Parser

Minimal typed view over SQL Server Showplan XML. Only the node shapes the
pipeline consumes are exposed:

- statement boundaries (children of Batch/Statements)
- object references (Object elements: Database/Schema/Table/Index)

Works on both a standalone Showplan document and the wrapped collection
produced by the plan merger, where fragments sit under a synthetic root.

Reference: https://learn.microsoft.com/en-us/sql/relational-databases/showplan-logical-and-physical-operators-reference
"""

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from sqlinsight.core.constants import SHOWPLAN_NAMESPACE
from sqlinsight.core.exceptions import PlanGenerationError

_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>\s*")


def strip_xml_declaration(xml_string: str) -> str:
    """Drop a leading <?xml ...?> declaration (engine output declares utf-16)"""
    return _XML_DECLARATION.sub("", xml_string, count=1)


def local_name(tag: str) -> str:
    """Element tag without namespace"""
    return tag.rsplit('}', 1)[-1] if '}' in tag else tag


def namespace_of(tag: str) -> str:
    """Namespace URI of a tag, or '' when unqualified"""
    return tag[1:].split('}', 1)[0] if tag.startswith('{') else ''


def unquote_identifier(value: Optional[str]) -> str:
    """[Sales] -> Sales, [a]]b] -> a]b"""
    value = (value or "").strip()
    if len(value) >= 2 and value.startswith('[') and value.endswith(']'):
        return value[1:-1].replace(']]', ']')
    return value


@dataclass(frozen=True)
class StatementNode:
    """One statement boundary in the plan"""
    index: int
    kind: str  # StmtSimple, StmtCond, StmtCursor, ...
    statement_type: str = ""
    statement_text: str = ""


@dataclass(frozen=True)
class ObjectNode:
    """Object reference as written in the plan (identifiers unquoted)"""
    database: str = ""
    schema: str = ""
    table: str = ""
    index: str = ""


@dataclass
class PlanDocument:
    """Parsed plan document"""
    root: ET.Element
    xml: str = field(default="", repr=False)

    @classmethod
    def parse(cls, xml_string: str, object_name: Optional[str] = None) -> 'PlanDocument':
        """
        Parse plan XML

        Raises:
            PlanGenerationError: If the XML is empty or not well-formed
        """
        if not xml_string or not xml_string.strip():
            raise PlanGenerationError("Plan XML is empty", object_name=object_name)
        try:
            root = ET.fromstring(strip_xml_declaration(xml_string))
        except ET.ParseError as e:
            raise PlanGenerationError(
                f"Plan XML is not well-formed: {e}", object_name=object_name
            ) from e
        return cls(root=root, xml=xml_string)

    def _iter_showplan(self, name: str) -> Iterator[ET.Element]:
        """Elements with the given local name in the Showplan namespace (or none)"""
        for elem in self.root.iter():
            if local_name(elem.tag) == name and namespace_of(elem.tag) in (SHOWPLAN_NAMESPACE, ''):
                yield elem

    def statement_elements(self) -> List[ET.Element]:
        """Top-level statement elements, in document order"""
        result: List[ET.Element] = []
        for batch in self._iter_showplan('Batch'):
            for statements in batch:
                if local_name(statements.tag) != 'Statements':
                    continue
                result.extend(list(statements))
        return result

    def statements(self) -> List[StatementNode]:
        return [
            StatementNode(
                index=i,
                kind=local_name(elem.tag),
                statement_type=elem.get('StatementType', ''),
                statement_text=elem.get('StatementText', ''),
            )
            for i, elem in enumerate(self.statement_elements(), start=1)
        ]

    @property
    def statement_count(self) -> int:
        return len(self.statement_elements())

    def object_nodes(self) -> Iterator[ObjectNode]:
        """Every Object element, in document order"""
        for elem in self._iter_showplan('Object'):
            yield ObjectNode(
                database=unquote_identifier(elem.get('Database')),
                schema=unquote_identifier(elem.get('Schema')),
                table=unquote_identifier(elem.get('Table')),
                index=unquote_identifier(elem.get('Index')),
            )
