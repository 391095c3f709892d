"""
Script loader - resolves script sources into ScriptInput records

A source is a .sql file, a folder of .sql files (non-recursive, sorted by
name) or literal SQL text.
"""

import codecs
import re
from pathlib import Path
from typing import Iterable, List, Optional, Union

from sqlinsight.core.exceptions import ScriptSourceError
from sqlinsight.core.logger import get_logger
from sqlinsight.models.analysis_models import ScriptInput

logger = get_logger('services.script_loader')

SQL_SUFFIXES = (".sql",)
_UNSAFE_NAME_CHARS = re.compile(r"[^\w.\-]+")


def safe_base_name(name: str) -> str:
    """File-system safe base name (used for item folder names)"""
    cleaned = _UNSAFE_NAME_CHARS.sub("_", name.strip()).strip("._")
    return cleaned or "Script"


def read_script_file(path: Path) -> str:
    """
    Read a script file, honouring UTF-16 and UTF-8 byte order marks

    SSMS saves scripts as UTF-16 LE with BOM by default.
    """
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise ScriptSourceError(f"Cannot read script file: {e}", path=str(path)) from e

    if raw.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        encoding = "utf-16"
    else:
        encoding = "utf-8-sig"

    try:
        return raw.decode(encoding)
    except UnicodeDecodeError as e:
        raise ScriptSourceError(
            f"Script file is not valid {encoding} text", path=str(path)
        ) from e


class ScriptLoader:
    """
    Builds the ordered list of scripts for a batch

    Usage:
        loader = ScriptLoader()
        scripts = loader.load(paths=["queries/"], texts=["SELECT 1"])
    """

    def __init__(self):
        self._text_counter = 0

    def from_file(self, path: Union[str, Path]) -> ScriptInput:
        path = Path(path)
        return ScriptInput(
            base_name=safe_base_name(path.stem),
            sql_text=read_script_file(path),
            source_path=path,
        )

    def from_folder(self, folder: Union[str, Path]) -> List[ScriptInput]:
        folder = Path(folder)
        files = sorted(
            (p for p in folder.iterdir() if p.is_file() and p.suffix.lower() in SQL_SUFFIXES),
            key=lambda p: p.name.lower(),
        )
        if not files:
            logger.warning(f"No .sql files found in {folder}")
        return [self.from_file(p) for p in files]

    def from_text(self, sql_text: str, name: Optional[str] = None) -> ScriptInput:
        self._text_counter += 1
        return ScriptInput(
            base_name=safe_base_name(name) if name else f"Script_{self._text_counter}",
            sql_text=sql_text,
        )

    def from_path(self, source: Union[str, Path]) -> List[ScriptInput]:
        """
        Raises:
            ScriptSourceError: If the path does not exist
        """
        path = Path(source).expanduser()
        if path.is_dir():
            return self.from_folder(path)
        if path.is_file():
            return [self.from_file(path)]
        raise ScriptSourceError("Script source not found", path=str(path))

    def load(
        self,
        paths: Iterable[Union[str, Path]] = (),
        texts: Iterable[str] = (),
    ) -> List[ScriptInput]:
        """
        Resolve every source; paths first, then literal texts, in the given order.

        Scripts with no SQL text are skipped with a warning.
        """
        scripts: List[ScriptInput] = []
        for source in paths:
            scripts.extend(self.from_path(source))
        for sql_text in texts:
            scripts.append(self.from_text(sql_text))

        usable = []
        for script in scripts:
            if not script.sql_text.strip():
                logger.warning(f"Skipping empty script: {script.source_path or script.base_name}")
                continue
            usable.append(script)

        logger.info(f"Resolved {len(usable)} script(s)")
        return usable
