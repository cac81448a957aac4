import logging
import re
from typing import Optional, Tuple
from config import Config
from database.repository import BomRepository
from models.bom_models import Bom
from models.errors import ConcurrencyConflict, ValidationError

logger = logging.getLogger(__name__)

INITIAL_VERSION = "v1"

# Trailing run of digits: "v1" -> ("v", "1"), "v.01" -> ("v.", "01"), "v1.9" -> ("v1.", "9")
_SUFFIX_RE = re.compile(r"^(.*?)(\d+)$")


def parse_version(label: str) -> Optional[Tuple[str, int, int]]:
    """Split a label into (prefix, number, digit width); None when it has no numeric suffix"""
    match = _SUFFIX_RE.match((label or "").strip())
    if not match:
        return None
    prefix, digits = match.groups()
    return prefix, int(digits), len(digits)


def bump_version(label: str) -> str:
    """
    Increment the numeric suffix, keeping prefix and zero padding
    Examples:
      v1    -> v2
      v.09  -> v.10
      v1.9  -> v1.10
    """
    parsed = parse_version(label)
    if parsed is None:
        raise ValidationError(f"Cannot auto-increment version '{label}'", {"version": label})
    prefix, number, width = parsed
    return f"{prefix}{number + 1:0{width}d}"


class VersionAllocator:
    """Allocates strictly increasing version labels per (name, level, parent_id)"""

    def __init__(self, repository: BomRepository, max_retries: Optional[int] = None):
        self.repo = repository
        self.max_retries = max_retries or Config.VERSION_ALLOCATION_RETRIES

    def next_version(self, name: str, level: int, parent_id: Optional[str] = None) -> str:
        if not name or not name.strip():
            raise ValidationError("BOM name is required", {"field": "name"})

        existing = self.repo.list_boms_by_identity(name, level, parent_id)
        highest = None
        for bom in existing:
            parsed = parse_version(bom.version)
            if parsed and (highest is None or parsed[1] > highest[1]):
                highest = (bom.version, parsed[1])

        if highest is None:
            return INITIAL_VERSION
        return bump_version(highest[0])

    def insert_new_version(self, bom: Bom) -> Bom:
        """
        Allocate a version for bom and insert it
        Must run inside the caller's transaction so allocation and insert commit together
        """
        with self.repo.transaction():
            for attempt in range(1, self.max_retries + 1):
                bom.version = self.next_version(bom.name, bom.level, bom.parent_id)
                try:
                    return self.repo.insert_bom(bom)
                except ConcurrencyConflict:
                    logger.warning(
                        f"Version {bom.version} of '{bom.name}' taken, "
                        f"retrying ({attempt}/{self.max_retries})"
                    )

            raise ConcurrencyConflict(
                f"Could not allocate a version for '{bom.name}' after {self.max_retries} attempts",
                {"name": bom.name, "level": bom.level, "parent_id": bom.parent_id},
            )
