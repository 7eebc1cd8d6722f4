"""Catalog of selectable base pattern families discovered on disk."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import Any, Dict, List

from slm_app.storage.base import FileStoreBase

CUSTOM_DIR_NAME = "custom_patterns"
CUSTOM_FAMILY = "custom"
CUSTOM_PROPERTY = "filename"
NAME_DELIMITER = "_"

log = logging.getLogger("slm_app")


@dataclass(slots=True)
class PatternFamily:
    """Property axes of one family, in first-seen order, with every observed value."""
    properties: List[str] = field(default_factory=list)
    values: Dict[str, List[str]] = field(default_factory=dict)

    def add(self, prop: str, value: str) -> None:
        if prop not in self.values:
            self.properties.append(prop)
            self.values[prop] = []
        self.values[prop].append(value)


@dataclass(slots=True)
class PatternCatalog:
    families: Dict[str, PatternFamily] = field(default_factory=dict)
    pattern_names: List[str] = field(default_factory=list)

    def family(self, name: str) -> PatternFamily:
        if name not in self.families:
            self.families[name] = PatternFamily()
        return self.families[name]

    def to_payload(self) -> Dict[str, Any]:
        """Flattened ``availablePatterns`` form sent to the GUI."""
        payload: Dict[str, Any] = {}
        for name, fam in self.families.items():
            entry: Dict[str, Any] = {prop: {"values": list(vals)} for prop, vals in fam.values.items()}
            entry["properties"] = list(fam.properties)
            payload[name] = entry
        payload["patternNames"] = list(self.pattern_names)
        return payload


def split_stem(stem: str) -> tuple[str, list[tuple[str, str]]] | None:
    """
    Split ``name_prop1_val1_prop2_val2`` into (name, [(prop, val), ...]).

    Returns None when a property has no value.
    """
    parts = stem.split(NAME_DELIMITER)
    name, rest = parts[0], parts[1:]
    if len(rest) % 2:
        return None
    return name, list(zip(rest[0::2], rest[1::2]))


def build_catalog(store: FileStoreBase, base_dir: Path) -> PatternCatalog:
    catalog = PatternCatalog()

    for file_name in store.list_files(base_dir):
        parsed = split_stem(PurePath(file_name).stem)
        if parsed is None:
            log.debug("Skipping pattern file with unpaired property: %s", file_name)
            continue
        name, pairs = parsed
        fam = catalog.family(name)
        for prop, value in pairs:
            fam.add(prop, value)

    for file_name in store.list_files(Path(base_dir) / CUSTOM_DIR_NAME):
        catalog.family(CUSTOM_FAMILY).add(CUSTOM_PROPERTY, file_name)

    catalog.pattern_names = sorted(catalog.families)
    return catalog
