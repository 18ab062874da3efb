"""
Schema snapshot bound to a visit note at submission time.

The snapshot is a structural copy of the template's sections and fields,
frozen so later template edits can never change how a stored note reads.
Field types are plain strings: a note written by a newer build with a
type this build does not know still loads and renders as unsupported.
"""
from __future__ import annotations

import copy
import hashlib
import json
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from carebase.modules.fields.types import schema_sections


class SnapshotField(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    description: Optional[str] = None
    type: str
    required: bool = False
    order: int = 0
    config: Dict[str, Any] = Field(default_factory=dict)


class SnapshotSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: Optional[str] = None
    order: int = 0
    fields: Tuple[SnapshotField, ...] = ()


class SchemaSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    template_id: str
    template_name: str
    version: int
    sections: Tuple[SnapshotSection, ...] = ()

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json"), ensure_ascii=False, sort_keys=True)

    def digest(self) -> str:
        return digest_of(self.to_json())


def digest_of(snapshot_json: str) -> str:
    return hashlib.sha256(snapshot_json.encode("utf-8")).hexdigest()


def build_snapshot(template: Mapping[str, Any]) -> SchemaSnapshot:
    # deep copy: config dicts must not alias the template's
    sections = copy.deepcopy(schema_sections(template))
    return SchemaSnapshot(
        template_id=str(template["id"]),
        template_name=str(template["name"]),
        version=int(template["version"]),
        sections=tuple(
            SnapshotSection(
                id=s["id"],
                title=s["title"],
                description=s["description"],
                order=s["order"],
                fields=tuple(SnapshotField(**f) for f in s["fields"]),
            )
            for s in sections
        ),
    )
