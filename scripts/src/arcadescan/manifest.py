"""Games manifest -- the persisted record the scan reads statuses from and writes back to.

Only the fields the scan needs are modelled. The parsed document is kept
alongside the model so a write-back changes `status` and nothing else.
"""

from __future__ import annotations

import copy
import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError

from arcadescan.engine.models import Status


class ManifestError(ValueError):
    pass


class ControlEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    device: str = "keyboard"
    input: str = ""
    action: str = ""


class GameEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    status: Status = Status.UNKNOWN
    controls: dict[str, list[ControlEntry]] = Field(default_factory=dict)

    @property
    def first_movement_input(self) -> str | None:
        movement = self.controls.get("movement") or []
        if not movement:
            return None
        return movement[0].input or None


class Manifest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    games: list[GameEntry] = Field(default_factory=list)
    _raw: dict = PrivateAttr(default_factory=dict)

    def get(self, entry_id: str) -> GameEntry | None:
        for game in self.games:
            if game.id == entry_id:
                return game
        return None

    def set_status(self, entry_id: str, status: Status) -> bool:
        """Update one entry's status. False when the id is not in the manifest."""
        game = self.get(entry_id)
        if game is None:
            return False
        game.status = status
        for raw_game in self._raw.get("games", []):
            if isinstance(raw_game, dict) and raw_game.get("id") == entry_id:
                raw_game["status"] = status.value
        return True

    def to_dict(self) -> dict:
        if self._raw:
            return self._raw
        return self.model_dump(mode="json")


def parse_manifest(raw: Any) -> Manifest:
    try:
        manifest = Manifest.model_validate(raw)
    except ValidationError as e:
        raise ManifestError(f"Invalid manifest: {e}") from e
    manifest._raw = copy.deepcopy(raw)
    return manifest


def load_manifest(path: str | Path) -> Manifest:
    with open(Path(path), "r", encoding="utf-8") as f:
        try:
            raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ManifestError(f"Manifest {path} is not valid JSON: {e}") from e
    return parse_manifest(raw)


def save_manifest(manifest: Manifest, path: str | Path) -> None:
    """Replace the manifest file atomically. A failed write leaves the old file intact."""
    path = Path(path)
    text = json.dumps(manifest.to_dict(), indent=2) + "\n"
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        if path.exists():
            shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
