import json
import os
import re
from pathlib import Path
from typing import List
from uuid import uuid4

from assist_core.config.settings import settings
from assist_core.domain.conversation import Note, NoteStore
from assist_core.domain.exceptions import BusinessError

_NOTE_ID_RE = re.compile(r"^n-[0-9a-f]{32}$")


class JsonNoteStore(NoteStore):
    """按 id 存放的笔记文档，只在上下文组装时读取。"""

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._notes_root = self._root / "notes"
        self._notes_root.mkdir(parents=True, exist_ok=True)

    def save_note(self, owner: str, title: str, content: str, tags: List[str] | None = None) -> Note:
        note = Note(id=f"n-{uuid4().hex}", owner=owner, title=title, content=content, tags=list(tags or []))
        path = self._notes_root / f"{note.id}.json"
        tmp_path = self._notes_root / f"{note.id}.{uuid4().hex}.json.tmp"
        obj = {"id": note.id, "owner": note.owner, "title": note.title, "content": note.content, "tags": note.tags}
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))
        return note

    def get_notes_by_ids(self, note_ids: List[str], owner: str) -> List[Note]:
        notes: List[Note] = []
        for note_id in note_ids:
            if not _NOTE_ID_RE.match(note_id or ""):
                continue
            path = self._notes_root / f"{note_id}.json"
            if not path.exists():
                continue
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError):
                continue
            # 只返回调用方自己的笔记
            if data.get("owner") != owner:
                continue
            notes.append(
                Note(
                    id=data["id"],
                    owner=data["owner"],
                    title=data.get("title") or "",
                    content=data.get("content") or "",
                    tags=data.get("tags") or [],
                )
            )
        return notes
