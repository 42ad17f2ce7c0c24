import itertools
import json
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import httplib2
import httpx
import pytest
from googleapiclient.errors import HttpError

from vivienda_concierge.constants import FOLDER_MIME_TYPE
from vivienda_concierge.drive_client import DriveAdapter
from vivienda_concierge.exceptions import FileDownloadError


@pytest.fixture(autouse=True)
def block_httpx_network(request, monkeypatch):
    """Prevent accidental real HTTP calls in tests.

    - If a test uses the `httpx_mock` fixture, we allow httpx to operate as the
      fixture intercepts all requests.
    - Otherwise, we patch the clients' send to fail fast with a clear message.
    """
    if "httpx_mock" in request.fixturenames:
        return  # handled by pytest-httpx

    async def _blocked_async_send(self, *_args, **_kwargs):  # pragma: no cover
        raise AssertionError(
            "Unexpected HTTP request. Use the `httpx_mock` fixture to stub calls."
        )

    def _blocked_send(self, *_args, **_kwargs):  # pragma: no cover
        raise AssertionError(
            "Unexpected HTTP request. Use the `httpx_mock` fixture to stub calls."
        )

    monkeypatch.setattr(httpx.AsyncClient, "send", _blocked_async_send, raising=True)
    monkeypatch.setattr(httpx.Client, "send", _blocked_send, raising=True)


@pytest.fixture(autouse=True)
def production_env(monkeypatch):
    """Messages carry no DEV prefix unless a test asks for it."""
    monkeypatch.setenv("APP_ENV", "production")


# -- in-memory Google Drive --------------------------------------------------


def http_error(status: int, message: str = "error") -> HttpError:
    body = json.dumps({"error": {"code": status, "message": message}}).encode("utf-8")
    return HttpError(httplib2.Response({"status": status}), body)


_QUOTED = r"'((?:[^'\\]|\\.)*)'"
_NAME = re.compile(r"name=" + _QUOTED)
_PARENT = re.compile(_QUOTED + r" in parents")
_MIME = re.compile(r"mimeType=" + _QUOTED)


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


@dataclass
class FakeFile:
    id: str
    name: str
    mime_type: str
    parents: List[str]
    created: int
    content: bytes = b""
    version: int = 1


class FakeRequest:
    def __init__(self, fake, method, action):
        self.fake = fake
        self.method = method
        self.action = action

    def execute(self):
        self.fake.calls.append(self.method)
        status = self.fake.fail_on.get(self.method)
        if status:
            raise http_error(status, f"{self.method} refused")
        return self.action()


class FakeFilesResource:
    def __init__(self, fake):
        self.fake = fake

    def list(self, q="", fields=None, **kwargs):
        return FakeRequest(self.fake, "list", lambda: {"files": self.fake.query(q)})

    def create(self, body=None, media_body=None, fields=None):
        return FakeRequest(self.fake, "create", lambda: self.fake.create(body, media_body))

    def get(self, fileId=None, fields=None):
        return FakeRequest(self.fake, "get", lambda: self.fake.describe(self.fake.require(fileId)))

    def get_media(self, fileId=None):
        return FakeRequest(self.fake, "get_media", lambda: self.fake.require(fileId).content)

    def update(self, fileId=None, addParents=None, removeParents=None, media_body=None, fields=None):
        return FakeRequest(
            self.fake,
            "update",
            lambda: self.fake.update(fileId, addParents, removeParents, media_body),
        )

    def delete(self, fileId=None):
        return FakeRequest(self.fake, "delete", lambda: self.fake.delete(fileId))


class FakeDriveService:
    """Understands the query strings DriveAdapter builds, nothing more."""

    def __init__(self):
        self.files_by_id: Dict[str, FakeFile] = {}
        self.fail_on: Dict[str, int] = {}
        self.calls: List[str] = []
        self._ids = itertools.count(1)

    def files(self):
        return FakeFilesResource(self)

    # -- helpers for tests -----------------------------------------------

    def add(self, name, parent, mime_type="application/octet-stream", content=b""):
        number = next(self._ids)
        file_id = f"id-{number}"
        self.files_by_id[file_id] = FakeFile(
            id=file_id,
            name=name,
            mime_type=mime_type,
            parents=[parent],
            created=number,
            content=content,
        )
        return file_id

    def add_folder(self, name, parent):
        return self.add(name, parent, FOLDER_MIME_TYPE)

    def children(self, parent, name=None) -> List[FakeFile]:
        return [
            f
            for f in sorted(self.files_by_id.values(), key=lambda f: f.created)
            if parent in f.parents and (name is None or f.name == name)
        ]

    def child_id(self, parent, name) -> Optional[str]:
        found = self.children(parent, name)
        return found[0].id if found else None

    def path_id(self, root, *names) -> Optional[str]:
        current = root
        for name in names:
            current = self.child_id(current, name)
            if current is None:
                return None
        return current

    def content_of(self, parent, name) -> Optional[bytes]:
        file_id = self.child_id(parent, name)
        return self.files_by_id[file_id].content if file_id else None

    # -- resource behaviour ----------------------------------------------

    def require(self, file_id) -> FakeFile:
        if file_id not in self.files_by_id:
            raise http_error(404, f"File not found: {file_id}")
        return self.files_by_id[file_id]

    @staticmethod
    def describe(f: FakeFile) -> dict:
        return {
            "id": f.id,
            "name": f.name,
            "mimeType": f.mime_type,
            "parents": list(f.parents),
            "version": str(f.version),
            "createdTime": f"2025-01-01T00:00:{f.created:02d}Z",
        }

    def query(self, q: str) -> List[dict]:
        name = _NAME.search(q)
        parent = _PARENT.search(q)
        mime = _MIME.search(q)
        matches = []
        for f in sorted(self.files_by_id.values(), key=lambda f: f.created):
            if name and f.name != _unescape(name.group(1)):
                continue
            if parent and _unescape(parent.group(1)) not in f.parents:
                continue
            if mime and f.mime_type != _unescape(mime.group(1)):
                continue
            matches.append(self.describe(f))
        return matches

    def create(self, body, media_body) -> dict:
        content = b""
        mime_type = body.get("mimeType") or "application/octet-stream"
        if media_body is not None:
            content = media_body.getbytes(0, media_body.size())
            mime_type = body.get("mimeType") or media_body.mimetype()
        file_id = self.add(body["name"], body["parents"][0], mime_type, content)
        return self.describe(self.files_by_id[file_id])

    def update(self, file_id, add_parents, remove_parents, media_body) -> dict:
        f = self.require(file_id)
        if remove_parents:
            removed = set(remove_parents.split(","))
            f.parents = [p for p in f.parents if p not in removed]
        if add_parents:
            f.parents.append(add_parents)
        if media_body is not None:
            f.content = media_body.getbytes(0, media_body.size())
        f.version += 1
        return self.describe(f)

    def delete(self, file_id) -> str:
        self.require(file_id)
        doomed = [file_id]
        while doomed:
            current = doomed.pop()
            doomed.extend(f.id for f in self.children(current))
            self.files_by_id.pop(current, None)
        return ""


BASE_FOLDER_ID = "base-folder"


@pytest.fixture
def fake_drive():
    return FakeDriveService()


@pytest.fixture
def drive(fake_drive):
    return DriveAdapter(fake_drive)


# -- Telegram ------------------------------------------------------------------


@dataclass
class MockUser:
    id: int = 12345
    username: str = "testuser"
    first_name: str = "Test"


@dataclass
class MockChat:
    id: int = 12345


@dataclass
class MockPhotoSize:
    file_id: str = "photo-file"
    file_unique_id: str = "photo-unique"


@dataclass
class MockDocument:
    file_id: str = "doc-file"
    file_unique_id: str = "doc-unique"
    file_name: Optional[str] = "contrato.pdf"
    mime_type: Optional[str] = "application/pdf"


@dataclass
class MockVideo:
    file_id: str = "video-file"
    file_unique_id: str = "video-unique"
    file_name: Optional[str] = None
    mime_type: Optional[str] = "video/mp4"


@dataclass
class MockMessage:
    message_id: int = 1
    chat: MockChat = field(default_factory=MockChat)
    text: Optional[str] = None
    caption: Optional[str] = None
    document: Optional[MockDocument] = None
    photo: list = field(default_factory=list)
    video: Optional[MockVideo] = None


def make_bot():
    bot = Mock()
    bot.send_message = AsyncMock()
    bot.set_my_commands = AsyncMock()
    bot.get_file = AsyncMock()
    return bot


def sent_texts(bot) -> List[str]:
    return [c.kwargs["text"] for c in bot.send_message.await_args_list]


def last_markup(bot):
    return bot.send_message.await_args_list[-1].kwargs.get("reply_markup")


def button_data(markup) -> List[str]:
    return [button.callback_data for row in markup.inline_keyboard for button in row]


@pytest.fixture
def bot():
    return make_bot()


class FakeDownloader:
    def __init__(self, contents=None, failing=()):
        self.contents = contents or {}
        self.failing = set(failing)
        self.requested = []

    async def download(self, file_id: str) -> bytes:
        self.requested.append(file_id)
        if file_id in self.failing:
            raise FileDownloadError(f"Could not download {file_id}")
        return self.contents.get(file_id, f"bytes of {file_id}".encode("utf-8"))


@pytest.fixture
def downloader():
    return FakeDownloader()


async def no_sleep(_seconds):
    return None
