"""Shared fixtures for ata2 tests."""

import io
import os
from unittest.mock import MagicMock

import pytest
import yaml
from rich.console import Console

from ata2.renderer import Renderer
from ata2.transport import Done, StreamError, parse_frame


@pytest.fixture(autouse=True)
def no_v1_config(tmp_path, monkeypatch):
    """Never pick up a real ~/.config/ata/ata.toml."""
    monkeypatch.setattr("ata2.config.V1_CONFIG_FILE", tmp_path / "no-v1" / "ata.toml")


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(orig)


@pytest.fixture
def sample_config_data(tmp_path):
    """Minimal ata2.yml data dict."""
    return {
        "api-key": "sk-test",
        "model": "gpt-3.5-turbo",
        "max-tokens": 256,
        "temperature": 0.8,
        "top-p": 1.0,
        "n": 1,
        "stop": ["###"],
        "presence-penalty": 0.0,
        "frequency-penalty": 0.0,
        "logit-bias": {"50256": -1.5},
        "ui": {
            "double-ctrlc": True,
            "hide-config": False,
            "redact-api-key": True,
            "multiline-insertions": False,
            "save-history": True,
            "history-file": str(tmp_path / "history"),
        },
    }


@pytest.fixture
def config_dir(tmp_path):
    path = tmp_path / "ata2-home"
    path.mkdir()
    return path


@pytest.fixture
def config_yaml_file(config_dir, sample_config_data):
    """Write a config YAML to the config dir and return its Path."""
    path = config_dir / "ata2.yml"
    with open(path, "w") as f:
        yaml.dump(sample_config_data, f, default_flow_style=False)
    return path


@pytest.fixture
def mock_console():
    """A mock Rich Console that silently accepts all print calls."""
    c = MagicMock()
    c.print = MagicMock()
    c.is_terminal = False
    return c


class RecordingRenderer(Renderer):
    """Renderer writing to in-memory consoles, with every call recorded."""

    def __init__(self, terminal: bool = True):
        self.out = io.StringIO()
        self.err = io.StringIO()
        super().__init__(
            console=Console(file=self.out, force_terminal=False, width=120),
            err_console=Console(file=self.err, force_terminal=terminal, color_system=None, width=120),
        )
        self.calls = []

    def print_header(self, role):
        self.calls.append(("header", role))
        super().print_header(role)

    def print_text(self, fragment):
        self.calls.append(("text", fragment))
        super().print_text(fragment)

    def print_error(self, message):
        self.calls.append(("error", message))
        super().print_error(message)

    def print_warning(self, message):
        self.calls.append(("warning", message))
        super().print_warning(message)

    def print_notice(self, message):
        self.calls.append(("notice", message))
        super().print_notice(message)

    @property
    def text(self) -> str:
        return self.out.getvalue()

    def kinds(self, kind):
        return [value for name, value in self.calls if name == kind]


@pytest.fixture
def recording_renderer():
    return RecordingRenderer()


class ScriptedTransport:
    """Transport stub replaying raw SSE frames, one script per attempt."""

    def __init__(self, *scripts, on_frame=None):
        self.scripts = list(scripts)
        self.calls = []
        self.on_frame = on_frame

    def submit(self, conversation, params, abort=None):
        self.calls.append({"conversation": tuple(conversation), "params": params})
        frames = self.scripts[min(len(self.calls), len(self.scripts)) - 1]
        return self._replay(frames, abort)

    def _replay(self, frames, abort):
        for index, frame in enumerate(frames):
            for event in parse_frame(frame):
                yield event
                if isinstance(event, (Done, StreamError)):
                    return
            if self.on_frame is not None:
                self.on_frame(index)
            if abort is not None and abort.is_set():
                yield Done(aborted=True)
                return
        yield Done()


@pytest.fixture
def scripted_transport():
    return ScriptedTransport


@pytest.fixture
def hello_frames():
    """A complete stream answering "hi"."""
    return [
        'data:{"choices":[{"delta":{"content":"hi"}}]}',
        'data:{"choices":[{"delta":{},"finish_reason":"stop"}]}',
        "data:[DONE]",
    ]


@pytest.fixture
def server_error_frame():
    """HTTP error body sent instead of an event stream."""
    return '{"error": {"type": "server_error", "message": "The server had an error"}}'
