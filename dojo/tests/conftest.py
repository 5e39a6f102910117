import os
import sys
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import textwrap

import pytest
from fastapi.testclient import TestClient

from dojo.config import clear_settings_cache
from dojo.sandbox import ExecutionLimits

KATA_HELLO = textwrap.dedent(
    """\
    ---
    id: hello-print
    phase: 1
    phase_title: Foundations
    sequence: 1
    title: Hello, print
    tags: [io, basics]
    estimated_minutes: 5
    ---

    ## Concept

    `print` writes a line to standard output.

    ## Experiment

    ```python
    print("hello")
    ```

    ## Expected Output

    hello

    ## Challenge

    Print two lines.
    """
)

KATA_LOOPS = textwrap.dedent(
    """\
    ---
    id: for-loops
    phase: 1
    phase_title: Foundations
    sequence: 2
    title: For loops
    difficulty: intermediate
    ---

    ## Concept

    Loops repeat work.
    """
)

KATA_ASYNC = textwrap.dedent(
    """\
    ---
    id: async-basics
    phase: 2
    phase_title: Concurrency
    sequence: 1
    title: Async basics
    ---

    ## Key Insight

    Awaiting yields control.
    """
)


@pytest.fixture
def katas_dir(tmp_path):
    root = tmp_path / "katas"
    (root / "phase-01-foundations").mkdir(parents=True)
    (root / "phase-02-concurrency").mkdir()
    (root / "notes").mkdir()
    (root / "phase-01-foundations" / "01-hello.md").write_text(KATA_HELLO)
    (root / "phase-01-foundations" / "02-loops.md").write_text(KATA_LOOPS)
    (root / "phase-01-foundations" / "README.txt").write_text("ignored")
    (root / "phase-02-concurrency" / "01-async.md").write_text(KATA_ASYNC)
    return root


@pytest.fixture
def limits():
    # Generous address space so the interpreter itself always starts.
    return ExecutionLimits(timeout_ms=5_000, memory_mb=256)


@pytest.fixture
def app_env(monkeypatch, katas_dir):
    monkeypatch.setenv("KATAS_DIR", str(katas_dir))
    monkeypatch.setenv("SANDBOX_MEMORY_MB", "256")
    monkeypatch.setenv("SANDBOX_TIMEOUT_MS", "5000")
    clear_settings_cache()
    yield monkeypatch
    clear_settings_cache()


@pytest.fixture
def client(app_env):
    from dojo.main import create_app

    with TestClient(create_app(), raise_server_exceptions=False) as c:
        yield c
