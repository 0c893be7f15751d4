"""
statecascade Test Configuration and Fixtures

Shared cascades used across the unit tests.
"""

import pytest
from unittest.mock import Mock

from statecascade.config import reset_config
from statecascade.graph import create


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Keep STATECASCADE_* settings from leaking between tests."""
    for name in (
        "STATECASCADE_CONFIG",
        "STATECASCADE_LOG_LEVEL",
        "STATECASCADE_LOG_FORMAT",
        "STATECASCADE_LOG_FILE",
        "STATECASCADE_MAX_SWAP_RETRIES",
        "STATECASCADE_TRIGGER_LOG_SIZE",
        "STATECASCADE_RECORD_TRIGGERS",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def trimix():
    """Three explicit-state nodes and one node depending on all of them."""
    return create(
        "foo", lambda: None, True,
        "bar", lambda: None, False,
        "baz", lambda: None, True,
        "qux", lambda: None, ["foo", "bar", "baz"],
    )


@pytest.fixture
def sample():
    """Editor-like cascade: transforms feed painting, user data feeds tool state."""
    return create(
        "dim", lambda: None, True,
        "pose", lambda: None, True,
        "xform", lambda: None, ["pose", "dim"],
        "hover", None, True,
        "udata", None, True,
        "painting", lambda: None, ["udata", "xform", "hover"],
        "mode", lambda: None, ["udata"],
        "toolstate", lambda: None, ["mode"],
    )


@pytest.fixture
def diamond_cleaners():
    """Counting cleaners for the diamond cascade."""
    return {
        "l0": Mock(name="l0"),
        "l1": Mock(name="l1"),
        "l2b": Mock(name="l2b"),
        "l3": Mock(name="l3"),
    }


@pytest.fixture
def diamond(diamond_cleaners):
    """
    l0 -> l1 -> (l2a, l2b) -> l3, with l1 dirtied.

    l2a has no cleaner. l0 stays clean.
    """
    c = diamond_cleaners
    return create(
        "l0", c["l0"], True,
        "l1", c["l1"], ["l0"],
        "l2a", None, ["l1"],
        "l2b", c["l2b"], ["l1"],
        "l3", c["l3"], ["l2a", "l2b"],
    ).dirty("l1")
