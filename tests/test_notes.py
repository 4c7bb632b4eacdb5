from __future__ import annotations

import dataclasses

import pytest

from notebot import Note, Visibility


def test_note_accepts_visibility_string() -> None:
    note = Note(text="hello", visibility="followers")

    assert note.visibility is Visibility.followers


def test_note_defaults_to_public() -> None:
    assert Note(text="hello").visibility is Visibility.public


@pytest.mark.parametrize("text", ["", "   ", None])
def test_note_rejects_blank_text(text) -> None:
    with pytest.raises(ValueError):
        Note(text=text)


def test_note_is_immutable() -> None:
    note = Note(text="hello")

    with pytest.raises(dataclasses.FrozenInstanceError):
        note.text = "changed"  # type: ignore[misc]


def test_visibility_parse_rejects_unknown_scope() -> None:
    with pytest.raises(ValueError, match="public, home, followers, specified"):
        Visibility.parse("everyone")


def test_visibility_parse_normalizes_case() -> None:
    assert Visibility.parse(" HOME ") is Visibility.home
